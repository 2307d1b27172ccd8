"""
Reconcilia as arestas de follow de uma conta e, opcionalmente, roda a
limpeza de bookmarks/boards de quem não a segue (conta privada).

Uso: uv run python scripts/reconcile_account.py <account_id> [--privacy-sweep]
"""

import argparse
import asyncio
import logging

from socialgraph.database import init_db
from socialgraph.engine import build_engine


async def run(account_id: str, privacy_sweep: bool) -> None:
    await init_db()
    engine = build_engine()

    repairs = await engine.follow_graph.reconcile_account(account_id)
    for edge, steps in repairs.items():
        print(f"  {edge}: {', '.join(steps)}")

    if privacy_sweep:
        reports = await engine.maintainer.after_privacy_change(account_id)
        removed = sum(len(report.bookmarks_removed) for report in reports)
        failures = sum(len(report.failures) for report in reports)
        print(f"  varredura: {len(reports)} conta(s), {removed} bookmark(s) removido(s), {failures} falha(s)")

    print(f"✓ {account_id} reconciliada ({len(repairs)} aresta(s) reparada(s)).")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("account_id")
    parser.add_argument("--privacy-sweep", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(run(args.account_id, args.privacy_sweep))


if __name__ == "__main__":
    main()
