"""
workers/repair_worker.py

Worker assíncrono que executa reparos pedidos explicitamente pelos
endpoints de manutenção.

Tarefas:
- reconcile_edge       → FollowGraphService.reconcile_edge(a, b)
- after_unfollow       → ConsistencyMaintainer.after_unfollow(viewer, dono)
- after_privacy_change → ConsistencyMaintainer.after_privacy_change(conta)

Uma tarefa que falha é logada e descartada; nada é reenfileirado.
"""

import asyncio
import logging

from socialgraph.dependencies import get_engine
from socialgraph.engine import Engine
from socialgraph.services.queue import RepairKind, RepairTask, repair_queue

log = logging.getLogger(__name__)


async def handle_task(task: RepairTask, engine: Engine | None = None):
    engine = engine or get_engine()
    log.info(f"handle_task: {task}")

    if task.kind is RepairKind.RECONCILE_EDGE:
        return await engine.follow_graph.reconcile_edge(task.account_id, task.other_id)

    if task.kind is RepairKind.AFTER_UNFOLLOW:
        report = await engine.maintainer.after_unfollow(task.account_id, task.other_id)
        if not report.ok:
            log.warning(f"Limpeza {task.account_id} ↛ {task.other_id} incompleta: {report.failures}")
        return report

    if task.kind is RepairKind.AFTER_PRIVACY_CHANGE:
        reports = await engine.maintainer.after_privacy_change(task.account_id)
        # O feed de qualquer viewer pode ter perdido posts
        engine.feed.invalidate()
        return reports

    raise ValueError(f"Tipo de tarefa desconhecido: {task.kind!r}")


async def run_worker() -> None:
    log.info("Worker de reparo iniciado")
    while True:
        try:
            task = await asyncio.wait_for(repair_queue.get(), timeout=5.0)
        except asyncio.TimeoutError:
            continue

        try:
            await handle_task(task)
        except Exception as e:
            log.error(f"Erro no worker: {e}", exc_info=True)
        finally:
            repair_queue.task_done()
