"""
socialgraph/services/store.py

Document store sem schema sobre o SQLAlchemy assíncrono.

Contrato:
- get_doc(collection, id)            → dict | None
- set_doc(collection, id, data)      → grava (ou mescla) o documento
- update_doc(collection, id, ops)    → operações por campo; falha se não existir
- add_doc(collection, data)          → novo id
- delete_doc(collection, id)         → remove (no-op se não existir)
- query(collection, filters, ...)    → lista de documentos; sem join

Cada chamada abre e fecha sua própria transação. Nenhuma operação cobre
mais de um documento: fluxos com várias escritas são sequências de
chamadas independentes (ver services/saga.py).
"""

import asyncio
import copy
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from socialgraph.database import async_session_factory
from socialgraph.exceptions import DocumentNotFoundError, StoreError
from socialgraph.models.document import Document

log = logging.getLogger(__name__)

Filter = tuple[str, str, Any]

_MISSING = object()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Operações por campo
# ---------------------------------------------------------------------------


class FieldOp:
    """Operação aplicada sobre o valor atual de um campo."""

    def apply(self, current: Any) -> Any:
        raise NotImplementedError

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and vars(self) == vars(other)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({vars(self)})"


class ArrayUnion(FieldOp):
    """Acrescenta os valores ausentes, preservando a ordem existente."""

    def __init__(self, *values: Any):
        self.values = list(values)

    def apply(self, current: Any) -> list:
        result = list(current) if isinstance(current, list) else []
        for value in self.values:
            if value not in result:
                result.append(value)
        return result


class ArrayRemove(FieldOp):
    """Remove todas as ocorrências dos valores."""

    def __init__(self, *values: Any):
        self.values = list(values)

    def apply(self, current: Any) -> list:
        if not isinstance(current, list):
            return []
        return [item for item in current if item not in self.values]


class Increment(FieldOp):
    def __init__(self, amount: int | float = 1):
        self.amount = amount

    def apply(self, current: Any) -> int | float:
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            current = 0
        return current + self.amount


class _ServerTimestamp(FieldOp):
    def apply(self, current: Any) -> str:
        return now_iso()

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def apply_ops(base: dict[str, Any], ops: dict[str, Any]) -> dict[str, Any]:
    """Retorna uma cópia de `base` com as operações aplicadas."""
    result = copy.deepcopy(base)
    for field, op in ops.items():
        if field == "id":
            continue
        if isinstance(op, FieldOp):
            result[field] = op.apply(result.get(field))
        else:
            result[field] = copy.deepcopy(op)
    return result


# ---------------------------------------------------------------------------
# Filtros
# ---------------------------------------------------------------------------


def _matches(record: dict[str, Any], flt: Filter) -> bool:
    field, op, value = flt
    current = record.get(field, _MISSING)

    if op == "==":
        return current == value
    if op == "!=":
        return current is not _MISSING and current != value
    if op == "in":
        return current in value
    if op == "not-in":
        return current is not _MISSING and current not in value
    if op == "array-contains":
        return isinstance(current, list) and value in current
    if op == "array-contains-any":
        return isinstance(current, list) and any(v in current for v in value)
    raise ValueError(f"Operador de filtro desconhecido: {op!r}")


def _normalize_order(order_by: Iterable[str | tuple[str, str]]) -> list[tuple[str, str]]:
    normalized = []
    for entry in order_by:
        if isinstance(entry, str):
            normalized.append((entry, "asc"))
        else:
            field, direction = entry
            if direction not in ("asc", "desc"):
                raise ValueError(f"Direção de ordenação inválida: {direction!r}")
            normalized.append((field, direction))
    return normalized


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class DocumentStore:
    """
    Acesso ao document store.

    Um único lock serializa as chamadas: cada chamada é atômica para o
    documento que toca, como no store remoto, mas nada garante atomicidade
    entre chamadas diferentes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory or async_session_factory
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def _transaction(self, description: str) -> AsyncIterator[AsyncSession]:
        async with self._lock:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        yield session
            except SQLAlchemyError as e:
                log.error(f"Falha no store ({description}): {e}")
                raise StoreError(f"Falha no store ({description})") from e

    # -- leitura ------------------------------------------------------------

    async def get_doc(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        async with self._transaction(f"get {collection}/{doc_id}") as session:
            row = await session.get(Document, (collection, doc_id))
            data = copy.deepcopy(row.data) if row is not None else None

        if data is None:
            return None
        return {**data, "id": doc_id}

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[str | tuple[str, str]] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Consulta uma coleção. Como no store remoto, documentos sem o campo
        de ordenação ficam fora do resultado.
        """
        order = _normalize_order(order_by)

        async with self._transaction(f"query {collection}") as session:
            result = await session.execute(
                select(Document).where(Document.collection == collection)
            )
            records = [
                {**copy.deepcopy(row.data), "id": row.doc_id}
                for row in result.scalars()
            ]

        records = [r for r in records if all(_matches(r, f) for f in filters)]

        if order:
            records = [r for r in records if all(r.get(f) is not None for f, _ in order)]
            # sort estável: aplica do critério menos significativo para o mais
            for field, direction in reversed(order):
                records.sort(key=lambda r: r[field], reverse=direction == "desc")

        if limit is not None:
            records = records[:limit]
        return records

    # -- escrita ------------------------------------------------------------

    async def set_doc(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        async with self._transaction(f"set {collection}/{doc_id}") as session:
            row = await session.get(Document, (collection, doc_id))
            if row is None:
                session.add(
                    Document(collection=collection, doc_id=doc_id, data=apply_ops({}, data))
                )
            else:
                row.data = apply_ops(row.data if merge else {}, data)

    async def update_doc(self, collection: str, doc_id: str, ops: dict[str, Any]) -> None:
        async with self._transaction(f"update {collection}/{doc_id}") as session:
            row = await session.get(Document, (collection, doc_id))
            if row is None:
                raise DocumentNotFoundError(collection, doc_id)
            row.data = apply_ops(row.data, ops)

    async def add_doc(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        async with self._transaction(f"add {collection}") as session:
            session.add(Document(collection=collection, doc_id=doc_id, data=apply_ops({}, data)))
        return doc_id

    async def delete_doc(self, collection: str, doc_id: str) -> None:
        async with self._transaction(f"delete {collection}/{doc_id}") as session:
            row = await session.get(Document, (collection, doc_id))
            if row is not None:
                await session.delete(row)
