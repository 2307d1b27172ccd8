"""
socialgraph/services/notifications.py

Criação e remoção de notificações como efeito colateral de ações do grafo
(follow, pedido, aceite) e de interações (like, comentário).

A deduplicação é feita por consulta antes da inserção (`emit_unique`) e
não é atômica: duas chamadas concorrentes ainda podem gerar duplicatas.
A remoção é "consulta e apaga tudo que casar", também sem atomicidade
com a ação que a acompanha.
"""

import logging
from typing import Any, Sequence

from socialgraph.models.social import (
    NOTIFICATIONS,
    NotificationKind,
    NotificationStatus,
)
from socialgraph.services.store import SERVER_TIMESTAMP, DocumentStore, Filter

log = logging.getLogger(__name__)

# Status que tiram a notificação da lista ativa do destinatário
RESOLVED_STATUSES = {
    NotificationStatus.READ.value,
    NotificationStatus.ACCEPTED.value,
    NotificationStatus.DECLINED.value,
}


def pending_request_filters(sender_id: str, recipient_id: str) -> list[Filter]:
    return [
        ("type", "==", NotificationKind.FOLLOW_REQUEST.value),
        ("senderId", "==", sender_id),
        ("recipientId", "==", recipient_id),
        ("status", "==", NotificationStatus.PENDING.value),
    ]


class NotificationEmitter:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def emit(
        self,
        kind: NotificationKind,
        sender_id: str,
        recipient_id: str,
        payload: dict[str, Any] | None = None,
        status: NotificationStatus | None = None,
    ) -> str:
        data: dict[str, Any] = {
            **(payload or {}),
            "type": kind.value,
            "senderId": sender_id,
            "recipientId": recipient_id,
            "createdAt": SERVER_TIMESTAMP,
        }
        if status is not None:
            data["status"] = status.value

        notification_id = await self._store.add_doc(NOTIFICATIONS, data)
        log.info(f"Notificação {kind.value} criada: {sender_id} → {recipient_id} ({notification_id})")
        return notification_id

    async def emit_unique(
        self,
        kind: NotificationKind,
        sender_id: str,
        recipient_id: str,
        match: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        status: NotificationStatus | None = None,
    ) -> str | None:
        """
        Como `emit`, mas não insere se já existir notificação do mesmo tipo
        entre o mesmo par com os campos de `match`. Retorna None nesse caso.
        """
        filters: list[Filter] = [
            ("type", "==", kind.value),
            ("senderId", "==", sender_id),
            ("recipientId", "==", recipient_id),
        ]
        filters.extend((field, "==", value) for field, value in (match or {}).items())

        existing = await self._store.query(NOTIFICATIONS, filters, limit=1)
        if existing:
            log.info(f"Notificação {kind.value} {sender_id} → {recipient_id} já existe; ignorada")
            return None

        return await self.emit(
            kind,
            sender_id,
            recipient_id,
            payload={**(payload or {}), **(match or {})},
            status=status,
        )

    async def get(self, notification_id: str) -> dict[str, Any] | None:
        return await self._store.get_doc(NOTIFICATIONS, notification_id)

    async def find(self, filters: Sequence[Filter]) -> list[dict[str, Any]]:
        return await self._store.query(NOTIFICATIONS, filters)

    async def find_pending_request(self, sender_id: str, recipient_id: str) -> list[dict[str, Any]]:
        return await self.find(pending_request_filters(sender_id, recipient_id))

    async def retract(self, filters: Sequence[Filter]) -> int:
        """Apaga todas as notificações que casarem com os filtros."""
        matches = await self._store.query(NOTIFICATIONS, filters)
        for notification in matches:
            await self._store.delete_doc(NOTIFICATIONS, notification["id"])
        if matches:
            log.info(f"{len(matches)} notificação(ões) removida(s): {list(filters)}")
        return len(matches)

    async def set_status(
        self,
        notification_id: str,
        status: NotificationStatus,
        stamp_field: str = "respondedAt",
    ) -> None:
        await self._store.update_doc(
            NOTIFICATIONS,
            notification_id,
            {"status": status.value, stamp_field: SERVER_TIMESTAMP},
        )

    async def mark_read(self, notification_id: str) -> None:
        await self.set_status(notification_id, NotificationStatus.READ, stamp_field="readAt")

    async def list_for(self, recipient_id: str, include_resolved: bool = False) -> list[dict[str, Any]]:
        notifications = await self._store.query(
            NOTIFICATIONS,
            [("recipientId", "==", recipient_id)],
            order_by=[("createdAt", "desc")],
        )
        if include_resolved:
            return notifications
        return [n for n in notifications if n.get("status") not in RESOLVED_STATUSES]
