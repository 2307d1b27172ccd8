"""
socialgraph/services/follow.py

Estado e transições de follow entre duas contas.

Máquina de estados por aresta viewer → target:

    NONE ──follow (público)──▶ FOLLOWING
    NONE ──follow (privado)──▶ REQUESTED
    REQUESTED ──accept──▶ FOLLOWING
    REQUESTED ──decline / cancel──▶ NONE
    FOLLOWING ──unfollow / remove follower──▶ NONE

Cada transição com mais de uma escrita roda como Saga: escritas
independentes, em ordem fixa, sem rollback. Depois de perder acesso a uma
conta privada, o ConsistencyMaintainer limpa bookmarks e boards do viewer.
"""

import logging
from typing import Any

from socialgraph.exceptions import (
    AccountNotFoundError,
    FollowRequestNotFoundError,
    NotAuthenticatedError,
    SelfFollowError,
    StoreError,
)
from socialgraph.models.social import (
    USERS,
    ButtonLabel,
    FollowAction,
    FollowResult,
    FollowState,
    NotificationKind,
    NotificationStatus,
)
from socialgraph.services.cache import TTLCache
from socialgraph.services.consistency import CleanupReport, ConsistencyMaintainer
from socialgraph.services.notifications import NotificationEmitter, pending_request_filters
from socialgraph.services.saga import Saga
from socialgraph.services.store import ArrayRemove, ArrayUnion, DocumentStore

log = logging.getLogger(__name__)

BUTTON_LABELS = {
    "following": ButtonLabel(text="Following", style="bg-primary border-black border text-black"),
    "requested": ButtonLabel(text="Requested", style="bg-gray-400 text-white"),
    "follow_back": ButtonLabel(text="Follow Back", style="bg-black text-primary"),
    "follow": ButtonLabel(text="Follow", style="bg-black text-primary"),
}


def derive_state(viewer: dict[str, Any] | None, target: dict[str, Any] | None) -> FollowState:
    """Estado da aresta a partir dos dois documentos já carregados."""
    if viewer is None or target is None or viewer.get("id") == target.get("id"):
        return FollowState.NONE
    if target["id"] in (viewer.get("following") or []):
        return FollowState.FOLLOWING
    if viewer["id"] in (target.get("pendingFollowRequests") or []):
        return FollowState.REQUESTED
    return FollowState.NONE


class FollowGraphService:
    def __init__(
        self,
        store: DocumentStore,
        notifications: NotificationEmitter,
        maintainer: ConsistencyMaintainer,
        feed_cache: TTLCache | None = None,
    ):
        self._store = store
        self._notifications = notifications
        self._maintainer = maintainer
        self._feed_cache = feed_cache

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    async def _get_account(self, account_id: str) -> dict[str, Any]:
        account = await self._store.get_doc(USERS, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def status(self, viewer_id: str | None, target_id: str | None) -> FollowState:
        """
        FOLLOWING se o target está em viewer.following; senão REQUESTED se o
        viewer está em target.pendingFollowRequests; senão NONE.
        """
        if not viewer_id or not target_id or viewer_id == target_id:
            return FollowState.NONE

        viewer = await self._store.get_doc(USERS, viewer_id)
        if viewer is not None and target_id in (viewer.get("following") or []):
            return FollowState.FOLLOWING

        target = await self._store.get_doc(USERS, target_id)
        if target is not None and viewer_id in (target.get("pendingFollowRequests") or []):
            return FollowState.REQUESTED

        return FollowState.NONE

    async def status_flags(self, viewer_id: str | None, target_id: str | None) -> dict[str, bool]:
        return (await self.status(viewer_id, target_id)).as_flags()

    async def is_following_back(self, viewer_id: str | None, target_id: str | None) -> bool:
        """O target segue o viewer? (botão "Follow Back")"""
        if not viewer_id or not target_id:
            return False
        viewer = await self._store.get_doc(USERS, viewer_id)
        if viewer is None:
            return False
        return target_id in (viewer.get("followers") or [])

    @staticmethod
    def button_label(state: FollowState, is_following_me: bool = False) -> ButtonLabel:
        if state is FollowState.FOLLOWING:
            return BUTTON_LABELS["following"]
        if state is FollowState.REQUESTED:
            return BUTTON_LABELS["requested"]
        if is_following_me:
            return BUTTON_LABELS["follow_back"]
        return BUTTON_LABELS["follow"]

    # ------------------------------------------------------------------
    # Transição iniciada pelo viewer
    # ------------------------------------------------------------------

    async def transition(
        self,
        viewer_id: str | None,
        target_id: str,
        current: FollowState,
    ) -> FollowResult:
        """
        Aplica a ação do botão de follow a partir do estado atual informado
        pela UI. Em REQUESTED nada é escrito (o pedido não é duplicado).
        """
        if not viewer_id:
            raise NotAuthenticatedError("User must be logged in to follow others")
        if viewer_id == target_id:
            raise SelfFollowError()

        if current is FollowState.REQUESTED:
            return FollowResult(FollowState.REQUESTED, FollowAction.REQUESTED)

        target = await self._get_account(target_id)

        if current is FollowState.FOLLOWING:
            await self._withdraw("unfollow", viewer_id, target)
            return FollowResult(FollowState.NONE, FollowAction.UNFOLLOWED)

        if target.get("isPrivate"):
            await self._send_request(viewer_id, target)
            return FollowResult(FollowState.REQUESTED, FollowAction.REQUESTED)

        await self._follow(viewer_id, target)
        return FollowResult(FollowState.FOLLOWING, FollowAction.FOLLOWED)

    async def transition_flags(
        self,
        viewer_id: str | None,
        target_id: str,
        is_following: bool,
        has_requested_follow: bool,
    ) -> FollowResult:
        return await self.transition(
            viewer_id,
            target_id,
            FollowState.from_flags(is_following, has_requested_follow),
        )

    async def cancel_request(self, viewer_id: str, target_id: str) -> FollowResult:
        """
        Retira um pedido pendente: mesmas escritas do unfollow. Quem já
        segue o alvo recebe FollowRequestNotFoundError; o caminho para
        deixar de seguir é `transition`.
        """
        target = await self._get_account(target_id)
        viewer = await self._store.get_doc(USERS, viewer_id)
        if derive_state(viewer, target) is FollowState.FOLLOWING:
            raise FollowRequestNotFoundError(viewer_id)
        await self._withdraw("cancel_request", viewer_id, target)
        return FollowResult(FollowState.NONE, FollowAction.CANCELLED)

    async def _follow(self, viewer_id: str, target: dict[str, Any]) -> None:
        target_id = target["id"]
        saga = Saga("follow", f"{viewer_id} → {target_id}")
        saga.step(
            "add_following",
            lambda: self._store.update_doc(USERS, viewer_id, {"following": ArrayUnion(target_id)}),
        )
        saga.step(
            "add_follower",
            lambda: self._store.update_doc(USERS, target_id, {"followers": ArrayUnion(viewer_id)}),
        )
        saga.step(
            "notify_follow",
            lambda: self._notifications.emit(
                NotificationKind.FOLLOW,
                viewer_id,
                target_id,
                payload={"recipientName": target.get("displayName") or "User"},
            ),
        )
        await saga.run()
        self._touch_feeds(viewer_id)

    async def _send_request(self, viewer_id: str, target: dict[str, Any]) -> None:
        target_id = target["id"]

        if await self._notifications.find_pending_request(viewer_id, target_id):
            log.info(f"Pedido de {viewer_id} para {target_id} já pendente; nada a fazer")
            return

        saga = Saga("follow_request", f"{viewer_id} → {target_id}")
        saga.step(
            "add_pending_request",
            lambda: self._store.update_doc(
                USERS, target_id, {"pendingFollowRequests": ArrayUnion(viewer_id)}
            ),
        )
        saga.step(
            "notify_follow_request",
            lambda: self._notifications.emit(
                NotificationKind.FOLLOW_REQUEST,
                viewer_id,
                target_id,
                payload={"recipientName": target.get("displayName") or "User"},
                status=NotificationStatus.PENDING,
            ),
        )
        await saga.run()

    async def _withdraw(self, workflow: str, viewer_id: str, target: dict[str, Any]) -> None:
        target_id = target["id"]
        saga = Saga(workflow, f"{viewer_id} → {target_id}")
        saga.step(
            "remove_following",
            lambda: self._store.update_doc(USERS, viewer_id, {"following": ArrayRemove(target_id)}),
        )
        saga.step(
            "remove_follower_and_pending",
            lambda: self._store.update_doc(
                USERS,
                target_id,
                {
                    "followers": ArrayRemove(viewer_id),
                    "pendingFollowRequests": ArrayRemove(viewer_id),
                },
            ),
        )
        saga.step(
            "retract_pending_requests",
            lambda: self._notifications.retract(pending_request_filters(viewer_id, target_id)),
        )
        await saga.run()
        self._touch_feeds(viewer_id)

        if target.get("isPrivate"):
            await self._cleanup_after_loss(viewer_id, target_id)

    # ------------------------------------------------------------------
    # Transições iniciadas pelo dono da conta
    # ------------------------------------------------------------------

    async def _pending_request(self, owner: dict[str, Any], requester_id: str) -> list[dict[str, Any]]:
        """
        Notificações pendentes do pedido. O pedido vale se estiver na lista
        OU tiver notificação pendente (as duas escritas podem ter divergido).
        """
        notifications = await self._notifications.find_pending_request(requester_id, owner["id"])
        if requester_id not in (owner.get("pendingFollowRequests") or []) and not notifications:
            raise FollowRequestNotFoundError(requester_id)
        return notifications

    async def _resolve_notifications(
        self,
        notifications: list[dict[str, Any]],
        status: NotificationStatus,
    ) -> None:
        for notification in notifications:
            await self._notifications.set_status(notification["id"], status)

    async def accept_request(self, owner_id: str, requester_id: str) -> FollowResult:
        """
        O dono aceita o pedido: requester passa a seguir. O resultado é
        expresso do ponto de vista do requester.
        """
        owner = await self._get_account(owner_id)
        notifications = await self._pending_request(owner, requester_id)

        saga = Saga("accept_request", f"{requester_id} → {owner_id}")
        saga.step(
            "add_follower_clear_pending",
            lambda: self._store.update_doc(
                USERS,
                owner_id,
                {
                    "followers": ArrayUnion(requester_id),
                    "pendingFollowRequests": ArrayRemove(requester_id),
                },
            ),
        )
        saga.step(
            "add_following",
            lambda: self._store.update_doc(USERS, requester_id, {"following": ArrayUnion(owner_id)}),
        )
        saga.step(
            "mark_accepted",
            lambda: self._resolve_notifications(notifications, NotificationStatus.ACCEPTED),
        )
        await saga.run()

        try:
            await self._notifications.emit(
                NotificationKind.FOLLOW_ACCEPTED,
                owner_id,
                requester_id,
                payload={"senderName": owner.get("displayName")},
                status=NotificationStatus.UNREAD,
            )
        except StoreError:
            # O aceite já foi aplicado; a notificação é secundária
            log.error(f"Falha ao notificar {requester_id} do aceite de {owner_id}", exc_info=True)

        self._touch_feeds(owner_id, requester_id)
        return FollowResult(FollowState.FOLLOWING, FollowAction.ACCEPTED)

    async def decline_request(self, owner_id: str, requester_id: str) -> FollowResult:
        owner = await self._get_account(owner_id)
        notifications = await self._pending_request(owner, requester_id)

        saga = Saga("decline_request", f"{requester_id} → {owner_id}")
        saga.step(
            "remove_pending",
            lambda: self._store.update_doc(
                USERS, owner_id, {"pendingFollowRequests": ArrayRemove(requester_id)}
            ),
        )
        saga.step(
            "mark_declined",
            lambda: self._resolve_notifications(notifications, NotificationStatus.DECLINED),
        )
        await saga.run()
        return FollowResult(FollowState.NONE, FollowAction.DECLINED)

    async def remove_follower(self, owner_id: str, follower_id: str) -> FollowResult:
        """
        O dono remove um seguidor. Se a conta for privada, a limpeza roda
        no sentido inverso: dados derivados do seguidor removido.
        """
        owner = await self._get_account(owner_id)

        saga = Saga("remove_follower", f"{follower_id} → {owner_id}")
        saga.step(
            "remove_following",
            lambda: self._store.update_doc(USERS, follower_id, {"following": ArrayRemove(owner_id)}),
        )
        saga.step(
            "remove_follower_and_pending",
            lambda: self._store.update_doc(
                USERS,
                owner_id,
                {
                    "followers": ArrayRemove(follower_id),
                    "pendingFollowRequests": ArrayRemove(follower_id),
                },
            ),
        )
        await saga.run()
        self._touch_feeds(owner_id, follower_id)

        if owner.get("isPrivate"):
            await self._cleanup_after_loss(follower_id, owner_id)
        return FollowResult(FollowState.NONE, FollowAction.REMOVED)

    # ------------------------------------------------------------------
    # Reparo
    # ------------------------------------------------------------------

    async def reconcile_edge(self, viewer_id: str, target_id: str) -> list[str]:
        """
        Restaura `target ∈ viewer.following ⇔ viewer ∈ target.followers`
        e a coerência entre pedido pendente e notificação.

        Relações escritas pela metade são desfeitas, nunca completadas:
        o viewer pode seguir (ou pedir) de novo.
        """
        viewer = await self._get_account(viewer_id)
        target = await self._get_account(target_id)
        repairs: list[str] = []

        follows = target_id in (viewer.get("following") or [])
        listed = viewer_id in (target.get("followers") or [])
        pending = viewer_id in (target.get("pendingFollowRequests") or [])
        notifications = await self._notifications.find_pending_request(viewer_id, target_id)

        if follows != listed:
            await self._store.update_doc(USERS, viewer_id, {"following": ArrayRemove(target_id)})
            await self._store.update_doc(USERS, target_id, {"followers": ArrayRemove(viewer_id)})
            repairs.append("drop_half_edge")
            follows = False

        if follows:
            if pending:
                await self._store.update_doc(
                    USERS, target_id, {"pendingFollowRequests": ArrayRemove(viewer_id)}
                )
                repairs.append("clear_stale_pending")
            if notifications:
                await self._resolve_notifications(notifications, NotificationStatus.ACCEPTED)
                repairs.append("resolve_request_notification")
        elif pending != bool(notifications):
            await self._store.update_doc(
                USERS, target_id, {"pendingFollowRequests": ArrayRemove(viewer_id)}
            )
            await self._notifications.retract(pending_request_filters(viewer_id, target_id))
            repairs.append("drop_half_request")

        if "drop_half_edge" in repairs:
            self._touch_feeds(viewer_id)
            if target.get("isPrivate"):
                await self._cleanup_after_loss(viewer_id, target_id)

        log.info(f"Reconciliação {viewer_id} → {target_id}: {repairs or 'nada a reparar'}")
        return repairs

    async def reconcile_account(self, account_id: str) -> dict[str, list[str]]:
        """
        Reconcilia todas as arestas que tocam a conta, nos dois sentidos.
        Inclui arestas vistas só do outro lado (ex: a conta aparece em
        `followers` de alguém sem o `following` correspondente).
        """
        account = await self._get_account(account_id)

        outgoing = set(account.get("following") or [])
        for other in await self._store.query(USERS, [("followers", "array-contains", account_id)]):
            outgoing.add(other["id"])
        for other in await self._store.query(USERS, [("pendingFollowRequests", "array-contains", account_id)]):
            outgoing.add(other["id"])

        incoming = set(account.get("followers") or []) | set(account.get("pendingFollowRequests") or [])
        for other in await self._store.query(USERS, [("following", "array-contains", account_id)]):
            incoming.add(other["id"])

        repairs: dict[str, list[str]] = {}
        for other_id in sorted(outgoing - {account_id}):
            try:
                done = await self.reconcile_edge(account_id, other_id)
            except AccountNotFoundError:
                done = await self._drop_dangling(account_id, other_id)
            if done:
                repairs[f"{account_id}→{other_id}"] = done
        for other_id in sorted(incoming - {account_id}):
            try:
                done = await self.reconcile_edge(other_id, account_id)
            except AccountNotFoundError:
                done = await self._drop_dangling(account_id, other_id)
            if done:
                repairs[f"{other_id}→{account_id}"] = done
        return repairs

    async def _drop_dangling(self, account_id: str, missing_id: str) -> list[str]:
        """Remove referências a uma conta que não existe mais."""
        await self._store.update_doc(
            USERS,
            account_id,
            {
                "following": ArrayRemove(missing_id),
                "followers": ArrayRemove(missing_id),
                "pendingFollowRequests": ArrayRemove(missing_id),
            },
        )
        log.warning(f"Referências a conta inexistente {missing_id} removidas de {account_id}")
        return ["drop_dangling_account"]

    # ------------------------------------------------------------------
    # Auxiliares
    # ------------------------------------------------------------------

    async def _cleanup_after_loss(self, viewer_id: str, owner_id: str) -> CleanupReport | None:
        """
        A transição já foi aplicada; uma falha aqui não a invalida. Fica no
        log e pode ser refeita por /maintenance/reconcile.
        """
        try:
            return await self._maintainer.after_unfollow(viewer_id, owner_id)
        except StoreError:
            log.error(
                f"Limpeza de {viewer_id} após perder acesso a {owner_id} não concluída",
                exc_info=True,
            )
            return None

    def _touch_feeds(self, *account_ids: str) -> None:
        if self._feed_cache is None:
            return
        ids = set(account_ids)
        self._feed_cache.mark_stale_matching(lambda key: key[0] in ids)
