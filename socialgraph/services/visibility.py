"""
socialgraph/services/visibility.py

Filtro de visibilidade aplicado aos resultados de feed, explore e busca.

O store não filtra por privacidade do dono (seria um join entre coleções),
então o filtro roda depois da consulta. Para cada request é usado um
`PrivacyMemo`: a conta de cada dono é lida no máximo uma vez, não importa
quantos itens dela apareçam no lote.

Política de falha: se a leitura da conta falhar, o dono é tratado como
privado (conteúdo oculto) em todas as superfícies.
"""

import logging
from typing import Any, Iterable

from socialgraph.exceptions import StoreError
from socialgraph.models.social import USERS
from socialgraph.services.follow import FollowGraphService, derive_state
from socialgraph.services.privacy import can_view_account
from socialgraph.services.store import DocumentStore

log = logging.getLogger(__name__)


class PrivacyMemo:
    """Cache por request: owner_id → visível para `viewer_id`."""

    def __init__(self, viewer_id: str):
        self.viewer_id = viewer_id
        self.lookups = 0
        self._visible: dict[str, bool] = {}
        self._accounts: dict[str, dict[str, Any]] = {}

    def __contains__(self, owner_id: str) -> bool:
        return owner_id in self._visible

    def __getitem__(self, owner_id: str) -> bool:
        return self._visible[owner_id]

    def remember(self, owner_id: str, visible: bool, account: dict[str, Any] | None = None) -> None:
        self._visible[owner_id] = visible
        if account is not None:
            self._accounts[owner_id] = account

    def account(self, owner_id: str) -> dict[str, Any] | None:
        """Documento do dono já lido neste request, se houver."""
        return self._accounts.get(owner_id)

    def __len__(self) -> int:
        return len(self._visible)


class VisibilityFilter:
    def __init__(self, store: DocumentStore):
        self._store = store

    def new_memo(self, viewer_id: str) -> PrivacyMemo:
        return PrivacyMemo(viewer_id)

    def _memo_for(self, viewer_id: str, memo: PrivacyMemo | None) -> PrivacyMemo:
        if memo is None:
            return PrivacyMemo(viewer_id)
        if memo.viewer_id != viewer_id:
            raise ValueError("PrivacyMemo pertence a outro viewer")
        return memo

    async def is_owner_visible(self, owner_id: str, memo: PrivacyMemo) -> bool:
        if owner_id == memo.viewer_id:
            return True
        if owner_id in memo:
            return memo[owner_id]

        memo.lookups += 1
        try:
            account = await self._store.get_doc(USERS, owner_id)
        except StoreError:
            log.warning(f"Privacidade de {owner_id} indisponível; conteúdo ocultado", exc_info=True)
            account = None
            visible = False
        else:
            visible = can_view_account(memo.viewer_id, account)

        memo.remember(owner_id, visible, account)
        return visible

    async def filter(
        self,
        items: Iterable[dict[str, Any]],
        viewer_id: str,
        *,
        memo: PrivacyMemo | None = None,
        exclude_own: bool = True,
        owner_key: str = "userId",
    ) -> list[dict[str, Any]]:
        """
        Mantém os itens cujo dono passa no PrivacyGate.

        Em superfícies de descoberta (`exclude_own=True`) os itens do
        próprio viewer são sempre removidos. Itens sem dono são removidos.
        """
        memo = self._memo_for(viewer_id, memo)
        visible = []

        for item in items:
            owner_id = item.get(owner_key)
            if not owner_id:
                continue
            if exclude_own and owner_id == viewer_id:
                continue
            if await self.is_owner_visible(owner_id, memo):
                visible.append(item)

        return visible

    async def filter_grouped(
        self,
        groups: Iterable[dict[str, Any]],
        viewer_id: str,
        *,
        memo: PrivacyMemo | None = None,
        exclude_own: bool = True,
        posts_key: str = "posts",
    ) -> list[dict[str, Any]]:
        """
        Filtra os posts dentro de cada grupo (tag, estilo), grava
        `publicPostCount` e descarta grupos que ficarem vazios.
        """
        memo = self._memo_for(viewer_id, memo)
        result = []

        for group in groups:
            posts = await self.filter(
                group.get(posts_key) or [],
                viewer_id,
                memo=memo,
                exclude_own=exclude_own,
            )
            if not posts:
                continue
            result.append({**group, posts_key: posts, "publicPostCount": len(posts)})

        return result

    async def annotate_users(
        self,
        users: Iterable[dict[str, Any]],
        viewer_id: str,
        *,
        memo: PrivacyMemo | None = None,
    ) -> list[dict[str, Any]]:
        """
        Listas de usuários: contas privadas continuam encontráveis (para
        permitir o pedido de follow); o que se marca é `canViewContent`,
        o estado do follow e o rótulo do botão. O próprio viewer é removido.

        Os documentos das contas já vêm no resultado da busca, então a
        única leitura extra é a do próprio viewer.
        """
        memo = self._memo_for(viewer_id, memo)
        try:
            viewer = await self._store.get_doc(USERS, viewer_id)
        except StoreError:
            log.warning(f"Conta {viewer_id} indisponível; estados de follow omitidos", exc_info=True)
            viewer = None

        followers = set((viewer or {}).get("followers") or [])
        result = []

        for user in users:
            user_id = user.get("id")
            if not user_id or user_id == viewer_id:
                continue

            visible = can_view_account(viewer_id, user)
            memo.remember(user_id, visible, user)

            state = derive_state(viewer, user)
            is_following_me = user_id in followers
            label = FollowGraphService.button_label(state, is_following_me)
            result.append(
                {
                    **user,
                    **state.as_flags(),
                    "isFollowingMe": is_following_me,
                    "canViewContent": visible,
                    "buttonLabel": {"text": label.text, "style": label.style},
                }
            )

        return result
