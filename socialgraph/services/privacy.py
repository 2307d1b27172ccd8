"""
socialgraph/services/privacy.py

Regras de privacidade de conta.

- `can_view_account`: predicado puro sobre o documento da conta alvo
- `PrivacyGate`: busca a conta e aplica o predicado (sem cache)
- `PrivacyService`: alterna o modo público/privado da própria conta
"""

import logging
from typing import Any

from socialgraph.exceptions import StoreError
from socialgraph.models.social import USERS
from socialgraph.services.cache import TTLCache
from socialgraph.services.store import DocumentStore

log = logging.getLogger(__name__)


def can_view_account(viewer_id: str | None, account: dict[str, Any] | None) -> bool:
    """
    O viewer pode ver o conteúdo não público da conta?

    Verdadeiro para a própria conta, para contas públicas e, em contas
    privadas, apenas para quem está em `followers`. Conta inexistente → False.
    """
    if account is None:
        return False
    if viewer_id is not None and viewer_id == account.get("id"):
        return True
    if not account.get("isPrivate", False):
        return True
    if viewer_id is None:
        return False
    return viewer_id in (account.get("followers") or [])


class PrivacyGate:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def can_view(self, viewer_id: str | None, target_id: str) -> bool:
        if viewer_id is not None and viewer_id == target_id:
            return True

        try:
            account = await self._store.get_doc(USERS, target_id)
        except StoreError:
            # Falha na consulta conta como conta privada
            log.warning(f"Privacidade de {target_id} indisponível; acesso negado a {viewer_id}")
            return False

        return can_view_account(viewer_id, account)


class PrivacyService:
    def __init__(self, store: DocumentStore, feed_cache: TTLCache | None = None):
        self._store = store
        self._feed_cache = feed_cache

    async def set_privacy(self, account_id: str, is_private: bool) -> dict[str, Any]:
        """
        Alterna o modo da conta. Não altera arestas nem dispara limpeza:
        ConsistencyMaintainer.after_privacy_change é chamado explicitamente.
        """
        await self._store.update_doc(USERS, account_id, {"isPrivate": is_private})

        # Feeds de qualquer viewer podem conter posts desta conta
        if self._feed_cache is not None:
            self._feed_cache.mark_stale()

        log.info(f"Conta {account_id} agora é {'privada' if is_private else 'pública'}")
        return {"success": True, "isPrivate": is_private}
