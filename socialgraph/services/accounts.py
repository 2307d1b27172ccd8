"""Cadastro e leitura de contas."""

import logging
from typing import Any

from socialgraph.exceptions import AccountNotFoundError, PreconditionError
from socialgraph.models.social import USERS
from socialgraph.services.store import SERVER_TIMESTAMP, DocumentStore

log = logging.getLogger(__name__)


class AccountService:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def register(
        self,
        account_id: str,
        display_name: str,
        username: str,
        is_private: bool = False,
        photo_url: str | None = None,
    ) -> dict[str, Any]:
        """Cria a conta com todos os conjuntos de arestas vazios."""
        if await self._store.get_doc(USERS, account_id) is not None:
            raise PreconditionError("This account already exists.")

        await self._store.set_doc(
            USERS,
            account_id,
            {
                "displayName": display_name,
                "username": username,
                "photoURL": photo_url,
                "isPrivate": is_private,
                "followers": [],
                "following": [],
                "pendingFollowRequests": [],
                "followedStyles": [],
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        log.info(f"Conta {account_id} (@{username}) criada")
        return await self.get(account_id)

    async def get(self, account_id: str) -> dict[str, Any]:
        account = await self._store.get_doc(USERS, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account
