"""
socialgraph/services/styles.py

Follow de estilos (tags de estilo dos posts). O id do documento em
`styles` é o próprio nome do estilo; o documento é criado no primeiro follow.
"""

import logging
from typing import Any

from socialgraph.exceptions import NotAuthenticatedError, PreconditionError
from socialgraph.models.social import STYLES, USERS
from socialgraph.services.cache import TTLCache
from socialgraph.services.saga import Saga
from socialgraph.services.store import SERVER_TIMESTAMP, ArrayRemove, ArrayUnion, DocumentStore

log = logging.getLogger(__name__)


class StyleService:
    def __init__(self, store: DocumentStore, feed_cache: TTLCache | None = None):
        self._store = store
        self._feed_cache = feed_cache

    @staticmethod
    def _check(viewer_id: str | None, style: str) -> str:
        if not viewer_id:
            raise NotAuthenticatedError("You must be signed in to follow styles.")
        style = (style or "").strip()
        if not style or "/" in style:
            raise PreconditionError("Invalid style name.")
        return style

    async def follow_style(self, viewer_id: str | None, style: str) -> dict[str, Any]:
        style = self._check(viewer_id, style)
        existing = await self._store.get_doc(STYLES, style)

        saga = Saga("follow_style", f"{viewer_id} → {style}")
        saga.step(
            "add_followed_style",
            lambda: self._store.update_doc(USERS, viewer_id, {"followedStyles": ArrayUnion(style)}),
        )
        if existing is None:
            saga.step(
                "create_style",
                lambda: self._store.set_doc(
                    STYLES,
                    style,
                    {"style": style, "followers": [viewer_id], "createdAt": SERVER_TIMESTAMP},
                ),
            )
        else:
            saga.step(
                "add_style_follower",
                lambda: self._store.update_doc(STYLES, style, {"followers": ArrayUnion(viewer_id)}),
            )
        await saga.run()

        self._touch_feed(viewer_id)
        return {"style": style, "isFollowing": True}

    async def unfollow_style(self, viewer_id: str | None, style: str) -> dict[str, Any]:
        style = self._check(viewer_id, style)
        existing = await self._store.get_doc(STYLES, style)

        saga = Saga("unfollow_style", f"{viewer_id} → {style}")
        saga.step(
            "remove_followed_style",
            lambda: self._store.update_doc(USERS, viewer_id, {"followedStyles": ArrayRemove(style)}),
        )
        # Sem documento do estilo não há lista de seguidores a atualizar
        if existing is not None:
            saga.step(
                "remove_style_follower",
                lambda: self._store.update_doc(STYLES, style, {"followers": ArrayRemove(viewer_id)}),
            )
        await saga.run()

        self._touch_feed(viewer_id)
        return {"style": style, "isFollowing": False}

    async def followed_styles(self, viewer_id: str) -> list[str]:
        viewer = await self._store.get_doc(USERS, viewer_id)
        return list((viewer or {}).get("followedStyles") or [])

    async def is_following_style(self, viewer_id: str, style: str) -> bool:
        return style in await self.followed_styles(viewer_id)

    def _touch_feed(self, viewer_id: str) -> None:
        if self._feed_cache is not None:
            self._feed_cache.mark_stale_matching(lambda key: key[0] == viewer_id)
