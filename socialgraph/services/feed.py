"""
socialgraph/services/feed.py

Superfícies de leitura: feed da home (Following, Friends, Styles), explore
e buscas. Toda lista de posts passa pelo VisibilityFilter antes de sair.

A home e o explore ficam em um TTLCache injetado, com chave
(viewer_id, superfície). Transições de follow e mudanças de privacidade
invalidam as entradas explicitamente.
"""

import logging
from typing import Any, Iterable

from socialgraph.models.social import POSTS, USERS
from socialgraph.services.cache import TTLCache
from socialgraph.services.visibility import PrivacyMemo, VisibilityFilter
from socialgraph.services.store import DocumentStore

log = logging.getLogger(__name__)

HOME_TABS = ("following", "friends", "styles")


def search_terms(text: str) -> list[str]:
    return (text or "").lower().split()


def _matches_any(terms: list[str], *fields: str | None) -> bool:
    values = [(field or "").lower() for field in fields]
    return any(term in value for term in terms for value in values)


def _tag_matches(tag: dict[str, Any], text: str, terms: list[str]) -> bool:
    brand = (tag.get("brand") or "").lower()
    product = (tag.get("productName") or "").lower()
    clean = text.lower().strip()
    if clean in (brand, product, f"{brand} {product}".strip()):
        return True
    return _matches_any(terms, brand, product)


def _post_summary(post: dict[str, Any]) -> dict[str, Any]:
    return {"id": post["id"], "imageUrl": post.get("imageUrl"), "userId": post.get("userId")}


class FeedService:
    def __init__(
        self,
        store: DocumentStore,
        visibility: VisibilityFilter,
        cache: TTLCache,
        explore_limit: int = 60,
        search_scan_limit: int = 100,
    ):
        self._store = store
        self._visibility = visibility
        self._cache = cache
        self._explore_limit = explore_limit
        self._search_scan_limit = search_scan_limit

    # ------------------------------------------------------------------
    # Home
    # ------------------------------------------------------------------

    async def home_feed(self, viewer_id: str) -> dict[str, list[dict[str, Any]]]:
        """
        As três abas da home em uma só passada. Friends são contas que o
        viewer segue e que o seguem de volta.
        """
        key = (viewer_id, "home")
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        viewer = await self._store.get_doc(USERS, viewer_id) or {}
        following = viewer.get("following") or []
        followers = set(viewer.get("followers") or [])
        followed_styles = viewer.get("followedStyles") or []
        memo = self._visibility.new_memo(viewer_id)

        following_posts: list[dict[str, Any]] = []
        if following:
            posts = await self._store.query(
                POSTS,
                [("userId", "in", following)],
                order_by=[("createdAt", "desc")],
            )
            following_posts = self._enrich(
                await self._visibility.filter(posts, viewer_id, memo=memo), memo
            )

        mutual = {account_id for account_id in following if account_id in followers}
        friends_posts = [post for post in following_posts if post["userId"] in mutual]

        styles_posts: list[dict[str, Any]] = []
        if followed_styles:
            posts = await self._store.query(
                POSTS,
                [("styles", "array-contains-any", followed_styles)],
                order_by=[("createdAt", "desc")],
            )
            styles_posts = self._enrich(
                await self._visibility.filter(posts, viewer_id, memo=memo), memo
            )

        feed = {"following": following_posts, "friends": friends_posts, "styles": styles_posts}
        self._cache.set(key, feed)
        log.info(
            f"Home de {viewer_id}: {len(following_posts)} following, {len(friends_posts)} friends, "
            f"{len(styles_posts)} styles ({memo.lookups} leitura(s) de privacidade)"
        )
        return feed

    async def following_feed(self, viewer_id: str) -> list[dict[str, Any]]:
        return (await self.home_feed(viewer_id))["following"]

    async def friends_feed(self, viewer_id: str) -> list[dict[str, Any]]:
        return (await self.home_feed(viewer_id))["friends"]

    async def styles_feed(self, viewer_id: str) -> list[dict[str, Any]]:
        return (await self.home_feed(viewer_id))["styles"]

    # ------------------------------------------------------------------
    # Explore
    # ------------------------------------------------------------------

    async def explore(self, viewer_id: str) -> list[dict[str, Any]]:
        key = (viewer_id, "explore")
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        posts = await self._store.query(
            POSTS,
            [("userId", "!=", viewer_id)],
            order_by=[("createdAt", "desc")],
            limit=self._explore_limit,
        )
        memo = self._visibility.new_memo(viewer_id)
        visible = self._enrich(await self._visibility.filter(posts, viewer_id, memo=memo), memo)

        self._cache.set(key, visible)
        return visible

    # ------------------------------------------------------------------
    # Busca
    # ------------------------------------------------------------------

    async def _scan_posts(self, order_by: Iterable = ()) -> list[dict[str, Any]]:
        return await self._store.query(POSTS, order_by=list(order_by), limit=self._search_scan_limit)

    async def search_posts(
        self,
        viewer_id: str,
        text: str,
        memo: PrivacyMemo | None = None,
    ) -> list[dict[str, Any]]:
        """Posts cuja legenda ou tag (marca / produto) contém algum termo."""
        terms = search_terms(text)
        if not terms:
            return []

        matches = [
            post
            for post in await self._scan_posts([("createdAt", "desc")])
            if _matches_any(terms, post.get("caption"))
            or any(_tag_matches(tag, text, terms) for tag in post.get("tags") or [])
        ]
        if memo is None:
            memo = self._visibility.new_memo(viewer_id)
        return self._enrich(await self._visibility.filter(matches, viewer_id, memo=memo), memo)

    async def search_tags(
        self,
        viewer_id: str,
        text: str,
        memo: PrivacyMemo | None = None,
    ) -> list[dict[str, Any]]:
        """Tags agrupadas por `marca:produto`, cada uma com os posts visíveis."""
        terms = search_terms(text)
        if not terms:
            return []

        groups: dict[str, dict[str, Any]] = {}
        for post in await self._scan_posts():
            for tag in post.get("tags") or []:
                if not tag.get("brand") and not tag.get("productName"):
                    continue
                if not _tag_matches(tag, text, terms):
                    continue
                key = f"{(tag.get('brand') or '').lower()}:{(tag.get('productName') or '').lower()}"
                group = groups.setdefault(
                    key,
                    {
                        "key": key,
                        "tag": {
                            **tag,
                            "brand": tag.get("brand") or "",
                            "productName": tag.get("productName") or "",
                        },
                        "posts": [],
                    },
                )
                if all(p["id"] != post["id"] for p in group["posts"]):
                    group["posts"].append(_post_summary(post))

        return await self._visibility.filter_grouped(groups.values(), viewer_id, memo=memo)

    async def search_styles(
        self,
        viewer_id: str,
        text: str,
        memo: PrivacyMemo | None = None,
    ) -> list[dict[str, Any]]:
        """Estilos agrupados pelo nome em minúsculas, com `isFollowing` do viewer."""
        terms = search_terms(text)
        if not terms:
            return []

        groups: dict[str, dict[str, Any]] = {}
        for post in await self._scan_posts():
            for style in post.get("styles") or []:
                if not style or not _matches_any(terms, style):
                    continue
                group = groups.setdefault(
                    style.lower(), {"style": style, "styleLowercase": style.lower(), "posts": []}
                )
                group["posts"].append(_post_summary(post))

        visible = await self._visibility.filter_grouped(groups.values(), viewer_id, memo=memo)

        viewer = await self._store.get_doc(USERS, viewer_id) or {}
        followed = set(viewer.get("followedStyles") or [])
        return [{**group, "isFollowing": group["style"] in followed} for group in visible]

    async def search_users(
        self,
        viewer_id: str,
        text: str,
        memo: PrivacyMemo | None = None,
    ) -> list[dict[str, Any]]:
        terms = search_terms(text)
        if not terms:
            return []

        users = [
            user
            for user in await self._store.query(USERS, limit=self._search_scan_limit)
            if _matches_any(terms, user.get("displayName"), user.get("username"))
        ]
        return await self._visibility.annotate_users(users, viewer_id, memo=memo)

    async def search_all(self, viewer_id: str, text: str) -> dict[str, list[dict[str, Any]]]:
        """As quatro buscas compartilhando o mesmo memo de privacidade."""
        memo = self._visibility.new_memo(viewer_id)
        return {
            "users": await self.search_users(viewer_id, text, memo=memo),
            "posts": await self.search_posts(viewer_id, text, memo=memo),
            "tags": await self.search_tags(viewer_id, text, memo=memo),
            "styles": await self.search_styles(viewer_id, text, memo=memo),
        }

    # ------------------------------------------------------------------
    # Auxiliares
    # ------------------------------------------------------------------

    def invalidate(self, viewer_id: str | None = None) -> None:
        if viewer_id is None:
            self._cache.mark_stale()
        else:
            self._cache.mark_stale_matching(lambda key: key[0] == viewer_id)

    @staticmethod
    def _enrich(posts: list[dict[str, Any]], memo: PrivacyMemo) -> list[dict[str, Any]]:
        enriched = []
        for post in posts:
            owner = memo.account(post["userId"]) or {}
            enriched.append(
                {
                    **post,
                    "userDisplayName": owner.get("displayName") or "Unknown",
                    "userPhotoURL": owner.get("photoURL"),
                }
            )
        return enriched
