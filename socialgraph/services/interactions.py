"""
socialgraph/services/interactions.py

Interações com posts: like, comentário, bookmark e inspo boards.

Contadores (`likeCount`, `commentsCount`) são incrementos independentes da
escrita principal e podem divergir da lista real. Notificações são efeito
colateral: falhar ao criá-las ou removê-las não desfaz a interação.
"""

import logging
from typing import Any

from socialgraph.exceptions import (
    PostNotFoundError,
    PreconditionError,
    PrivateContentError,
    StoreError,
)
from socialgraph.models.social import (
    POSTS,
    USERS,
    NotificationKind,
    NotificationStatus,
    boards_of,
    bookmarks_of,
    comments_of,
)
from socialgraph.services.consistency import ConsistencyMaintainer
from socialgraph.services.notifications import NotificationEmitter
from socialgraph.services.store import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    DocumentStore,
    Increment,
    now_iso,
)

log = logging.getLogger(__name__)

COMMENT_PREVIEW_LENGTH = 50


def comment_preview(text: str) -> str:
    if len(text) > COMMENT_PREVIEW_LENGTH:
        return f"{text[:COMMENT_PREVIEW_LENGTH - 3]}..."
    return text


class InteractionService:
    def __init__(
        self,
        store: DocumentStore,
        notifications: NotificationEmitter,
        maintainer: ConsistencyMaintainer,
    ):
        self._store = store
        self._notifications = notifications
        self._maintainer = maintainer

    async def _get_post(self, post_id: str) -> dict[str, Any]:
        post = await self._store.get_doc(POSTS, post_id)
        if post is None:
            raise PostNotFoundError(post_id)
        return post

    async def _sender_payload(self, viewer_id: str) -> dict[str, Any]:
        viewer = await self._store.get_doc(USERS, viewer_id) or {}
        return {
            "senderName": viewer.get("displayName") or "User",
            "senderPhoto": viewer.get("photoURL"),
        }

    # ------------------------------------------------------------------
    # Likes
    # ------------------------------------------------------------------

    async def like(self, viewer_id: str, post_id: str) -> dict[str, Any]:
        post = await self._get_post(post_id)
        if viewer_id in (post.get("likedBy") or []):
            return {"isLiked": True, "likeCount": post.get("likeCount", 0)}

        await self._store.update_doc(
            POSTS, post_id, {"likedBy": ArrayUnion(viewer_id), "likeCount": Increment(1)}
        )

        owner_id = post.get("userId")
        if owner_id and owner_id != viewer_id:
            try:
                await self._notifications.emit_unique(
                    NotificationKind.LIKE,
                    viewer_id,
                    owner_id,
                    match={"postId": post_id},
                    payload=await self._sender_payload(viewer_id),
                    status=NotificationStatus.UNREAD,
                )
            except StoreError:
                log.error(f"Falha ao notificar like de {viewer_id} em {post_id}", exc_info=True)

        return {"isLiked": True, "likeCount": (post.get("likeCount") or 0) + 1}

    async def unlike(self, viewer_id: str, post_id: str) -> dict[str, Any]:
        post = await self._get_post(post_id)
        if viewer_id not in (post.get("likedBy") or []):
            return {"isLiked": False, "likeCount": post.get("likeCount", 0)}

        await self._store.update_doc(
            POSTS, post_id, {"likedBy": ArrayRemove(viewer_id), "likeCount": Increment(-1)}
        )

        try:
            await self._notifications.retract(
                [
                    ("postId", "==", post_id),
                    ("senderId", "==", viewer_id),
                    ("type", "==", NotificationKind.LIKE.value),
                ]
            )
        except StoreError:
            log.error(f"Falha ao remover notificação de like de {viewer_id} em {post_id}", exc_info=True)

        return {"isLiked": False, "likeCount": max(0, (post.get("likeCount") or 0) - 1)}

    # ------------------------------------------------------------------
    # Comentários
    # ------------------------------------------------------------------

    async def add_comment(self, viewer_id: str, post_id: str, text: str) -> dict[str, Any]:
        text = (text or "").strip()
        if not text:
            raise PreconditionError("Comment cannot be empty.")

        post = await self._get_post(post_id)
        viewer = await self._store.get_doc(USERS, viewer_id) or {}

        comment = {
            "userId": viewer_id,
            "username": viewer.get("username") or "User",
            "displayName": viewer.get("displayName") or "User",
            "photoURL": viewer.get("photoURL"),
            "comment": text,
            "createdAt": SERVER_TIMESTAMP,
        }
        comment_id = await self._store.add_doc(comments_of(post_id), comment)
        await self._store.update_doc(POSTS, post_id, {"commentsCount": Increment(1)})

        owner_id = post.get("userId")
        if owner_id and owner_id != viewer_id:
            try:
                await self._notifications.emit(
                    NotificationKind.COMMENT,
                    viewer_id,
                    owner_id,
                    payload={
                        "senderName": comment["displayName"],
                        "senderPhoto": comment["photoURL"],
                        "postId": post_id,
                        "commentId": comment_id,
                        "commentPreview": comment_preview(text),
                    },
                    status=NotificationStatus.UNREAD,
                )
            except StoreError:
                log.error(f"Falha ao notificar comentário {comment_id}", exc_info=True)

        return {"id": comment_id, **comment, "createdAt": now_iso()}

    async def delete_comment(self, viewer_id: str, post_id: str, comment_id: str) -> None:
        """Apenas o autor do comentário ou o dono do post podem apagar."""
        post = await self._get_post(post_id)
        comment = await self._store.get_doc(comments_of(post_id), comment_id)
        if comment is None:
            raise PreconditionError("This comment no longer exists.")
        if viewer_id not in (comment.get("userId"), post.get("userId")):
            raise PreconditionError("You can only delete your own comments.")

        await self._store.delete_doc(comments_of(post_id), comment_id)
        await self._store.update_doc(POSTS, post_id, {"commentsCount": Increment(-1)})

        try:
            await self._notifications.retract(
                [
                    ("commentId", "==", comment_id),
                    ("type", "==", NotificationKind.COMMENT.value),
                ]
            )
        except StoreError:
            log.error(f"Falha ao remover notificação do comentário {comment_id}", exc_info=True)

    async def list_comments(self, post_id: str) -> list[dict[str, Any]]:
        return await self._store.query(comments_of(post_id), order_by=[("createdAt", "desc")])

    # ------------------------------------------------------------------
    # Bookmarks e inspo boards
    # ------------------------------------------------------------------

    async def bookmark(self, viewer_id: str, post_id: str) -> dict[str, Any]:
        """
        Grava um snapshot do post nos bookmarks do viewer. Recusado, sem
        escrita, se o dono for privado e não seguido pelo viewer.
        """
        post = await self._get_post(post_id)
        if not await self._maintainer.guard_post_access(viewer_id, post):
            raise PrivateContentError()

        collection = bookmarks_of(viewer_id)
        existing = await self._store.get_doc(collection, post_id)
        if existing is not None:
            return existing

        data = {
            "postId": post_id,
            "userId": post.get("userId"),
            "imageUrl": post.get("imageUrl"),
            "caption": post.get("caption"),
            "createdAt": post.get("createdAt"),
            "bookmarkedAt": now_iso(),
        }
        await self._store.set_doc(collection, post_id, data)
        return {**data, "id": post_id}

    async def unbookmark(self, viewer_id: str, post_id: str) -> None:
        await self._store.delete_doc(bookmarks_of(viewer_id), post_id)

    async def list_bookmarks(self, viewer_id: str) -> list[dict[str, Any]]:
        return await self._store.query(bookmarks_of(viewer_id), order_by=[("bookmarkedAt", "desc")])

    async def create_board(self, viewer_id: str, name: str) -> dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise PreconditionError("Please enter a board name")

        data = {
            "name": name,
            "posts": [],
            "postCount": 0,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        board_id = await self._store.add_doc(boards_of(viewer_id), data)
        log.info(f"Board '{name}' ({board_id}) criado por {viewer_id}")
        return await self._store.get_doc(boards_of(viewer_id), board_id)

    async def list_boards(self, viewer_id: str) -> list[dict[str, Any]]:
        return await self._store.query(boards_of(viewer_id), order_by=[("createdAt", "desc")])

    async def add_to_board(self, viewer_id: str, board_id: str, post_id: str) -> dict[str, Any]:
        """Garante o bookmark do post e o acrescenta ao board."""
        await self.bookmark(viewer_id, post_id)

        collection = boards_of(viewer_id)
        board = await self._store.get_doc(collection, board_id)
        if board is None:
            raise PreconditionError("This board no longer exists.")

        posts = board.get("posts") or []
        if post_id in posts:
            raise PreconditionError("This post is already in this board")

        posts = [*posts, post_id]
        await self._store.update_doc(
            collection,
            board_id,
            {"posts": posts, "postCount": len(posts), "updatedAt": SERVER_TIMESTAMP},
        )
        return {**board, "posts": posts, "postCount": len(posts)}

    # ------------------------------------------------------------------
    # Abertura de post
    # ------------------------------------------------------------------

    async def interaction_state(self, viewer_id: str, post_id: str) -> dict[str, Any]:
        """
        Estado dos botões ao abrir um post. Post apagado: limpa o bookmark e
        as entradas de board do viewer antes de recusar.
        """
        post = await self._store.get_doc(POSTS, post_id)
        if post is None:
            await self._maintainer.purge_deleted_post(viewer_id, post_id)
            raise PostNotFoundError(post_id)

        can_bookmark = await self._maintainer.guard_post_access(viewer_id, post)
        is_bookmarked = False
        if can_bookmark:
            is_bookmarked = await self._store.get_doc(bookmarks_of(viewer_id), post_id) is not None

        return {
            "postId": post_id,
            "isLiked": viewer_id in (post.get("likedBy") or []),
            "isBookmarked": is_bookmarked,
            "likeCount": post.get("likeCount") or 0,
            "commentsCount": post.get("commentsCount") or 0,
            "canBookmark": can_bookmark,
        }
