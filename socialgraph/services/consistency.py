"""
socialgraph/services/consistency.py

Limpeza em cascata dos dados derivados do viewer (bookmarks e entradas de
inspo boards) quando ele perde acesso ao conteúdo de uma conta privada.

Fluxo de `after_unfollow`:
0. Relê a conta do dono; se o viewer ainda tem acesso, para aqui
1. Lista os bookmarks do viewer e resolve o dono de cada post
   (campo `userId` do bookmark ou, na falta dele, leitura do post)
2. Apaga os bookmarks de posts do dono perdido, um delete por bookmark
3. Reescreve cada board que continha posts do dono com o restante
   e recalcula `postCount`

Não há transação entre as etapas: uma falha no meio deixa os bookmarks
limpos e os boards não (ou o contrário). Falhas por item ficam registradas
no CleanupReport e no log; nada é repetido automaticamente.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from socialgraph.exceptions import AccountNotFoundError, StoreError
from socialgraph.models.social import POSTS, USERS, boards_of, bookmarks_of
from socialgraph.services.privacy import can_view_account
from socialgraph.services.store import SERVER_TIMESTAMP, ArrayRemove, DocumentStore

log = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    viewer_id: str
    owner_id: str
    bookmarks_removed: list[str] = field(default_factory=list)
    board_entries_removed: dict[str, list[str]] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def as_dict(self) -> dict[str, Any]:
        return {
            "viewerId": self.viewer_id,
            "ownerId": self.owner_id,
            "bookmarksRemoved": self.bookmarks_removed,
            "boardEntriesRemoved": self.board_entries_removed,
            "failures": self.failures,
        }


class ConsistencyMaintainer:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def _owner_of(self, post_id: str, owners: dict[str, str | None]) -> str | None:
        if post_id not in owners:
            post = await self._store.get_doc(POSTS, post_id)
            owners[post_id] = post.get("userId") if post else None
        return owners[post_id]

    # ------------------------------------------------------------------
    # Perda de acesso a uma conta
    # ------------------------------------------------------------------

    async def after_unfollow(self, viewer_id: str, unfollowed_id: str) -> CleanupReport:
        """
        Remove bookmarks e entradas de boards do viewer que apontam para
        posts de `unfollowed_id`. Falhas ao listar propagam; falhas por
        item são registradas no relatório.

        Se o viewer ainda vê a conta (voltou a seguir, ou ela é pública),
        nada é apagado e o relatório volta vazio.
        """
        report = CleanupReport(viewer_id=viewer_id, owner_id=unfollowed_id)

        owner = await self._store.get_doc(USERS, unfollowed_id)
        if can_view_account(viewer_id, owner):
            log.info(f"Limpeza {viewer_id} ↛ {unfollowed_id} ignorada: acesso ainda permitido")
            return report

        owners: dict[str, str | None] = {}

        await self._purge_bookmarks(report, owners)
        await self._purge_boards(report, owners)

        log.info(
            f"Limpeza {viewer_id} ↛ {unfollowed_id}: "
            f"{len(report.bookmarks_removed)} bookmark(s), "
            f"{sum(len(v) for v in report.board_entries_removed.values())} entrada(s) de board, "
            f"{len(report.failures)} falha(s)"
        )
        return report

    async def _purge_bookmarks(self, report: CleanupReport, owners: dict[str, str | None]) -> None:
        collection = bookmarks_of(report.viewer_id)
        bookmarks = await self._store.query(collection)

        marked = []
        for bookmark in bookmarks:
            owner_id = bookmark.get("userId")
            if not owner_id:
                post_id = bookmark.get("postId") or bookmark["id"]
                try:
                    owner_id = await self._owner_of(post_id, owners)
                except StoreError:
                    log.warning(f"Dono do post {post_id} indisponível; bookmark mantido")
                    report.failures.append(f"bookmark:{bookmark['id']}")
                    continue
            if owner_id == report.owner_id:
                marked.append(bookmark["id"])

        for bookmark_id in marked:
            try:
                await self._store.delete_doc(collection, bookmark_id)
            except StoreError:
                log.error(f"Falha ao remover bookmark {bookmark_id} de {report.viewer_id}")
                report.failures.append(f"bookmark:{bookmark_id}")
                continue
            report.bookmarks_removed.append(bookmark_id)

    async def _purge_boards(self, report: CleanupReport, owners: dict[str, str | None]) -> None:
        collection = boards_of(report.viewer_id)
        boards = await self._store.query(collection)

        for board in boards:
            post_ids = board.get("posts") or []
            if not post_ids:
                continue

            keep, remove = [], []
            for post_id in post_ids:
                try:
                    owner_id = await self._owner_of(post_id, owners)
                except StoreError:
                    # Sem como confirmar o dono: a entrada fica
                    log.warning(f"Dono do post {post_id} indisponível; entrada mantida no board")
                    keep.append(post_id)
                    continue
                (remove if owner_id == report.owner_id else keep).append(post_id)

            if not remove:
                continue

            try:
                await self._store.update_doc(
                    collection,
                    board["id"],
                    {"posts": keep, "postCount": len(keep), "updatedAt": SERVER_TIMESTAMP},
                )
            except StoreError:
                log.error(f"Falha ao reescrever board {board['id']} de {report.viewer_id}")
                report.failures.append(f"board:{board['id']}")
                continue
            report.board_entries_removed[board["id"]] = remove

    async def after_privacy_change(self, account_id: str) -> list[CleanupReport]:
        """
        Conta passou a privada: aplica a limpeza para todo viewer que não
        é seguidor. Percorre todas as contas, então só roda sob demanda.
        """
        account = await self._store.get_doc(USERS, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        if not account.get("isPrivate"):
            return []

        followers = set(account.get("followers") or [])
        reports = []
        for user in await self._store.query(USERS):
            if user["id"] == account_id or user["id"] in followers:
                continue
            reports.append(await self.after_unfollow(user["id"], account_id))

        log.info(f"Varredura de privacidade de {account_id}: {len(reports)} conta(s) verificada(s)")
        return reports

    # ------------------------------------------------------------------
    # Verificações pontuais (abertura de post)
    # ------------------------------------------------------------------

    async def guard_post_access(self, viewer_id: str, post: dict[str, Any]) -> bool:
        """
        O viewer pode interagir (bookmark) com o post?

        Se o dono for privado e o viewer não o seguir, o bookmark existente
        do post é apagado na hora e a resposta é False.
        """
        owner_id = post.get("userId")
        if not owner_id or owner_id == viewer_id:
            return True

        try:
            owner = await self._store.get_doc(USERS, owner_id)
        except StoreError:
            log.warning(f"Privacidade de {owner_id} indisponível; bookmark bloqueado")
            return False

        if owner is None:
            return False
        if can_view_account(viewer_id, owner):
            return True

        collection = bookmarks_of(viewer_id)
        try:
            if await self._store.get_doc(collection, post["id"]) is not None:
                await self._store.delete_doc(collection, post["id"])
                log.info(f"Bookmark de {post['id']} removido: {owner_id} é privado e não seguido por {viewer_id}")
        except StoreError:
            log.error(f"Falha ao remover bookmark {post['id']} de {viewer_id}", exc_info=True)
        return False

    async def purge_deleted_post(self, viewer_id: str, post_id: str) -> int:
        """Post apagado: remove o bookmark e as entradas nos boards do viewer."""
        updated = 0
        try:
            await self._store.delete_doc(bookmarks_of(viewer_id), post_id)

            collection = boards_of(viewer_id)
            for board in await self._store.query(collection, [("posts", "array-contains", post_id)]):
                keep = [p for p in board.get("posts") or [] if p != post_id]
                await self._store.update_doc(
                    collection,
                    board["id"],
                    {
                        "posts": ArrayRemove(post_id),
                        "postCount": len(keep),
                        "updatedAt": SERVER_TIMESTAMP,
                    },
                )
                updated += 1
        except StoreError:
            log.error(f"Falha na limpeza do post apagado {post_id} para {viewer_id}", exc_info=True)
        return updated
