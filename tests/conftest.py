"""
Fixtures compartilhadas entre todos os testes.
"""

from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


# ---------------------------------------------------------------------------
# Configuração Dynaconf isolada para testes
# Usa monkeypatch para sobrescrever os atributos sem tocar em arquivos .toml
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def patch_settings(monkeypatch):
    """
    Sobrescreve as settings do Dynaconf com valores de teste.
    `autouse=True` garante que nenhum teste dependa do settings.toml local.
    """
    from socialgraph import config

    monkeypatch.setattr(config.settings, "feed_cache_ttl", 60)
    monkeypatch.setattr(config.settings, "feed_cache_max_entries", 64)
    monkeypatch.setattr(config.settings, "explore_limit", 60)
    monkeypatch.setattr(config.settings, "search_scan_limit", 100)


# ---------------------------------------------------------------------------
# Banco em memória: StaticPool mantém uma única conexão, então todas as
# sessões enxergam o mesmo banco
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    from socialgraph.database import Base
    from socialgraph.models import document  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(bind=test_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def store(test_session_factory):
    from socialgraph.services.store import DocumentStore

    return DocumentStore(test_session_factory)


@pytest.fixture
def feed_cache():
    from socialgraph.services.cache import TTLCache

    return TTLCache(ttl_seconds=60, max_entries=64)


@pytest.fixture
def engine(store, feed_cache):
    """Motor completo sobre o banco em memória."""
    from socialgraph.engine import build_engine

    return build_engine(store=store, feed_cache=feed_cache)


# ---------------------------------------------------------------------------
# Factories de documentos
# ---------------------------------------------------------------------------


@pytest.fixture
def make_account(store):
    """Factory que grava uma conta com os conjuntos de arestas informados."""

    async def _make(
        account_id: str,
        is_private: bool = False,
        followers: list[str] | None = None,
        following: list[str] | None = None,
        pending: list[str] | None = None,
        followed_styles: list[str] | None = None,
        display_name: str | None = None,
    ) -> dict[str, Any]:
        from socialgraph.models.social import USERS

        data = {
            "displayName": display_name or account_id.capitalize(),
            "username": account_id,
            "photoURL": None,
            "isPrivate": is_private,
            "followers": followers or [],
            "following": following or [],
            "pendingFollowRequests": pending or [],
            "followedStyles": followed_styles or [],
        }
        await store.set_doc(USERS, account_id, data)
        return {**data, "id": account_id}

    return _make


@pytest.fixture
def make_post(store):
    """Factory de posts; `created_at` controla a ordem nos feeds."""

    async def _make(
        post_id: str,
        owner_id: str,
        created_at: str = "2024-01-01T00:00:00+00:00",
        caption: str = "",
        tags: list[dict] | None = None,
        styles: list[str] | None = None,
    ) -> dict[str, Any]:
        from socialgraph.models.social import POSTS

        data = {
            "userId": owner_id,
            "imageUrl": f"https://img.test/{post_id}.jpg",
            "caption": caption,
            "tags": tags or [],
            "styles": styles or [],
            "likedBy": [],
            "likeCount": 0,
            "commentsCount": 0,
            "createdAt": created_at,
        }
        await store.set_doc(POSTS, post_id, data)
        return {**data, "id": post_id}

    return _make


@pytest.fixture
def make_bookmark(store):
    """Bookmark denormalizado; `with_owner=False` omite o `userId`."""

    async def _make(viewer_id: str, post_id: str, owner_id: str, with_owner: bool = True):
        from socialgraph.models.social import bookmarks_of

        data = {"postId": post_id, "bookmarkedAt": "2024-01-02T00:00:00+00:00"}
        if with_owner:
            data["userId"] = owner_id
        await store.set_doc(bookmarks_of(viewer_id), post_id, data)

    return _make


@pytest.fixture
def make_board(store):
    async def _make(viewer_id: str, board_id: str, post_ids: list[str], name: str = "Board"):
        from socialgraph.models.social import boards_of

        await store.set_doc(
            boards_of(viewer_id),
            board_id,
            {
                "name": name,
                "posts": list(post_ids),
                "postCount": len(post_ids),
                "createdAt": "2024-01-01T00:00:00+00:00",
            },
        )

    return _make


@pytest.fixture
def get_account(store):
    async def _get(account_id: str) -> dict[str, Any]:
        from socialgraph.models.social import USERS

        return await store.get_doc(USERS, account_id)

    return _get
