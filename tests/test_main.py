"""
Testes para socialgraph/main.py

Testa os endpoints HTTP diretamente via httpx.AsyncClient + ASGITransport,
com o engine trocado por um sobre o banco em memória.

Cobre:
- GET /health                               → 200 com {"status": "ok"}
- Sem X-User-Id                             → 401
- POST /accounts                            → 201; duplicada → 400
- GET /accounts/{id}                        → 404 para conta inexistente
- Fluxo de follow com conta privada         → requested → accepted → following
- Flags (True, True)                        → 400
- Self-follow                               → 400
- StoreError                                → 503 com mensagem de retry
- PartialTransitionError                    → 503 com etapas concluídas
- Bookmark de post privado não seguido      → 403
- Comentário vazio                          → 400 com a mensagem exibível
- Notificação de outro usuário              → 400
- /maintenance/*                            → 202 e tarefa na fila
- Lifespan: init_db e run_worker chamados no startup
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from socialgraph.exceptions import RETRY_PROMPT, StoreError
from socialgraph.services.queue import RepairKind


# ---------------------------------------------------------------------------
# Fixture do cliente de teste
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(engine):
    from socialgraph.dependencies import get_engine
    from socialgraph.main import api

    api.dependency_overrides[get_engine] = lambda: engine
    async with AsyncClient(
        transport=ASGITransport(app=api),
        base_url="https://socialgraph.test",
    ) as ac:
        yield ac
    api.dependency_overrides.clear()


def as_user(account_id):
    return {"X-User-Id": account_id}


# ---------------------------------------------------------------------------
# Health e autenticação
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_missing_viewer_header_returns_401(client):
    response = await client.get("/feed")

    assert response.status_code == 401
    assert response.json()["error"] == "NotAuthenticatedError"


# ---------------------------------------------------------------------------
# Contas
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_account(client):
    body = {"id": "alice", "displayName": "Alice", "username": "alice"}

    response = await client.post("/accounts", json=body)

    assert response.status_code == 201
    data = response.json()
    assert data["id"] == "alice"
    assert data["followers"] == []
    assert data["isPrivate"] is False

    duplicate = await client.post("/accounts", json=body)
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "This account already exists."


@pytest.mark.asyncio
async def test_unknown_account_returns_404(client):
    response = await client.get("/accounts/ninguem")

    assert response.status_code == 404
    assert response.json()["error"] == "AccountNotFoundError"


@pytest.mark.asyncio
async def test_update_privacy(client, make_account):
    await make_account("bob")

    response = await client.patch("/me/privacy", json={"isPrivate": True}, headers=as_user("bob"))

    assert response.status_code == 200
    assert response.json() == {"success": True, "isPrivate": True}


@pytest.mark.asyncio
async def test_can_view(client, make_account):
    await make_account("bob", is_private=True)

    response = await client.get("/accounts/bob/can-view", headers=as_user("alice"))

    assert response.json() == {"canViewContent": False}


# ---------------------------------------------------------------------------
# Follow
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_private_follow_flow(client, make_account):
    await make_account("alice")
    await make_account("bob", is_private=True)

    requested = await client.post("/accounts/bob/follow", json={}, headers=as_user("alice"))
    assert requested.status_code == 200
    assert requested.json()["state"] == "requested"
    assert requested.json()["hasRequestedFollow"] is True

    status_ = await client.get("/accounts/bob/follow-status", headers=as_user("alice"))
    assert status_.json()["buttonText"] == "Requested"
    assert status_.json()["canViewContent"] is False

    accepted = await client.post("/follow-requests/alice/accept", headers=as_user("bob"))
    assert accepted.json()["action"] == "accepted"

    status_ = await client.get("/accounts/bob/follow-status", headers=as_user("alice"))
    data = status_.json()
    assert data["state"] == "following"
    assert data["isFollowing"] is True
    assert data["buttonText"] == "Following"
    assert data["canViewContent"] is True


@pytest.mark.asyncio
async def test_follow_with_both_flags_returns_400(client, make_account):
    await make_account("alice")
    await make_account("bob")

    response = await client.post(
        "/accounts/bob/follow",
        json={"isFollowing": True, "hasRequestedFollow": True},
        headers=as_user("alice"),
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_self_follow_returns_400(client, make_account):
    await make_account("alice")

    response = await client.post("/accounts/alice/follow", json={}, headers=as_user("alice"))

    assert response.status_code == 400
    assert response.json()["error"] == "SelfFollowError"


@pytest.mark.asyncio
async def test_accept_without_request_returns_404(client, make_account):
    await make_account("bob", is_private=True)

    response = await client.post("/follow-requests/alice/accept", headers=as_user("bob"))

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_remove_follower(client, make_account, get_account):
    await make_account("alice", following=["bob"])
    await make_account("bob", followers=["alice"])

    response = await client.delete("/me/followers/alice", headers=as_user("bob"))

    assert response.json()["action"] == "removed"
    assert (await get_account("bob"))["followers"] == []


# ---------------------------------------------------------------------------
# Falhas do store
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_store_error_returns_503(client, engine):
    with patch.object(engine.store, "get_doc", AsyncMock(side_effect=StoreError("timeout"))):
        response = await client.get("/accounts/bob")

    assert response.status_code == 503
    assert response.json()["detail"] == RETRY_PROMPT


@pytest.mark.asyncio
async def test_partial_transition_returns_503_with_steps(client, engine, make_account):
    await make_account("alice")
    await make_account("bob")

    with patch.object(engine.notifications, "emit", AsyncMock(side_effect=StoreError("timeout"))):
        response = await client.post("/accounts/bob/follow", json={}, headers=as_user("alice"))

    assert response.status_code == 503
    data = response.json()
    assert data["workflow"] == "follow"
    assert data["failed_step"] == "notify_follow"
    assert data["completed_steps"] == ["add_following", "add_follower"]


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_bookmark_private_post_returns_403(client, make_account, make_post):
    await make_account("bob", is_private=True)
    await make_post("b1", "bob")

    response = await client.put("/posts/b1/bookmark", headers=as_user("alice"))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_like_and_interaction_state(client, make_account, make_post):
    await make_account("bob")
    await make_post("b1", "bob")

    liked = await client.post("/posts/b1/like", headers=as_user("alice"))
    assert liked.json() == {"isLiked": True, "likeCount": 1}

    state = await client.get("/posts/b1/interaction-state", headers=as_user("alice"))
    assert state.json()["isLiked"] is True


@pytest.mark.asyncio
async def test_deleted_post_returns_404(client):
    response = await client.get("/posts/ghost/interaction-state", headers=as_user("alice"))

    assert response.status_code == 404
    assert response.json()["detail"] == "Post deleted."


@pytest.mark.asyncio
async def test_empty_comment_returns_400(client, make_post):
    await make_post("b1", "bob")

    response = await client.post("/posts/b1/comments", json={"text": "  "}, headers=as_user("alice"))

    assert response.status_code == 400
    assert response.json()["detail"] == "Comment cannot be empty."


@pytest.mark.asyncio
async def test_board_flow(client, make_account, make_post):
    await make_account("bob")
    await make_post("b1", "bob")

    created = await client.post("/me/boards", json={"name": "Inverno"}, headers=as_user("alice"))
    assert created.status_code == 201
    board_id = created.json()["id"]

    added = await client.post(f"/me/boards/{board_id}/posts", json={"postId": "b1"}, headers=as_user("alice"))
    assert added.json()["postCount"] == 1

    bookmarks = await client.get("/me/bookmarks", headers=as_user("alice"))
    assert [b["postId"] for b in bookmarks.json()] == ["b1"]


# ---------------------------------------------------------------------------
# Notificações, estilos e busca
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mark_read_of_other_user_notification_returns_400(client, engine):
    from socialgraph.models.social import NotificationKind

    notification_id = await engine.notifications.emit(NotificationKind.FOLLOW, "alice", "bob")

    response = await client.post(f"/notifications/{notification_id}/read", headers=as_user("carol"))
    assert response.status_code == 400

    response = await client.post(f"/notifications/{notification_id}/read", headers=as_user("bob"))
    assert response.status_code == 204


@pytest.mark.asyncio
async def test_follow_style_and_list(client, make_account):
    await make_account("alice")

    response = await client.put("/styles/boho/follow", headers=as_user("alice"))
    assert response.json() == {"style": "boho", "isFollowing": True}

    styles = await client.get("/me/styles", headers=as_user("alice"))
    assert styles.json() == {"followedStyles": ["boho"]}


@pytest.mark.asyncio
async def test_search_requires_query(client):
    response = await client.get("/search", headers=as_user("alice"))

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_search_all(client, make_account, make_post):
    await make_account("alice")
    await make_account("pub", display_name="Denim Lover")
    await make_post("p1", "pub", caption="denim total")

    response = await client.get("/search", params={"q": "denim"}, headers=as_user("alice"))

    data = response.json()
    assert set(data) == {"users", "posts", "tags", "styles"}
    assert [p["id"] for p in data["posts"]] == ["p1"]


# ---------------------------------------------------------------------------
# Manutenção
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reconcile_is_queued(client):
    queue: asyncio.Queue = asyncio.Queue()

    with patch("socialgraph.main.repair_queue", queue):
        response = await client.post(
            "/maintenance/reconcile",
            json={"accountId": "alice", "otherId": "bob"},
            headers=as_user("alice"),
        )

    assert response.status_code == 202
    assert response.json()["queued"] == "reconcile_edge"
    task = queue.get_nowait()
    assert task.kind is RepairKind.RECONCILE_EDGE
    assert (task.account_id, task.other_id) == ("alice", "bob")


@pytest.mark.asyncio
async def test_privacy_sweep_is_queued_for_viewer(client):
    queue: asyncio.Queue = asyncio.Queue()

    with patch("socialgraph.main.repair_queue", queue):
        response = await client.post("/maintenance/privacy-sweep", headers=as_user("bob"))

    assert response.status_code == 202
    task = queue.get_nowait()
    assert task.kind is RepairKind.AFTER_PRIVACY_CHANGE
    assert task.account_id == "bob"


@pytest.mark.asyncio
async def test_after_unfollow_is_queued(client):
    queue: asyncio.Queue = asyncio.Queue()

    with patch("socialgraph.main.repair_queue", queue):
        response = await client.post(
            "/maintenance/after-unfollow",
            json={"viewerId": "alice", "unfollowedId": "bob"},
            headers=as_user("alice"),
        )

    assert response.status_code == 202
    assert queue.get_nowait().kind is RepairKind.AFTER_UNFOLLOW


# ---------------------------------------------------------------------------
# Lifespan: inicialização e shutdown
# ---------------------------------------------------------------------------

from asgi_lifespan import LifespanManager


@pytest.mark.asyncio
async def test_lifespan_calls_init_db():
    mock_init_db = AsyncMock()

    with (
        patch("socialgraph.database.init_db", mock_init_db),
        patch("workers.repair_worker.run_worker", AsyncMock()),
    ):
        from socialgraph.main import api

        async with LifespanManager(api):
            pass

    mock_init_db.assert_called_once()


@pytest.mark.asyncio
async def test_lifespan_starts_worker():
    mock_run_worker = AsyncMock()

    with (
        patch("socialgraph.database.init_db", AsyncMock()),
        patch("workers.repair_worker.run_worker", mock_run_worker),
    ):
        from socialgraph.main import api

        async with LifespanManager(api):
            pass

    mock_run_worker.assert_called_once()
