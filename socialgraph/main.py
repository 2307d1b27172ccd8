import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, status

from socialgraph.dependencies import EngineDep, ViewerDep
from socialgraph.exceptions import (
    PartialTransitionError,
    PreconditionError,
    StoreError,
    partial_transition_handler,
    precondition_error_handler,
    store_error_handler,
    value_error_handler,
)
from socialgraph.schemas import (
    AcceptedResponse,
    AccountCreate,
    AfterUnfollowRequest,
    BoardCreate,
    BoardEntry,
    CommentCreate,
    FollowFlags,
    FollowResultResponse,
    FollowStatusResponse,
    PrivacyResponse,
    PrivacyUpdate,
    ReconcileRequest,
)
from socialgraph.services.follow import FollowGraphService
from socialgraph.services.queue import RepairKind, RepairTask, repair_queue

logging.basicConfig(level=logging.INFO)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    import socialgraph.database
    import workers.repair_worker
    await socialgraph.database.init_db()
    worker_task = asyncio.create_task(workers.repair_worker.run_worker())
    yield
    worker_task.cancel()


api = FastAPI(title="socialgraph", lifespan=lifespan)
api.add_exception_handler(PreconditionError, precondition_error_handler)
api.add_exception_handler(PartialTransitionError, partial_transition_handler)
api.add_exception_handler(StoreError, store_error_handler)
api.add_exception_handler(ValueError, value_error_handler)


@api.get("/health")
async def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Contas
# ---------------------------------------------------------------------------


@api.post("/accounts", status_code=status.HTTP_201_CREATED)
async def create_account(body: AccountCreate, engine: EngineDep):
    return await engine.accounts.register(
        body.id,
        body.displayName,
        body.username,
        is_private=body.isPrivate,
        photo_url=body.photoURL,
    )


@api.get("/accounts/{account_id}")
async def get_account(account_id: str, engine: EngineDep):
    return await engine.accounts.get(account_id)


@api.patch("/me/privacy", response_model=PrivacyResponse)
async def update_privacy(body: PrivacyUpdate, viewer: ViewerDep, engine: EngineDep):
    return await engine.privacy.set_privacy(viewer, body.isPrivate)


@api.get("/accounts/{account_id}/can-view")
async def can_view(account_id: str, viewer: ViewerDep, engine: EngineDep):
    return {"canViewContent": await engine.gate.can_view(viewer, account_id)}


# ---------------------------------------------------------------------------
# Follow
# ---------------------------------------------------------------------------


@api.get("/accounts/{account_id}/follow-status", response_model=FollowStatusResponse)
async def follow_status(account_id: str, viewer: ViewerDep, engine: EngineDep):
    state = await engine.follow_graph.status(viewer, account_id)
    is_following_me = await engine.follow_graph.is_following_back(viewer, account_id)
    label = FollowGraphService.button_label(state, is_following_me)
    return FollowStatusResponse(
        state=state,
        **state.as_flags(),
        isFollowingMe=is_following_me,
        canViewContent=await engine.gate.can_view(viewer, account_id),
        buttonText=label.text,
        buttonStyle=label.style,
    )


@api.post("/accounts/{account_id}/follow", response_model=FollowResultResponse)
async def follow(account_id: str, body: FollowFlags, viewer: ViewerDep, engine: EngineDep):
    """
    Botão de follow: o corpo traz o estado que a UI exibia. A resposta é o
    novo estado, que substitui a atualização otimista do cliente.
    """
    result = await engine.follow_graph.transition_flags(
        viewer, account_id, body.isFollowing, body.hasRequestedFollow
    )
    return FollowResultResponse.from_result(result)


@api.post("/accounts/{account_id}/follow-request/cancel", response_model=FollowResultResponse)
async def cancel_follow_request(account_id: str, viewer: ViewerDep, engine: EngineDep):
    result = await engine.follow_graph.cancel_request(viewer, account_id)
    return FollowResultResponse.from_result(result)


@api.post("/follow-requests/{requester_id}/accept", response_model=FollowResultResponse)
async def accept_follow_request(requester_id: str, viewer: ViewerDep, engine: EngineDep):
    result = await engine.follow_graph.accept_request(viewer, requester_id)
    return FollowResultResponse.from_result(result)


@api.post("/follow-requests/{requester_id}/decline", response_model=FollowResultResponse)
async def decline_follow_request(requester_id: str, viewer: ViewerDep, engine: EngineDep):
    result = await engine.follow_graph.decline_request(viewer, requester_id)
    return FollowResultResponse.from_result(result)


@api.delete("/me/followers/{follower_id}", response_model=FollowResultResponse)
async def remove_follower(follower_id: str, viewer: ViewerDep, engine: EngineDep):
    result = await engine.follow_graph.remove_follower(viewer, follower_id)
    return FollowResultResponse.from_result(result)


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


@api.get("/posts/{post_id}/interaction-state")
async def interaction_state(post_id: str, viewer: ViewerDep, engine: EngineDep):
    return await engine.interactions.interaction_state(viewer, post_id)


@api.post("/posts/{post_id}/like")
async def like(post_id: str, viewer: ViewerDep, engine: EngineDep):
    return await engine.interactions.like(viewer, post_id)


@api.delete("/posts/{post_id}/like")
async def unlike(post_id: str, viewer: ViewerDep, engine: EngineDep):
    return await engine.interactions.unlike(viewer, post_id)


@api.get("/posts/{post_id}/comments")
async def list_comments(post_id: str, viewer: ViewerDep, engine: EngineDep):
    return await engine.interactions.list_comments(post_id)


@api.post("/posts/{post_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(post_id: str, body: CommentCreate, viewer: ViewerDep, engine: EngineDep):
    return await engine.interactions.add_comment(viewer, post_id, body.text)


@api.delete("/posts/{post_id}/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(post_id: str, comment_id: str, viewer: ViewerDep, engine: EngineDep):
    await engine.interactions.delete_comment(viewer, post_id, comment_id)


@api.put("/posts/{post_id}/bookmark")
async def bookmark(post_id: str, viewer: ViewerDep, engine: EngineDep):
    return await engine.interactions.bookmark(viewer, post_id)


@api.delete("/posts/{post_id}/bookmark", status_code=status.HTTP_204_NO_CONTENT)
async def unbookmark(post_id: str, viewer: ViewerDep, engine: EngineDep):
    await engine.interactions.unbookmark(viewer, post_id)


@api.get("/me/bookmarks")
async def list_bookmarks(viewer: ViewerDep, engine: EngineDep):
    return await engine.interactions.list_bookmarks(viewer)


@api.get("/me/boards")
async def list_boards(viewer: ViewerDep, engine: EngineDep):
    return await engine.interactions.list_boards(viewer)


@api.post("/me/boards", status_code=status.HTTP_201_CREATED)
async def create_board(body: BoardCreate, viewer: ViewerDep, engine: EngineDep):
    return await engine.interactions.create_board(viewer, body.name)


@api.post("/me/boards/{board_id}/posts")
async def add_to_board(board_id: str, body: BoardEntry, viewer: ViewerDep, engine: EngineDep):
    return await engine.interactions.add_to_board(viewer, board_id, body.postId)


# ---------------------------------------------------------------------------
# Estilos
# ---------------------------------------------------------------------------


@api.put("/styles/{style}/follow")
async def follow_style(style: str, viewer: ViewerDep, engine: EngineDep):
    return await engine.styles.follow_style(viewer, style)


@api.delete("/styles/{style}/follow")
async def unfollow_style(style: str, viewer: ViewerDep, engine: EngineDep):
    return await engine.styles.unfollow_style(viewer, style)


@api.get("/me/styles")
async def followed_styles(viewer: ViewerDep, engine: EngineDep):
    return {"followedStyles": await engine.styles.followed_styles(viewer)}


# ---------------------------------------------------------------------------
# Notificações
# ---------------------------------------------------------------------------


@api.get("/notifications")
async def list_notifications(
    viewer: ViewerDep,
    engine: EngineDep,
    include_resolved: bool = Query(default=False, alias="includeResolved"),
):
    return await engine.notifications.list_for(viewer, include_resolved=include_resolved)


@api.post("/notifications/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_notification_read(notification_id: str, viewer: ViewerDep, engine: EngineDep):
    notification = await engine.notifications.get(notification_id)
    if notification is None or notification.get("recipientId") != viewer:
        raise PreconditionError("This notification no longer exists.")
    await engine.notifications.mark_read(notification_id)


# ---------------------------------------------------------------------------
# Feed, explore e busca
# ---------------------------------------------------------------------------


@api.get("/feed")
async def home_feed(viewer: ViewerDep, engine: EngineDep):
    return await engine.feed.home_feed(viewer)


@api.get("/explore")
async def explore(viewer: ViewerDep, engine: EngineDep):
    return await engine.feed.explore(viewer)


@api.get("/search")
async def search(viewer: ViewerDep, engine: EngineDep, q: str = Query(min_length=1)):
    return await engine.feed.search_all(viewer, q)


@api.get("/search/users")
async def search_users(viewer: ViewerDep, engine: EngineDep, q: str = Query(min_length=1)):
    return await engine.feed.search_users(viewer, q)


@api.get("/search/posts")
async def search_posts(viewer: ViewerDep, engine: EngineDep, q: str = Query(min_length=1)):
    return await engine.feed.search_posts(viewer, q)


@api.get("/search/tags")
async def search_tags(viewer: ViewerDep, engine: EngineDep, q: str = Query(min_length=1)):
    return await engine.feed.search_tags(viewer, q)


@api.get("/search/styles")
async def search_styles(viewer: ViewerDep, engine: EngineDep, q: str = Query(min_length=1)):
    return await engine.feed.search_styles(viewer, q)


# ---------------------------------------------------------------------------
# Manutenção
# ---------------------------------------------------------------------------


@api.post(
    "/maintenance/reconcile",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def reconcile(body: ReconcileRequest, viewer: ViewerDep):
    await repair_queue.put(RepairTask(RepairKind.RECONCILE_EDGE, body.accountId, body.otherId))
    log.info(f"Reconciliação {body.accountId} → {body.otherId} enfileirada por {viewer}")
    return AcceptedResponse(
        queued=RepairKind.RECONCILE_EDGE.value,
        detail={"accountId": body.accountId, "otherId": body.otherId},
    )


@api.post(
    "/maintenance/after-unfollow",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def after_unfollow(body: AfterUnfollowRequest, viewer: ViewerDep):
    await repair_queue.put(RepairTask(RepairKind.AFTER_UNFOLLOW, body.viewerId, body.unfollowedId))
    return AcceptedResponse(
        queued=RepairKind.AFTER_UNFOLLOW.value,
        detail={"viewerId": body.viewerId, "unfollowedId": body.unfollowedId},
    )


@api.post(
    "/maintenance/privacy-sweep",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def privacy_sweep(viewer: ViewerDep):
    """Limpeza explícita depois de tornar a própria conta privada."""
    await repair_queue.put(RepairTask(RepairKind.AFTER_PRIVACY_CHANGE, viewer))
    return AcceptedResponse(queued=RepairKind.AFTER_PRIVACY_CHANGE.value, detail={"accountId": viewer})
