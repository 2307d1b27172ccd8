"""Modelos de request/response da API HTTP."""

from typing import Any

from pydantic import BaseModel, Field

from socialgraph.models.social import FollowResult, FollowState


# ---------------------------------------------------------------------------
# Follow
# ---------------------------------------------------------------------------


class FollowFlags(BaseModel):
    """Estado atual do botão, como a UI o mantém."""

    isFollowing: bool = False
    hasRequestedFollow: bool = False


class FollowStatusResponse(BaseModel):
    state: FollowState
    isFollowing: bool
    hasRequestedFollow: bool
    isFollowingMe: bool
    canViewContent: bool
    buttonText: str
    buttonStyle: str


class FollowResultResponse(BaseModel):
    state: FollowState
    action: str
    isFollowing: bool
    hasRequestedFollow: bool

    @classmethod
    def from_result(cls, result: FollowResult) -> "FollowResultResponse":
        return cls(state=result.state, **result.as_dict())


# ---------------------------------------------------------------------------
# Contas e privacidade
# ---------------------------------------------------------------------------


class AccountCreate(BaseModel):
    id: str = Field(min_length=1, max_length=128)
    displayName: str
    username: str
    isPrivate: bool = False
    photoURL: str | None = None


class PrivacyUpdate(BaseModel):
    isPrivate: bool


class PrivacyResponse(BaseModel):
    success: bool
    isPrivate: bool


# ---------------------------------------------------------------------------
# Interações
# ---------------------------------------------------------------------------


class CommentCreate(BaseModel):
    text: str = Field(max_length=2000)


class BoardCreate(BaseModel):
    name: str = Field(max_length=120)


class BoardEntry(BaseModel):
    postId: str


# ---------------------------------------------------------------------------
# Manutenção
# ---------------------------------------------------------------------------


class ReconcileRequest(BaseModel):
    accountId: str
    otherId: str


class AfterUnfollowRequest(BaseModel):
    viewerId: str
    unfollowedId: str


class AcceptedResponse(BaseModel):
    queued: str
    detail: dict[str, Any] = Field(default_factory=dict)
