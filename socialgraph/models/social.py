"""
socialgraph/models/social.py

Tipos de domínio do grafo social: estados de follow, resultados de
transição, tipos/status de notificação e os caminhos das coleções.
"""

from dataclasses import dataclass
from enum import Enum

# ---------------------------------------------------------------------------
# Coleções
# ---------------------------------------------------------------------------

USERS = "users"
POSTS = "posts"
NOTIFICATIONS = "notifications"
STYLES = "styles"


def bookmarks_of(account_id: str) -> str:
    return f"{USERS}/{account_id}/bookmarkedPosts"


def boards_of(account_id: str) -> str:
    return f"{USERS}/{account_id}/inspoBoards"


def comments_of(post_id: str) -> str:
    return f"{POSTS}/{post_id}/comments"


# ---------------------------------------------------------------------------
# Follow
# ---------------------------------------------------------------------------


class FollowState(str, Enum):
    """Estado de uma aresta dirigida viewer → target."""

    NONE = "none"
    REQUESTED = "requested"
    FOLLOWING = "following"

    @classmethod
    def from_flags(cls, is_following: bool, has_requested_follow: bool) -> "FollowState":
        """
        Converte o par de booleanos usado pela UI.
        (True, True) não é um estado alcançável e é rejeitado.
        """
        if is_following and has_requested_follow:
            raise ValueError("isFollowing e hasRequestedFollow não podem ser ambos verdadeiros")
        if is_following:
            return cls.FOLLOWING
        if has_requested_follow:
            return cls.REQUESTED
        return cls.NONE

    @property
    def is_following(self) -> bool:
        return self is FollowState.FOLLOWING

    @property
    def has_requested_follow(self) -> bool:
        return self is FollowState.REQUESTED

    def as_flags(self) -> dict[str, bool]:
        return {
            "isFollowing": self.is_following,
            "hasRequestedFollow": self.has_requested_follow,
        }


class FollowAction(str, Enum):
    FOLLOWED = "followed"
    REQUESTED = "requested"
    UNFOLLOWED = "unfollowed"
    CANCELLED = "cancelled"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    REMOVED = "removed"


@dataclass(frozen=True)
class FollowResult:
    state: FollowState
    action: FollowAction

    @property
    def is_following(self) -> bool:
        return self.state.is_following

    @property
    def has_requested_follow(self) -> bool:
        return self.state.has_requested_follow

    def as_dict(self) -> dict:
        return {**self.state.as_flags(), "action": self.action.value}


@dataclass(frozen=True)
class ButtonLabel:
    text: str
    style: str


# ---------------------------------------------------------------------------
# Notificações
# ---------------------------------------------------------------------------


class NotificationKind(str, Enum):
    FOLLOW = "follow"
    FOLLOW_REQUEST = "follow_request"
    FOLLOW_ACCEPTED = "follow_accepted"
    LIKE = "like"
    COMMENT = "comment"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    UNREAD = "unread"
    READ = "read"
    ACCEPTED = "accepted"
    DECLINED = "declined"
