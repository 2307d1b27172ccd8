"""
socialgraph/engine.py

Montagem do motor: um store, um cache de feed e os serviços que dependem
deles, todos compartilhando as mesmas instâncias.
"""

from dataclasses import dataclass

from socialgraph.config import settings
from socialgraph.services.accounts import AccountService
from socialgraph.services.cache import TTLCache
from socialgraph.services.consistency import ConsistencyMaintainer
from socialgraph.services.feed import FeedService
from socialgraph.services.follow import FollowGraphService
from socialgraph.services.interactions import InteractionService
from socialgraph.services.notifications import NotificationEmitter
from socialgraph.services.privacy import PrivacyGate, PrivacyService
from socialgraph.services.store import DocumentStore
from socialgraph.services.styles import StyleService
from socialgraph.services.visibility import VisibilityFilter


@dataclass
class Engine:
    store: DocumentStore
    feed_cache: TTLCache
    accounts: AccountService
    notifications: NotificationEmitter
    maintainer: ConsistencyMaintainer
    follow_graph: FollowGraphService
    gate: PrivacyGate
    privacy: PrivacyService
    visibility: VisibilityFilter
    feed: FeedService
    interactions: InteractionService
    styles: StyleService


def build_engine(
    store: DocumentStore | None = None,
    feed_cache: TTLCache | None = None,
) -> Engine:
    store = store or DocumentStore()
    if feed_cache is None:
        feed_cache = TTLCache(
            ttl_seconds=settings.feed_cache_ttl,
            max_entries=settings.feed_cache_max_entries,
        )

    notifications = NotificationEmitter(store)
    maintainer = ConsistencyMaintainer(store)
    visibility = VisibilityFilter(store)

    return Engine(
        store=store,
        feed_cache=feed_cache,
        accounts=AccountService(store),
        notifications=notifications,
        maintainer=maintainer,
        follow_graph=FollowGraphService(store, notifications, maintainer, feed_cache),
        gate=PrivacyGate(store),
        privacy=PrivacyService(store, feed_cache),
        visibility=visibility,
        feed=FeedService(
            store,
            visibility,
            feed_cache,
            explore_limit=settings.explore_limit,
            search_scan_limit=settings.search_scan_limit,
        ),
        interactions=InteractionService(store, notifications, maintainer),
        styles=StyleService(store, feed_cache),
    )
