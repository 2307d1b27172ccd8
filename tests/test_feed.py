"""
Testes para socialgraph/services/feed.py

Cobre:
- Home: abas Following, Friends (mútuos) e Styles, ordenadas por createdAt
- Aresta pela metade para conta privada não libera o feed
- Posts enriquecidos com nome e foto do autor
- Explore: sem posts próprios nem privados não seguidos; limite
- Cache por (viewer, superfície) e invalidação
- Buscas: posts por legenda/tag, tags agrupadas, estilos, usuários
- search_all sem releitura das contas já vistas
"""

from unittest.mock import patch

import pytest

from socialgraph.services.feed import search_terms


@pytest.fixture
def feed(engine):
    return engine.feed


def _ids(posts):
    return [post["id"] for post in posts]


# ---------------------------------------------------------------------------
# Home
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_home_tabs(feed, make_account, make_post):
    await make_account("viewer", following=["bob", "carol"], followers=["carol"], followed_styles=["boho"])
    await make_account("bob", followers=["viewer"], display_name="Bob B")
    await make_account("carol", is_private=True, followers=["viewer"], following=["viewer"])
    await make_account("dave")
    await make_post("b1", "bob", created_at="2024-01-01")
    await make_post("c1", "carol", created_at="2024-01-03")
    await make_post("b2", "bob", created_at="2024-01-02")
    await make_post("d1", "dave", created_at="2024-01-04", styles=["boho"])
    await make_post("v1", "viewer", created_at="2024-01-05", styles=["boho"])

    home = await feed.home_feed("viewer")

    assert _ids(home["following"]) == ["c1", "b2", "b1"]
    assert _ids(home["friends"]) == ["c1"]
    assert _ids(home["styles"]) == ["d1"]
    assert home["following"][1]["userDisplayName"] == "Bob B"


@pytest.mark.asyncio
async def test_home_hides_private_account_with_half_edge(feed, make_account, make_post):
    # viewer → priv escrito só de um lado: sem acesso
    await make_account("viewer", following=["priv"])
    await make_account("priv", is_private=True)
    await make_post("p1", "priv")

    assert await feed.following_feed("viewer") == []


@pytest.mark.asyncio
async def test_home_without_follows_is_empty(feed, make_account, make_post):
    await make_account("viewer")
    await make_post("b1", "bob")

    assert await feed.home_feed("viewer") == {"following": [], "friends": [], "styles": []}


@pytest.mark.asyncio
async def test_home_is_cached_until_invalidated(feed, store, make_account, make_post):
    await make_account("viewer", following=["bob"])
    await make_account("bob", followers=["viewer"])
    await make_post("b1", "bob", created_at="2024-01-01")

    await feed.home_feed("viewer")
    await make_post("b2", "bob", created_at="2024-01-02")

    with patch.object(store, "query", wraps=store.query) as query:
        cached = await feed.home_feed("viewer")
    query.assert_not_awaited()
    assert _ids(cached["following"]) == ["b1"]

    feed.invalidate("viewer")
    assert _ids(await feed.friends_feed("viewer")) == []
    assert _ids(await feed.following_feed("viewer")) == ["b2", "b1"]


@pytest.mark.asyncio
async def test_unfollow_refreshes_home(engine, feed, make_account, make_post):
    from socialgraph.models.social import FollowState

    await make_account("viewer", following=["bob"])
    await make_account("bob", followers=["viewer"])
    await make_post("b1", "bob")
    assert _ids(await feed.following_feed("viewer")) == ["b1"]

    await engine.follow_graph.transition("viewer", "bob", FollowState.FOLLOWING)

    assert await feed.following_feed("viewer") == []


# ---------------------------------------------------------------------------
# Explore
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_explore_filters_own_and_private(feed, make_account, make_post):
    await make_account("viewer")
    await make_account("pub")
    await make_account("priv", is_private=True)
    await make_post("v1", "viewer", created_at="2024-01-03")
    await make_post("p1", "pub", created_at="2024-01-01")
    await make_post("p2", "pub", created_at="2024-01-02")
    await make_post("x1", "priv", created_at="2024-01-04")

    assert _ids(await feed.explore("viewer")) == ["p2", "p1"]


@pytest.mark.asyncio
async def test_explore_respects_limit(store, engine, make_account, make_post):
    from socialgraph.services.feed import FeedService

    await make_account("pub")
    for i in range(5):
        await make_post(f"p{i}", "pub", created_at=f"2024-01-0{i + 1}")
    feed = FeedService(store, engine.visibility, engine.feed_cache, explore_limit=3)

    assert _ids(await feed.explore("viewer")) == ["p4", "p3", "p2"]


@pytest.mark.asyncio
async def test_explore_cache_is_per_viewer(feed, feed_cache, make_account, make_post):
    await make_account("pub")
    await make_post("p1", "pub")

    await feed.explore("alice")

    assert ("alice", "explore") in feed_cache
    assert ("bob", "explore") not in feed_cache


# ---------------------------------------------------------------------------
# Busca
# ---------------------------------------------------------------------------


def test_search_terms():
    assert search_terms("  Nike AIR ") == ["nike", "air"]
    assert search_terms("") == []


@pytest.mark.asyncio
async def test_search_posts_by_caption_and_tag(feed, make_account, make_post):
    await make_account("pub")
    await make_account("priv", is_private=True)
    await make_post("p1", "pub", caption="Look de inverno", created_at="2024-01-01")
    await make_post(
        "p2", "pub", tags=[{"brand": "Zara", "productName": "Coat"}], created_at="2024-01-02"
    )
    await make_post("x1", "priv", caption="inverno privado", created_at="2024-01-03")
    await make_post("p3", "pub", caption="verão", created_at="2024-01-04")

    assert _ids(await feed.search_posts("viewer", "inverno")) == ["p1"]
    assert _ids(await feed.search_posts("viewer", "zara")) == ["p2"]
    assert await feed.search_posts("viewer", "   ") == []


@pytest.mark.asyncio
async def test_search_tags_groups_and_hides_private(feed, make_account, make_post):
    await make_account("pub")
    await make_account("priv", is_private=True)
    await make_post("p1", "pub", tags=[{"brand": "Nike", "productName": "Air"}])
    await make_post("p2", "pub", tags=[{"brand": "nike", "productName": "air"}])
    await make_post("x1", "priv", tags=[{"brand": "Nike", "productName": "Dunk"}])

    groups = await feed.search_tags("viewer", "nike")

    assert [g["key"] for g in groups] == ["nike:air"]
    assert groups[0]["publicPostCount"] == 2
    assert sorted(_ids(groups[0]["posts"])) == ["p1", "p2"]


@pytest.mark.asyncio
async def test_search_styles_marks_followed(feed, make_account, make_post):
    await make_account("viewer", followed_styles=["Boho"])
    await make_account("pub")
    await make_account("priv", is_private=True)
    await make_post("p1", "pub", styles=["Boho"])
    await make_post("p2", "pub", styles=["boho chic"])
    await make_post("x1", "priv", styles=["bohemian"])

    groups = {g["styleLowercase"]: g for g in await feed.search_styles("viewer", "boho")}

    assert set(groups) == {"boho", "boho chic"}
    assert groups["boho"]["isFollowing"] is True
    assert groups["boho chic"]["isFollowing"] is False


@pytest.mark.asyncio
async def test_search_users(feed, make_account):
    await make_account("viewer", display_name="Viewer Ana")
    await make_account("ana", display_name="Ana Souza")
    await make_account("bruno", display_name="Bruno")

    result = await feed.search_users("viewer", "ana")

    assert [u["id"] for u in result] == ["ana"]
    assert result[0]["buttonLabel"]["text"] == "Follow"


@pytest.mark.asyncio
async def test_search_all_reads_each_owner_once(feed, store, make_account, make_post):
    await make_account("viewer")
    await make_account("pub", display_name="Denim Lover")
    await make_post("p1", "pub", caption="denim total", tags=[{"brand": "Levis", "productName": "Denim"}], styles=["denim"])

    with patch.object(store, "get_doc", wraps=store.get_doc) as get_doc:
        result = await feed.search_all("viewer", "denim")

    assert [u["id"] for u in result["users"]] == ["pub"]
    assert _ids(result["posts"]) == ["p1"]
    assert len(result["tags"]) == 1
    assert len(result["styles"]) == 1
    # a busca de usuários já deixa a conta do dono no memo
    assert [c for c in get_doc.await_args_list if c.args[1] == "pub"] == []
