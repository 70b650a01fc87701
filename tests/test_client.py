"""
Tests for the ForestClient facade
"""

import asyncio

import httpx
import pytest

from camper_core.client import ForestClient
from camper_core.config import ClientConfig
from camper_core.events import EventStreamOptions
from camper_core.exceptions import ProtocolError, ShapeError
from camper_core.types import (
    EdgeDirection,
    EventStreamStatus,
    ListNodesParams,
    ListTagsParams,
    NodeDetailOptions,
)

from conftest import BASE_URL, FakeConnector, ForestRouter, wait_until


DETAIL_N5 = {
    "id": "n5",
    "title": "Five",
    "edges": {
        "accepted": [{"id": "e1", "sourceId": "n5", "targetId": "n6"}],
        "suggested": [{"id": "s1", "sourceId": "n7", "targetId": "n5", "score": 0.7}],
    },
}


def make_client(router: ForestRouter, connector=None) -> ForestClient:
    return ForestClient(
        ClientConfig(base_url=BASE_URL, api_prefix="/api/v1", timeout_ms=1000),
        transport=httpx.MockTransport(router),
        connector=connector,
    )


class TestFetching:
    """Tests for HTTP-backed operations."""

    @pytest.mark.asyncio
    async def test_health_and_stats(self, router):
        router.routes["/api/v1/health"] = {"success": True, "data": {"status": "healthy", "version": "2.0"}}
        router.routes["/api/v1/stats"] = {"nodes": 524, "edges": 1242, "suggestedEdges": 42, "tags": 87}
        async with make_client(router) as client:
            health = await client.get_health()
            stats = await client.get_stats()
        assert health.ok and health.version == "2.0"
        assert (stats.nodes, stats.edges, stats.suggested_edges, stats.tags) == (524, 1242, 42, 87)

    @pytest.mark.asyncio
    async def test_list_nodes_query(self, router):
        router.routes["/api/v1/nodes"] = {"items": [{"id": "n1"}], "total": 1}
        async with make_client(router) as client:
            listing = await client.list_nodes(ListNodesParams(limit=5, search="graph", tags=["a", "b"]))
        assert listing.items[0].id == "n1"
        assert router.requests[0].url.query == b"limit=5&search=graph&tags=a&tags=b"

    @pytest.mark.asyncio
    async def test_list_tags_query(self, router):
        router.routes["/api/v1/tags"] = {"tags": [{"name": "python", "count": 3}]}
        async with make_client(router) as client:
            tags = await client.list_tags(ListTagsParams(include_counts=True))
        assert tags[0].name == "python"
        assert router.requests[0].url.query == b"includeCounts=true"

    @pytest.mark.asyncio
    async def test_node_detail_query_flags(self, router):
        router.routes["/api/v1/nodes/n5"] = DETAIL_N5
        options = NodeDetailOptions(include_body=False, include_edges=True, edges_limit=10)
        async with make_client(router) as client:
            detail = await client.get_node_detail("n5", options)
        assert router.requests[0].url.query == b"includeBody=false&edgesLimit=10"
        assert detail.edges[0].direction is EdgeDirection.OUT
        assert detail.suggestions[0].direction is EdgeDirection.IN

    @pytest.mark.asyncio
    async def test_node_id_is_percent_encoded(self, router):
        router.routes["/api/v1/nodes/a/b/content"] = {"id": "a/b", "body": "x"}
        async with make_client(router) as client:
            content = await client.get_node_content("a/b")
        assert content.id == "a/b"
        assert router.requests[0].url.raw_path == b"/api/v1/nodes/a%2Fb/content"

    @pytest.mark.asyncio
    async def test_empty_id_rejected_before_io(self, router):
        async with make_client(router) as client:
            with pytest.raises(ValueError):
                await client.get_node_content("")
            with pytest.raises(ValueError):
                await client.get_node_detail("")
        assert router.requests == []

    @pytest.mark.asyncio
    async def test_errors_propagate(self, router):
        router.routes["/api/v1/nodes/n1"] = {"success": False, "data": None, "error": "Node not found"}
        router.routes["/api/v1/nodes/n2/content"] = ["not", "an", "object"]
        async with make_client(router) as client:
            with pytest.raises(ProtocolError):
                await client.get_node_detail("n1")
            with pytest.raises(ShapeError):
                await client.get_node_content("n2")
            assert client.get_cached_node_detail("n1") is None


class TestCaching:
    """Tests for the content and detail caches."""

    @pytest.mark.asyncio
    async def test_content_cached_until_force_refresh(self, router):
        bodies = iter(["first", "second"])
        router.routes["/api/v1/nodes/n1/content"] = lambda request: {"id": "n1", "body": next(bodies)}
        async with make_client(router) as client:
            first = await client.get_node_content("n1")
            again = await client.get_node_content("n1")
            refreshed = await client.get_node_content("n1", force_refresh=True)

            assert again is first
            assert refreshed.body == "second"
            assert client.get_cached_node_content("n1") is refreshed
        assert router.count("/api/v1/nodes/n1/content") == 2

    @pytest.mark.asyncio
    async def test_detail_cache_independent_of_content(self, router):
        router.routes["/api/v1/nodes/n5"] = DETAIL_N5
        router.routes["/api/v1/nodes/n5/content"] = {"id": "n5", "body": "text"}
        async with make_client(router) as client:
            await client.get_node_detail("n5")
            await client.get_node_content("n5")

            client.evict_node_detail("n5")
            assert client.get_cached_node_detail("n5") is None
            assert client.get_cached_node_content("n5") is not None

            await client.get_node_detail("n5", NodeDetailOptions(force_refresh=True))
            client.clear_node_content_cache()
            assert client.get_cached_node_content("n5") is None
            assert client.get_cached_node_detail("n5") is not None

            client.clear_node_detail_cache()
            client.evict_node_content("unknown")
            assert client.cache_stats["detail"]["size"] == 0

    @pytest.mark.asyncio
    async def test_last_response_wins_for_concurrent_fetches(self, router):
        async def respond(request):
            delay = 0.05 if len(router.requests) == 1 else 0.0
            body = "slow" if delay else "fast"
            await asyncio.sleep(delay)
            return httpx.Response(200, json={"id": "n1", "body": body})

        client = ForestClient(
            ClientConfig(base_url=BASE_URL),
            transport=httpx.MockTransport(lambda request: (router.requests.append(request), respond(request))[1]),
        )
        async with client:
            await asyncio.gather(
                client.get_node_content("n1", force_refresh=True),
                client.get_node_content("n1", force_refresh=True),
            )
            assert client.get_cached_node_content("n1").body == "slow"


class TestEvents:
    """Tests for subscribe_to_events with cache reconciliation."""

    @pytest.mark.asyncio
    async def test_node_deleted_frame_evicts_both_caches(self, router):
        router.routes["/api/v1/nodes/n5"] = DETAIL_N5
        router.routes["/api/v1/nodes/n5/content"] = {"id": "n5", "body": "text"}
        fake = FakeConnector()
        handled = []

        async with make_client(router, connector=fake) as client:
            await client.get_node_detail("n5")
            await client.get_node_content("n5")

            subscription = client.subscribe_to_events(
                handled.append,
                EventStreamOptions(retry_delay_ms=50),
            )
            socket = await fake.wait_for_socket(0)
            socket.push('{"type":"node:deleted","nodeId":"n5"}')
            await wait_until(lambda: len(handled) == 1)

            assert client.get_cached_node_content("n5") is None
            assert client.get_cached_node_detail("n5") is None
            assert subscription.status is EventStreamStatus.CONNECTED

        assert subscription.closed
        assert fake.attempts == ["ws://forest.test/ws"]

    @pytest.mark.asyncio
    async def test_node_updated_refetches_content(self, router):
        versions = iter(["v1", "v2"])
        router.routes["/api/v1/nodes/n1/content"] = lambda request: {"id": "n1", "body": next(versions)}
        fake = FakeConnector()
        changed = []

        async with make_client(router, connector=fake) as client:
            await client.get_node_content("n1")
            client.subscribe_to_events(on_nodes_changed=changed.append)
            socket = await fake.wait_for_socket(0)
            socket.push_json({"type": "node:updated", "node": {"id": "n1"}})

            await wait_until(lambda: router.count("/api/v1/nodes/n1/content") == 2)
            await wait_until(lambda: client.get_cached_node_content("n1") is not None)
            assert client.get_cached_node_content("n1").body == "v2"
            assert [event.type for event in changed] == ["node:updated"]

    @pytest.mark.asyncio
    async def test_reconcile_disabled(self, router):
        router.routes["/api/v1/nodes/n5/content"] = {"id": "n5"}
        fake = FakeConnector()
        handled = []
        async with make_client(router, connector=fake) as client:
            await client.get_node_content("n5")
            client.subscribe_to_events(handled.append, reconcile=False)
            socket = await fake.wait_for_socket(0)
            socket.push_json({"type": "node:deleted", "nodeId": "n5"})
            await wait_until(lambda: len(handled) == 1)
            assert client.get_cached_node_content("n5") is not None

    @pytest.mark.asyncio
    async def test_custom_path_and_disconnect_keeps_caches(self, router):
        router.routes["/api/v1/nodes/n1/content"] = {"id": "n1"}
        fake = FakeConnector()
        async with make_client(router, connector=fake) as client:
            await client.get_node_content("n1")
            client.subscribe_to_events(options=EventStreamOptions(path="/events", retry_delay_ms=20))
            (await fake.wait_for_socket(0)).drop()
            await fake.wait_for_socket(1)
            assert client.get_cached_node_content("n1") is not None
        assert fake.attempts[0] == "ws://forest.test/events"

    @pytest.mark.asyncio
    async def test_closed_subscriptions_are_released(self, router):
        fake = FakeConnector()
        async with make_client(router, connector=fake) as client:
            first = client.subscribe_to_events()
            await fake.wait_for_socket(0)
            await first.aclose()

            second = client.subscribe_to_events()
            await fake.wait_for_socket(1)
            assert client._subscriptions == [second]
        assert second.closed
