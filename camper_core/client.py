"""
Forest Client - Domain-level access to a Forest knowledge-graph server

Ties the request executor, the normalizers, the two node caches and the
event stream together. Built from a resolved ClientConfig; reads no
environment variables or files itself.

Example:
    async with ForestClient(ClientConfig(base_url="http://localhost:3000")) as client:
        stats = await client.get_stats()
        detail = await client.get_node_detail("n1")
        subscription = client.subscribe_to_events(print)
"""

import inspect
import logging
from typing import Any, Callable, List, Optional

import httpx

from camper_core.caching import ResourceCache
from camper_core.config import ClientConfig
from camper_core.events import (
    Connector,
    EventStreamClient,
    EventStreamOptions,
    Subscription,
)
from camper_core.executor import RequestExecutor, build_ws_url, node_path
from camper_core.normalize import (
    normalize_health,
    normalize_node_content,
    normalize_node_detail,
    normalize_node_list,
    normalize_stats,
    normalize_tag_list,
)
from camper_core.reconcile import ChangeCallback, EventReconciler
from camper_core.types import (
    DomainEvent,
    GraphStats,
    HealthStatus,
    ListNodesParams,
    ListTagsParams,
    NodeContent,
    NodeDetail,
    NodeDetailOptions,
    NodeList,
    TagSummary,
)

logger = logging.getLogger(__name__)


def _require_id(node_id: str):
    if not node_id:
        raise ValueError("Node id is required")


class ForestClient:
    """Async client for the Forest API with node caches kept fresh by push events."""

    def __init__(
        self,
        config: ClientConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connector: Optional[Connector] = None,
    ):
        """
        Args:
            config: Base URL, API prefix and timeout
            http_client: Optional shared httpx client
            transport: Optional httpx transport (tests pass httpx.MockTransport)
            connector: Optional event socket factory (tests pass fakes)
        """
        self.config = config
        self.executor = RequestExecutor(
            config.base_url,
            config.api_prefix,
            config.timeout_ms,
            http_client=http_client,
            transport=transport,
        )
        self.content_cache: ResourceCache[NodeContent] = ResourceCache("node-content")
        self.detail_cache: ResourceCache[NodeDetail] = ResourceCache("node-detail")
        self._connector = connector
        self._subscriptions: List[Subscription] = []

    # -----------------------------------------------------------------
    # Health and stats
    # -----------------------------------------------------------------

    async def get_health(self) -> HealthStatus:
        payload = await self.executor.request("health")
        return normalize_health(payload)

    async def get_stats(self) -> GraphStats:
        payload = await self.executor.request("stats")
        return normalize_stats(payload)

    # -----------------------------------------------------------------
    # Listings
    # -----------------------------------------------------------------

    async def list_nodes(self, params: Optional[ListNodesParams] = None) -> NodeList:
        params = params or ListNodesParams()
        payload = await self.executor.request("nodes", query=params.to_query())
        return normalize_node_list(payload)

    async def list_tags(self, params: Optional[ListTagsParams] = None) -> List[TagSummary]:
        params = params or ListTagsParams()
        payload = await self.executor.request("tags", query=params.to_query())
        return normalize_tag_list(payload)

    # -----------------------------------------------------------------
    # Node content (cached)
    # -----------------------------------------------------------------

    async def get_node_content(self, node_id: str, force_refresh: bool = False) -> NodeContent:
        """
        Full node body. Served from cache unless force_refresh, in which case
        the entry is re-fetched and replaced.
        """
        _require_id(node_id)
        if not force_refresh:
            cached = self.content_cache.get(node_id)
            if cached is not None:
                return cached

        payload = await self.executor.request(node_path(node_id, "content"))
        content = normalize_node_content(payload, node_id)
        self.content_cache.set(node_id, content)
        return content

    def get_cached_node_content(self, node_id: str) -> Optional[NodeContent]:
        return self.content_cache.get(node_id)

    def evict_node_content(self, node_id: str):
        self.content_cache.evict(node_id)

    def clear_node_content_cache(self):
        self.content_cache.clear()

    # -----------------------------------------------------------------
    # Node detail (cached)
    # -----------------------------------------------------------------

    async def get_node_detail(
        self,
        node_id: str,
        options: Optional[NodeDetailOptions] = None,
    ) -> NodeDetail:
        """
        Node with edges and suggestions, directions computed relative to node_id.
        Served from cache unless options.force_refresh.
        """
        _require_id(node_id)
        options = options or NodeDetailOptions()
        if not options.force_refresh:
            cached = self.detail_cache.get(node_id)
            if cached is not None:
                return cached

        payload = await self.executor.request(node_path(node_id), query=options.to_query())
        detail = normalize_node_detail(payload, node_id)
        self.detail_cache.set(node_id, detail)
        return detail

    def get_cached_node_detail(self, node_id: str) -> Optional[NodeDetail]:
        return self.detail_cache.get(node_id)

    def evict_node_detail(self, node_id: str):
        self.detail_cache.evict(node_id)

    def clear_node_detail_cache(self):
        self.detail_cache.clear()

    # -----------------------------------------------------------------
    # Events
    # -----------------------------------------------------------------

    def events_url(self, path: str = "/ws") -> str:
        return build_ws_url(self.executor.base_url, path)

    def create_reconciler(
        self,
        on_nodes_changed: Optional[ChangeCallback] = None,
        on_tags_changed: Optional[ChangeCallback] = None,
    ) -> EventReconciler:
        return EventReconciler(
            self.content_cache,
            self.detail_cache,
            refetch_content=lambda node_id: self.get_node_content(node_id, force_refresh=True),
            on_nodes_changed=on_nodes_changed,
            on_tags_changed=on_tags_changed,
        )

    def subscribe_to_events(
        self,
        handler: Optional[Callable[[DomainEvent], Any]] = None,
        options: Optional[EventStreamOptions] = None,
        reconcile: bool = True,
        on_nodes_changed: Optional[ChangeCallback] = None,
        on_tags_changed: Optional[ChangeCallback] = None,
    ) -> Subscription:
        """
        Open the live event stream.

        With reconcile (the default) every event first evicts the cache
        entries it invalidates, then reaches handler. Must be called from a
        running event loop.

        Returns:
            Subscription; call unsubscribe() to stop reconnecting
        """
        options = options or EventStreamOptions()
        reconciler = self.create_reconciler(on_nodes_changed, on_tags_changed) if reconcile else None

        def dispatch(event: DomainEvent) -> Any:
            if reconciler is not None:
                reconciler.apply(event)
            if handler is not None:
                outcome = handler(event)
                if inspect.isawaitable(outcome):
                    return outcome
            return None

        stream = EventStreamClient(
            self.events_url(options.path),
            dispatch,
            options=options,
            connector=self._connector,
        )
        subscription = stream.subscribe()
        self._subscriptions = [s for s in self._subscriptions if not s.closed]
        self._subscriptions.append(subscription)
        return subscription

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    @property
    def cache_stats(self) -> dict:
        return {
            "content": self.content_cache.stats,
            "detail": self.detail_cache.stats,
        }

    async def aclose(self):
        """Stop every event subscription and close the HTTP client. Caches are kept."""
        for subscription in self._subscriptions:
            await subscription.aclose()
        self._subscriptions.clear()
        await self.executor.aclose()

    async def __aenter__(self) -> "ForestClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
