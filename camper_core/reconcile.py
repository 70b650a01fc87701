"""
Reconcile - Apply push events to the client caches

Events are treated as invalidation hints: the reconciler drops cache
entries the event may have made stale and, for node content the caller was
already holding, schedules a fresh fetch. It never writes event payloads
into a cache. Applying the same event twice is harmless.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Set

from camper_core.caching import ResourceCache
from camper_core.exceptions import ForestError
from camper_core.types import (
    DomainEvent,
    EdgeDeletedEvent,
    EdgeEvent,
    NodeContent,
    NodeDeletedEvent,
    NodeDetail,
    NodeEvent,
)

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[DomainEvent], Any]


@dataclass
class ReconcileResult:
    """What one event did to the caches."""
    evicted_content: List[str] = field(default_factory=list)
    evicted_detail: List[str] = field(default_factory=list)
    refetched: List[str] = field(default_factory=list)


class EventReconciler:
    """
    Keep content and detail caches consistent with the event stream.

    node:created / node:updated  evict detail; evict and re-fetch content if it was cached
    node:deleted                 evict content and detail
    edge:*                       evict detail of both endpoints (or of every node listing the edge)
    tag:*                        notify on_tags_changed
    """

    def __init__(
        self,
        content_cache: ResourceCache[NodeContent],
        detail_cache: ResourceCache[NodeDetail],
        refetch_content: Optional[Callable[[str], Awaitable[Any]]] = None,
        on_nodes_changed: Optional[ChangeCallback] = None,
        on_tags_changed: Optional[ChangeCallback] = None,
    ):
        """
        Args:
            content_cache: Node content cache
            detail_cache: Node detail cache
            refetch_content: Coroutine function force-refreshing one node's content
            on_nodes_changed: Called for node and edge events (e.g. reload a list)
            on_tags_changed: Called for tag events (e.g. reload the tag list)
        """
        self.content_cache = content_cache
        self.detail_cache = detail_cache
        self.refetch_content = refetch_content
        self.on_nodes_changed = on_nodes_changed
        self.on_tags_changed = on_tags_changed
        self._tasks: Set[asyncio.Future] = set()

    def __call__(self, event: DomainEvent) -> ReconcileResult:
        return self.apply(event)

    def apply(self, event: DomainEvent) -> ReconcileResult:
        result = ReconcileResult()
        category = event.category

        if isinstance(event, NodeDeletedEvent):
            if event.node_id:
                self._evict_content(event.node_id, result)
                self._evict_detail(event.node_id, result)
            self._notify(self.on_nodes_changed, event)

        elif isinstance(event, NodeEvent):
            node_id = event.node_id
            if node_id:
                self._evict_detail(node_id, result)
                if self._evict_content(node_id, result) and self.refetch_content:
                    self._schedule(self._refetch(node_id))
                    result.refetched.append(node_id)
            self._notify(self.on_nodes_changed, event)

        elif isinstance(event, EdgeEvent):
            node_ids = event.node_ids()
            if not node_ids and isinstance(event, EdgeDeletedEvent) and event.edge_id:
                node_ids = self.detail_cache.find(
                    lambda detail: event.edge_id in detail.edge_ids()
                )
            for node_id in node_ids:
                self._evict_detail(node_id, result)
            self._notify(self.on_nodes_changed, event)

        elif category == "tag":
            self._notify(self.on_tags_changed, event)

        else:
            logger.debug(f"No cache action for event type {event.type}")

        return result

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    def _evict_content(self, node_id: str, result: ReconcileResult) -> bool:
        if self.content_cache.evict(node_id):
            result.evicted_content.append(node_id)
            return True
        return False

    def _evict_detail(self, node_id: str, result: ReconcileResult) -> bool:
        if self.detail_cache.evict(node_id):
            result.evicted_detail.append(node_id)
            return True
        return False

    async def _refetch(self, node_id: str):
        try:
            await self.refetch_content(node_id)
        except ForestError as e:
            logger.warning(f"Re-fetch of node {node_id} after push event failed: {e}")

    def _notify(self, callback: Optional[ChangeCallback], event: DomainEvent):
        if callback is None:
            return
        try:
            outcome = callback(event)
        except Exception as e:
            logger.warning(f"Change callback for {event.type} failed: {e}")
            return
        if inspect.isawaitable(outcome):
            self._schedule(outcome)

    def _schedule(self, awaitable: Awaitable[Any]):
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Background work after push event failed: {task.exception()}")

    async def drain(self):
        """Wait for scheduled re-fetches and callbacks (used by tests and shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
