"""
Camper Core - Python client for the Forest knowledge-graph server
"""

from .version import __version__

from .exceptions import (
    ForestError,
    TransportError,
    RequestTimeoutError,
    ProtocolError,
    EventDecodeError,
    ShapeError,
)
from .types import (
    EdgeDirection,
    EventKind,
    EventStreamStatus,
    HealthStatus,
    GraphStats,
    NodeSummary,
    NodeList,
    NodeContent,
    NodeDetail,
    EdgeRecord,
    TagSummary,
    ListNodesParams,
    ListTagsParams,
    NodeDetailOptions,
    DomainEvent,
    NodeEvent,
    NodeDeletedEvent,
    EdgeEvent,
    EdgeDeletedEvent,
    TagRenamedEvent,
    UnknownEvent,
)
from .envelope import unwrap_envelope
from .normalize import (
    normalize_health,
    normalize_stats,
    normalize_node_list,
    normalize_node_content,
    normalize_node_detail,
    normalize_edge_record,
    normalize_tag_list,
    normalize_event,
    resolve_direction,
)
from .caching import ResourceCache
from .executor import RequestExecutor, build_query, build_ws_url
from .events import (
    EventSocket,
    EventStreamClient,
    EventStreamOptions,
    Subscription,
    parse_frame,
)
from .reconcile import EventReconciler, ReconcileResult
from .config import (
    CamperConfig,
    ClientConfig,
    EventStreamConfig,
    StorageConfig,
    LoggingConfig,
    load_config,
    save_config,
)
from .client import ForestClient
from .favorites import (
    TagFavorite,
    load_tag_favorites,
    save_tag_favorites,
    record_favorite,
    remove_favorite,
    rename_tag_in_favorites,
    parse_tags,
)
from .logging_utils import LogLevel, configure_logging

__all__ = [
    "__version__",
    # Errors
    "ForestError",
    "TransportError",
    "RequestTimeoutError",
    "ProtocolError",
    "EventDecodeError",
    "ShapeError",
    # Types
    "EdgeDirection",
    "EventKind",
    "EventStreamStatus",
    "HealthStatus",
    "GraphStats",
    "NodeSummary",
    "NodeList",
    "NodeContent",
    "NodeDetail",
    "EdgeRecord",
    "TagSummary",
    "ListNodesParams",
    "ListTagsParams",
    "NodeDetailOptions",
    "DomainEvent",
    "NodeEvent",
    "NodeDeletedEvent",
    "EdgeEvent",
    "EdgeDeletedEvent",
    "TagRenamedEvent",
    "UnknownEvent",
    # Normalizer
    "unwrap_envelope",
    "normalize_health",
    "normalize_stats",
    "normalize_node_list",
    "normalize_node_content",
    "normalize_node_detail",
    "normalize_edge_record",
    "normalize_tag_list",
    "normalize_event",
    "resolve_direction",
    # Transport and events
    "ResourceCache",
    "RequestExecutor",
    "build_query",
    "build_ws_url",
    "EventSocket",
    "EventStreamClient",
    "EventStreamOptions",
    "Subscription",
    "parse_frame",
    "EventReconciler",
    "ReconcileResult",
    # Client and config
    "ForestClient",
    "CamperConfig",
    "ClientConfig",
    "EventStreamConfig",
    "StorageConfig",
    "LoggingConfig",
    "load_config",
    "save_config",
    # Favorites
    "TagFavorite",
    "load_tag_favorites",
    "save_tag_favorites",
    "record_favorite",
    "remove_favorite",
    "rename_tag_in_favorites",
    "parse_tags",
    # Logging
    "LogLevel",
    "configure_logging",
]
