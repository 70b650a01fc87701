"""
Forest Domain Types - Canonical records returned by the client

Every response shape the Forest server emits is reduced to one of these
records by camper_core.normalize. Optional fields are None when the server
did not provide a usable value; list fields are always present.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class EdgeDirection(str, Enum):
    """Edge orientation relative to the node it was fetched under."""
    IN = "in"
    OUT = "out"
    BIDIRECTIONAL = "bidirectional"


class EventStreamStatus(str, Enum):
    """Connection status of the live event stream."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class EventKind(str, Enum):
    """Push event types known to the client."""
    NODE_CREATED = "node:created"
    NODE_UPDATED = "node:updated"
    NODE_DELETED = "node:deleted"
    EDGE_CREATED = "edge:created"
    EDGE_ACCEPTED = "edge:accepted"
    EDGE_REJECTED = "edge:rejected"
    EDGE_DELETED = "edge:deleted"
    TAG_RENAMED = "tag:renamed"


# =============================================================================
# Health and statistics
# =============================================================================

@dataclass
class HealthStatus:
    """Server health as reported by GET health."""
    ok: bool = True
    status: Optional[str] = None
    version: Optional[str] = None
    database_path: Optional[str] = None
    message: Optional[str] = None
    uptime_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "status": self.status,
            "version": self.version,
            "databasePath": self.database_path,
            "message": self.message,
            "uptimeSeconds": self.uptime_seconds,
        }


@dataclass
class StatsRecentNode:
    id: str
    title: Optional[str] = None
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "createdAt": self.created_at}


@dataclass
class StatsTopTag:
    name: str
    count: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "count": self.count}


@dataclass
class StatsTopSuggestion:
    ref: Optional[str] = None
    source_id: Optional[str] = None
    target_id: Optional[str] = None
    score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ref": self.ref,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "score": self.score,
        }


@dataclass
class StatsHighDegreeNode:
    id: str
    title: Optional[str] = None
    edge_count: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "edgeCount": self.edge_count}


@dataclass
class GraphStats:
    """Aggregate graph statistics from GET stats."""
    nodes: Optional[float] = None
    edges: Optional[float] = None
    suggested_edges: Optional[float] = None
    tags: Optional[float] = None
    recent_count: Optional[float] = None
    high_score_suggestion_count: Optional[float] = None
    recent_nodes: List[StatsRecentNode] = field(default_factory=list)
    top_tags: List[StatsTopTag] = field(default_factory=list)
    top_suggestions: List[StatsTopSuggestion] = field(default_factory=list)
    high_degree_nodes: List[StatsHighDegreeNode] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": self.nodes,
            "edges": self.edges,
            "suggestedEdges": self.suggested_edges,
            "tags": self.tags,
            "recentCount": self.recent_count,
            "highScoreSuggestionCount": self.high_score_suggestion_count,
            "recentNodes": [n.to_dict() for n in self.recent_nodes],
            "topTags": [t.to_dict() for t in self.top_tags],
            "topSuggestions": [s.to_dict() for s in self.top_suggestions],
            "highDegreeNodes": [n.to_dict() for n in self.high_degree_nodes],
        }


# =============================================================================
# Nodes, edges and tags
# =============================================================================

@dataclass
class NodeSummary:
    """One entry of a node listing."""
    id: str
    title: Optional[str] = None
    short_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    body_preview: Optional[str] = None
    body_length: Optional[float] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "shortId": self.short_id,
            "title": self.title,
            "tags": list(self.tags),
            "bodyPreview": self.body_preview,
            "bodyLength": self.body_length,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class NodeList:
    """A page of node summaries."""
    items: List[NodeSummary] = field(default_factory=list)
    total: Optional[float] = None
    limit: Optional[float] = None
    offset: Optional[float] = None


@dataclass
class NodeContent:
    """Full node body from GET nodes/{id}/content."""
    id: str
    title: Optional[str] = None
    body: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    short_id: Optional[str] = None
    body_length: Optional[float] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "shortId": self.short_id,
            "title": self.title,
            "body": self.body,
            "tags": list(self.tags),
            "bodyLength": self.body_length,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class EdgeRecord:
    """An accepted or suggested edge seen from one node."""
    id: Optional[str] = None
    source_id: Optional[str] = None
    target_id: Optional[str] = None
    direction: Optional[EdgeDirection] = None
    score: Optional[float] = None
    status: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None
    to_title: Optional[str] = None
    from_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "direction": self.direction.value if self.direction else None,
            "score": self.score,
            "status": self.status,
            "label": self.label,
            "description": self.description,
            "toTitle": self.to_title,
            "fromTitle": self.from_title,
        }


@dataclass
class NodeDetail:
    """Node with its edges and suggestions from GET nodes/{id}."""
    id: str
    title: Optional[str] = None
    body: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    body_length: Optional[float] = None
    edges: List[EdgeRecord] = field(default_factory=list)
    edges_total: float = 0
    suggestions: List[EdgeRecord] = field(default_factory=list)
    suggestions_total: float = 0

    def edge_ids(self) -> List[str]:
        """Ids of every accepted and suggested edge listed on this node."""
        return [e.id for e in self.edges + self.suggestions if e.id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "tags": list(self.tags),
            "bodyLength": self.body_length,
            "edges": [e.to_dict() for e in self.edges],
            "edgesTotal": self.edges_total,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "suggestionsTotal": self.suggestions_total,
        }


@dataclass
class TagSummary:
    name: str
    count: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "count": self.count}


# =============================================================================
# Request options
# =============================================================================

QueryPairs = List[Tuple[str, Any]]


@dataclass
class ListNodesParams:
    limit: Optional[int] = None
    offset: Optional[int] = None
    search: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    def to_query(self) -> QueryPairs:
        pairs: QueryPairs = []
        if self.limit is not None:
            pairs.append(("limit", self.limit))
        if self.offset is not None:
            pairs.append(("offset", self.offset))
        if self.search:
            pairs.append(("search", self.search))
        for tag in self.tags:
            pairs.append(("tags", tag))
        return pairs


@dataclass
class ListTagsParams:
    limit: Optional[int] = None
    offset: Optional[int] = None
    search: Optional[str] = None
    include_counts: bool = False

    def to_query(self) -> QueryPairs:
        pairs: QueryPairs = []
        if self.limit is not None:
            pairs.append(("limit", self.limit))
        if self.offset is not None:
            pairs.append(("offset", self.offset))
        if self.search:
            pairs.append(("search", self.search))
        if self.include_counts:
            pairs.append(("includeCounts", True))
        return pairs


@dataclass
class NodeDetailOptions:
    """
    Options for GET nodes/{id}.

    The include flags default to the server's behaviour and are only sent
    when explicitly disabled.
    """
    include_body: Optional[bool] = None
    include_edges: Optional[bool] = None
    include_suggestions: Optional[bool] = None
    edges_limit: Optional[int] = None
    suggestions_limit: Optional[int] = None
    force_refresh: bool = False

    def to_query(self) -> QueryPairs:
        pairs: QueryPairs = []
        if self.include_body is False:
            pairs.append(("includeBody", False))
        if self.include_edges is False:
            pairs.append(("includeEdges", False))
        if self.include_suggestions is False:
            pairs.append(("includeSuggestions", False))
        if self.edges_limit is not None:
            pairs.append(("edgesLimit", self.edges_limit))
        if self.suggestions_limit is not None:
            pairs.append(("suggestionsLimit", self.suggestions_limit))
        return pairs


# =============================================================================
# Push events
# =============================================================================

@dataclass
class DomainEvent:
    """
    Base push event. `payload` keeps every decoded field, so consumers can
    read server fields the client does not model.
    """
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> Optional[EventKind]:
        try:
            return EventKind(self.type)
        except ValueError:
            return None

    @property
    def category(self) -> str:
        """Prefix before the colon: node, edge, tag..."""
        return self.type.split(":", 1)[0]

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)


@dataclass
class NodeEvent(DomainEvent):
    """node:created and node:updated."""
    node: Optional[NodeContent] = None

    @property
    def node_id(self) -> Optional[str]:
        return self.node.id if self.node else None


@dataclass
class NodeDeletedEvent(DomainEvent):
    node_id: Optional[str] = None


@dataclass
class EdgeEvent(DomainEvent):
    """edge:created, edge:accepted and edge:rejected."""
    edge: Dict[str, Any] = field(default_factory=dict)
    edge_id: Optional[str] = None
    source_id: Optional[str] = None
    target_id: Optional[str] = None

    def node_ids(self) -> List[str]:
        ids: List[str] = []
        for candidate in (self.source_id, self.target_id, self.get("nodeId")):
            if isinstance(candidate, str) and candidate and candidate not in ids:
                ids.append(candidate)
        return ids


@dataclass
class EdgeDeletedEvent(EdgeEvent):
    """edge:deleted; endpoints are present only when the server sends them."""
    pass


@dataclass
class TagRenamedEvent(DomainEvent):
    old: Optional[str] = None
    new: Optional[str] = None


@dataclass
class UnknownEvent(DomainEvent):
    """Any event type this client version does not know about."""
    pass
