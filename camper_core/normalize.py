"""
Normalize - Reduce Forest JSON shapes to canonical records

The Forest server has shipped several response layouts over time: flat
legacy counters, nested sections with total/accepted/suggested sub-counts,
list wrappers named `items`, `nodes`, `tags` or `edges`. Each normalizer
here is a pure function from an arbitrary decoded JSON value to one record
of camper_core.types, filling defaults instead of raising.

Fallback order is declared in the *_PRECEDENCE / *_FIELDS / *_SOURCES
tuples below. The first extractor producing a defined value wins.

Only a missing identifying field (a node id on a detail or content fetch)
raises, as ShapeError.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from camper_core.coercion import (
    Extractor,
    field,
    first_defined,
    lookup,
    non_blank,
    number_at,
    string_at,
    to_number,
    to_record,
    to_string,
    to_unique_string_list,
)
from camper_core.exceptions import ShapeError
from camper_core.types import (
    DomainEvent,
    EdgeDeletedEvent,
    EdgeDirection,
    EdgeEvent,
    EdgeRecord,
    EventKind,
    GraphStats,
    HealthStatus,
    NodeContent,
    NodeDeletedEvent,
    NodeDetail,
    NodeEvent,
    NodeList,
    NodeSummary,
    StatsHighDegreeNode,
    StatsRecentNode,
    StatsTopSuggestion,
    StatsTopTag,
    TagRenamedEvent,
    TagSummary,
    UnknownEvent,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Precedence chains
# =============================================================================

# Sub-count names inside a stats section such as {"total": 1242, "accepted": 1200}
SECTION_TOTAL_KEYS = ("total", "count", "length")
SECTION_ACCEPTED_KEYS = ("accepted",)
SECTION_SUGGESTED_KEYS = ("suggested", "pending")


def stats_section(payload: Any, name: str) -> Optional[Dict[str, Any]]:
    """Nested stats section `name`, either top-level or under `counts`."""
    return to_record(lookup(payload, name)) or to_record(lookup(payload, "counts", name))


def suggestions_section(payload: Any) -> Optional[Dict[str, Any]]:
    return stats_section(payload, "suggestions") or to_record(lookup(payload, "suggestedEdges"))


def section_count(section_of: Callable[[Any], Optional[Dict[str, Any]]], keys: Sequence[str]) -> Extractor:
    """Extractor for the first numeric sub-count among keys in a section."""
    def extract(payload: Any) -> Optional[float]:
        section = section_of(payload)
        return first_defined([number_at(key) for key in keys], section)
    return extract


def named_section(name: str) -> Callable[[Any], Optional[Dict[str, Any]]]:
    return lambda payload: stats_section(payload, name)


NODES_COUNT_PRECEDENCE: Tuple[Extractor, ...] = (
    number_at("nodes"),
    number_at("counts", "nodes"),
    section_count(named_section("nodes"), SECTION_TOTAL_KEYS),
    section_count(named_section("nodes"), SECTION_ACCEPTED_KEYS),
)

EDGES_COUNT_PRECEDENCE: Tuple[Extractor, ...] = (
    number_at("edges"),
    number_at("counts", "edges"),
    section_count(named_section("edges"), SECTION_TOTAL_KEYS),
    section_count(named_section("edges"), SECTION_ACCEPTED_KEYS),
)

TAGS_COUNT_PRECEDENCE: Tuple[Extractor, ...] = (
    number_at("tags"),
    number_at("counts", "tags"),
    section_count(named_section("tags"), SECTION_TOTAL_KEYS),
    section_count(named_section("tags"), SECTION_ACCEPTED_KEYS),
)

SUGGESTED_EDGES_PRECEDENCE: Tuple[Extractor, ...] = (
    number_at("suggestedEdges"),
    number_at("counts", "suggestedEdges"),
    number_at("counts", "suggested"),
    section_count(suggestions_section, SECTION_TOTAL_KEYS),
    section_count(named_section("edges"), SECTION_SUGGESTED_KEYS),
)

EDGE_SOURCE_ID_FIELDS: Tuple[Extractor, ...] = (
    string_at("sourceId"),
    string_at("fromId"),
    string_at("fromNodeId"),
    string_at("source", "id"),
)

EDGE_TARGET_ID_FIELDS: Tuple[Extractor, ...] = (
    string_at("targetId"),
    string_at("toId"),
    string_at("toNodeId"),
    string_at("target", "id"),
)

EDGE_SCORE_FIELDS: Tuple[Extractor, ...] = (
    number_at("score"),
    number_at("weight"),
    number_at("similarity"),
)

EDGE_STATUS_FIELDS: Tuple[Extractor, ...] = (
    string_at("status"),
    string_at("state"),
    string_at("kind"),
)

EDGE_LABEL_FIELDS: Tuple[Extractor, ...] = (
    string_at("label"),
    string_at("name"),
    string_at("description"),
)


def side_title(side: str) -> Extractor:
    """`<side>Title`, then the nested `<side>` object's title or name. Blank strings skipped."""
    chain = (
        lambda record: non_blank(lookup(record, f"{side}Title")),
        lambda record: non_blank(lookup(record, side, "title")),
        lambda record: non_blank(lookup(record, side, "name")),
    )
    return lambda record: first_defined(chain, record)


EDGE_TO_TITLE_FIELDS: Tuple[Extractor, ...] = (side_title("target"), side_title("to"))
EDGE_FROM_TITLE_FIELDS: Tuple[Extractor, ...] = (side_title("source"), side_title("from"))

# Node detail: where edge lists may live, tried until one is non-empty
DETAIL_EDGE_SOURCES: Tuple[Extractor, ...] = (
    field("edges"),
    field("edges", "accepted"),
)

DETAIL_SUGGESTION_SOURCES: Tuple[Extractor, ...] = (
    field("suggestions"),
    field("edges", "suggested"),
    field("suggestedEdges"),
)

DETAIL_EDGES_TOTAL_FIELDS: Tuple[Extractor, ...] = (
    number_at("edgesTotal"),
    number_at("edges", "total"),
)

DETAIL_SUGGESTIONS_TOTAL_FIELDS: Tuple[Extractor, ...] = (
    number_at("suggestionsTotal"),
    number_at("suggestedEdgesTotal"),
)

BODY_LENGTH_FIELDS: Tuple[Extractor, ...] = (number_at("bodyLength"), number_at("body_size"))

HEALTH_VERSION_FIELDS: Tuple[Extractor, ...] = (string_at("version"), string_at("meta", "version"))
HEALTH_DATABASE_PATH_FIELDS: Tuple[Extractor, ...] = (
    string_at("databasePath"),
    string_at("database", "path"),
)
HEALTH_MESSAGE_FIELDS: Tuple[Extractor, ...] = (
    string_at("message"),
    string_at("statusMessage"),
    string_at("meta", "message"),
)
HEALTH_UPTIME_FIELDS: Tuple[Extractor, ...] = (
    number_at("uptime"),
    number_at("uptimeSeconds"),
    number_at("meta", "uptimeSeconds"),
)
HEALTHY_STATUSES = ("healthy", "ok")

NODE_LIST_CONTAINER_KEYS = ("items", "nodes")
TAG_LIST_CONTAINER_KEYS = ("items", "tags")

NODE_DELETED_ID_FIELDS: Tuple[Extractor, ...] = (
    lambda event: non_blank(lookup(event, "nodeId")),
    lambda event: non_blank(lookup(event, "id")),
    lambda event: non_blank(lookup(event, "node", "id")),
)

EDGE_EVENT_ID_FIELDS: Tuple[Extractor, ...] = (
    string_at("edgeId"),
    string_at("edge", "id"),
)


# =============================================================================
# Health
# =============================================================================

def normalize_health(payload: Any) -> HealthStatus:
    """
    Normalize GET health.

    `ok` is the explicit boolean when present, otherwise derived from
    `status`, otherwise True: a server that says nothing is assumed healthy.
    """
    record = to_record(payload) or {}
    status = to_string(record.get("status"))

    explicit_ok = record.get("ok")
    if isinstance(explicit_ok, bool):
        ok = explicit_ok
    elif status:
        ok = status.lower() in HEALTHY_STATUSES
    else:
        ok = True

    return HealthStatus(
        ok=ok,
        status=status,
        version=first_defined(HEALTH_VERSION_FIELDS, record),
        database_path=first_defined(HEALTH_DATABASE_PATH_FIELDS, record),
        message=first_defined(HEALTH_MESSAGE_FIELDS, record),
        uptime_seconds=first_defined(HEALTH_UPTIME_FIELDS, record),
    )


# =============================================================================
# Stats
# =============================================================================

def _entries(value: Any, build: Callable[[Dict[str, Any]], Any]) -> List[Any]:
    """Apply build to every object in a list, dropping non-objects and None results."""
    if not isinstance(value, list):
        return []
    result = []
    for entry in value:
        record = to_record(entry)
        if record is None:
            continue
        item = build(record)
        if item is not None:
            result.append(item)
    return result


def _recent_node(entry: Dict[str, Any]) -> Optional[StatsRecentNode]:
    node_id = to_string(entry.get("id"))
    if not node_id:
        return None
    return StatsRecentNode(
        id=node_id,
        title=to_string(entry.get("title")),
        created_at=first_defined((string_at("createdAt"), string_at("updatedAt")), entry),
    )


def _top_tag(entry: Dict[str, Any]) -> Optional[StatsTopTag]:
    name = first_defined((string_at("name"), string_at("tag")), entry)
    if not name:
        return None
    return StatsTopTag(name=name, count=to_number(entry.get("count")))


def _top_suggestion(entry: Dict[str, Any]) -> StatsTopSuggestion:
    return StatsTopSuggestion(
        ref=first_defined((string_at("ref"), string_at("id"), string_at("code")), entry),
        source_id=first_defined(
            (string_at("sourceId"), string_at("fromId"), string_at("sourceNodeId")), entry
        ),
        target_id=first_defined(
            (string_at("targetId"), string_at("toId"), string_at("targetNodeId")), entry
        ),
        score=first_defined(EDGE_SCORE_FIELDS, entry),
    )


def _high_degree_node(entry: Dict[str, Any]) -> Optional[StatsHighDegreeNode]:
    node_id = to_string(entry.get("id"))
    if not node_id:
        return None
    return StatsHighDegreeNode(
        id=node_id,
        title=to_string(entry.get("title")),
        edge_count=first_defined((number_at("edgeCount"), number_at("degree")), entry),
    )


def normalize_stats(payload: Any) -> GraphStats:
    """
    Normalize GET stats, accepting both the flat legacy layout
    ({"nodes": 10, "edges": 20}) and the nested one
    ({"nodes": {"total": 524, "recent": [...]}, "edges": {"accepted": 1200, "total": 1242}}).
    """
    record = to_record(payload) or {}

    nodes_section = stats_section(record, "nodes") or {}
    tags_section = stats_section(record, "tags") or {}
    suggestions = suggestions_section(record) or {}

    recent_nodes = _entries(nodes_section.get("recent"), _recent_node)
    top_tags = _entries(
        first_defined((field("topTags"), field("tags")), tags_section), _top_tag
    )
    top_suggestions = _entries(
        first_defined((field("topSuggestions"), field("suggestions")), suggestions),
        _top_suggestion,
    )
    high_degree_nodes = _entries(record.get("highDegreeNodes"), _high_degree_node)

    recent_count = first_defined(
        (number_at("recentCount"), lambda _: to_number(nodes_section.get("recentCount"))),
        record,
    )
    if recent_count is None and recent_nodes:
        recent_count = len(recent_nodes)

    high_score_count = first_defined(
        (number_at("highScoreCount"), lambda _: to_number(suggestions.get("highScoreCount"))),
        record,
    )
    if high_score_count is None and top_suggestions:
        high_score_count = len(top_suggestions)

    return GraphStats(
        nodes=first_defined(NODES_COUNT_PRECEDENCE, record),
        edges=first_defined(EDGES_COUNT_PRECEDENCE, record),
        suggested_edges=first_defined(SUGGESTED_EDGES_PRECEDENCE, record),
        tags=first_defined(TAGS_COUNT_PRECEDENCE, record),
        recent_count=recent_count,
        high_score_suggestion_count=high_score_count,
        recent_nodes=recent_nodes,
        top_tags=top_tags,
        top_suggestions=top_suggestions,
        high_degree_nodes=high_degree_nodes,
    )


# =============================================================================
# Edges
# =============================================================================

def resolve_direction(
    source_id: Optional[str],
    target_id: Optional[str],
    node_id: Optional[str],
) -> Optional[EdgeDirection]:
    """Direction of an edge as seen from node_id; None when neither endpoint matches."""
    source_matches = bool(source_id) and source_id == node_id
    target_matches = bool(target_id) and target_id == node_id
    if source_matches and target_matches:
        return EdgeDirection.BIDIRECTIONAL
    if source_matches:
        return EdgeDirection.OUT
    if target_matches:
        return EdgeDirection.IN
    return None


def normalize_edge_record(raw: Any, node_id: Optional[str]) -> Optional[EdgeRecord]:
    """Normalize one edge; any server-sent `direction` is ignored."""
    record = to_record(raw)
    if record is None:
        return None

    source_id = first_defined(EDGE_SOURCE_ID_FIELDS, record)
    target_id = first_defined(EDGE_TARGET_ID_FIELDS, record)

    return EdgeRecord(
        id=to_string(record.get("id")),
        source_id=source_id,
        target_id=target_id,
        direction=resolve_direction(source_id, target_id, node_id),
        score=first_defined(EDGE_SCORE_FIELDS, record),
        status=first_defined(EDGE_STATUS_FIELDS, record),
        label=first_defined(EDGE_LABEL_FIELDS, record),
        description=to_string(record.get("description")),
        to_title=first_defined(EDGE_TO_TITLE_FIELDS, record),
        from_title=first_defined(EDGE_FROM_TITLE_FIELDS, record),
    )


@dataclass
class EdgeCollection:
    items: List[EdgeRecord]
    total: Optional[float] = None


def normalize_edge_collection(value: Any, node_id: Optional[str]) -> Optional[EdgeCollection]:
    """
    Read an edge list from a plain array, {"items": [...], "total": n}
    or {"edges": [...]}. Returns None for anything else.
    """
    if isinstance(value, list):
        raw_items, total = value, None
    else:
        record = to_record(value)
        if record is None:
            return None
        if isinstance(record.get("items"), list):
            raw_items = record["items"]
        elif isinstance(record.get("edges"), list):
            raw_items = record["edges"]
        else:
            return None
        total = to_number(record.get("total"))

    items = [
        edge for edge in (normalize_edge_record(raw, node_id) for raw in raw_items)
        if edge is not None
    ]
    return EdgeCollection(items=items, total=total)


def _first_non_empty_collection(
    sources: Sequence[Extractor],
    payload: Dict[str, Any],
    node_id: str,
) -> EdgeCollection:
    """
    First source yielding at least one edge. When all are empty, the first
    recognised collection is kept so its explicit total survives.
    """
    fallback: Optional[EdgeCollection] = None
    for source in sources:
        collection = normalize_edge_collection(source(payload), node_id)
        if collection is None:
            continue
        if collection.items:
            return collection
        if fallback is None:
            fallback = collection
    return fallback or EdgeCollection(items=[])


# =============================================================================
# Nodes
# =============================================================================

def _require_record(payload: Any, resource: str) -> Dict[str, Any]:
    record = to_record(payload)
    if record is None:
        raise ShapeError(
            f"Expected a JSON object for {resource}, got {type(payload).__name__}",
            resource=resource,
        )
    return record


def _resolve_node_id(record: Dict[str, Any], node_id: Optional[str], resource: str) -> str:
    resolved = to_string(record.get("id")) or node_id
    if not resolved:
        raise ShapeError(f"Node id missing from {resource} response", resource=resource)
    return resolved


def normalize_node_detail(payload: Any, node_id: Optional[str]) -> NodeDetail:
    """
    Normalize GET nodes/{id}.

    The payload id wins; the requested id is used when the server omits it.
    Edge directions are computed against the resolved id.

    Raises:
        ShapeError: If the payload is not an object or no id can be resolved
    """
    record = _require_record(payload, "node detail")
    resolved_id = _resolve_node_id(record, node_id, "node detail")

    edges = _first_non_empty_collection(DETAIL_EDGE_SOURCES, record, resolved_id)
    suggestions = _first_non_empty_collection(DETAIL_SUGGESTION_SOURCES, record, resolved_id)

    edges_total = first_defined(DETAIL_EDGES_TOTAL_FIELDS, record)
    if edges_total is None:
        edges_total = edges.total if edges.total is not None else len(edges.items)

    suggestions_total = first_defined(DETAIL_SUGGESTIONS_TOTAL_FIELDS, record)
    if suggestions_total is None:
        suggestions_total = (
            suggestions.total if suggestions.total is not None else len(suggestions.items)
        )

    return NodeDetail(
        id=resolved_id,
        title=to_string(record.get("title")),
        body=to_string(record.get("body")),
        tags=to_unique_string_list(record.get("tags")),
        body_length=first_defined(BODY_LENGTH_FIELDS, record),
        edges=edges.items,
        edges_total=edges_total,
        suggestions=suggestions.items,
        suggestions_total=suggestions_total,
    )


def _node_content_fields(record: Dict[str, Any], node_id: str) -> NodeContent:
    return NodeContent(
        id=node_id,
        title=to_string(record.get("title")),
        body=to_string(record.get("body")),
        tags=to_unique_string_list(record.get("tags")),
        short_id=to_string(record.get("shortId")),
        body_length=first_defined(BODY_LENGTH_FIELDS, record),
        created_at=to_string(record.get("createdAt")),
        updated_at=to_string(record.get("updatedAt")),
    )


def normalize_node_content(payload: Any, node_id: Optional[str]) -> NodeContent:
    """
    Normalize GET nodes/{id}/content.

    Raises:
        ShapeError: If the payload is not an object or no id can be resolved
    """
    record = _require_record(payload, "node content")
    return _node_content_fields(record, _resolve_node_id(record, node_id, "node content"))


def normalize_node_summary(raw: Any) -> Optional[NodeSummary]:
    record = to_record(raw)
    if record is None:
        return None
    node_id = to_string(record.get("id"))
    if not node_id:
        return None
    return NodeSummary(
        id=node_id,
        title=to_string(record.get("title")),
        short_id=to_string(record.get("shortId")),
        tags=to_unique_string_list(record.get("tags")),
        body_preview=to_string(record.get("bodyPreview")),
        body_length=first_defined(BODY_LENGTH_FIELDS, record),
        created_at=to_string(record.get("createdAt")),
        updated_at=to_string(record.get("updatedAt")),
    )


def _list_container(payload: Any, keys: Sequence[str], resource: str) -> Tuple[List[Any], Dict[str, Any]]:
    """Split a list response into (raw items, wrapper object)."""
    if isinstance(payload, list):
        return payload, {}
    record = to_record(payload)
    if record is not None:
        for key in keys:
            if isinstance(record.get(key), list):
                return record[key], record
    logger.warning(f"Unexpected response shape from /{resource} endpoint, treating as empty")
    return [], {}


def normalize_node_list(payload: Any) -> NodeList:
    """Normalize GET nodes: a bare array, {items, total, limit, offset} or legacy {nodes, ...}."""
    raw_items, wrapper = _list_container(payload, NODE_LIST_CONTAINER_KEYS, "nodes")
    items = []
    for raw in raw_items:
        summary = normalize_node_summary(raw)
        if summary is None:
            logger.debug(f"Dropping node list entry without id: {raw!r}")
            continue
        items.append(summary)
    return NodeList(
        items=items,
        total=to_number(wrapper.get("total")),
        limit=to_number(wrapper.get("limit")),
        offset=to_number(wrapper.get("offset")),
    )


def normalize_tag(raw: Any) -> Optional[TagSummary]:
    if isinstance(raw, str):
        return TagSummary(name=raw) if raw else None
    record = to_record(raw)
    if record is None:
        return None
    name = first_defined((string_at("name"), string_at("tag")), record)
    if not name:
        return None
    return TagSummary(name=name, count=to_number(record.get("count")))


def normalize_tag_list(payload: Any) -> List[TagSummary]:
    """Normalize GET tags: a bare array, {items} or legacy {tags}."""
    raw_items, _ = _list_container(payload, TAG_LIST_CONTAINER_KEYS, "tags")
    return [tag for tag in (normalize_tag(raw) for raw in raw_items) if tag is not None]


# =============================================================================
# Events
# =============================================================================

def normalize_event(payload: Any) -> Optional[DomainEvent]:
    """
    Turn a decoded event frame into a DomainEvent.

    Returns None when the frame is not an object with a string `type`;
    the caller decides how to report it.
    """
    record = to_record(payload)
    if record is None or not isinstance(record.get("type"), str):
        return None

    event_type = record["type"]
    try:
        kind = EventKind(event_type)
    except ValueError:
        return UnknownEvent(type=event_type, payload=record)

    if kind in (EventKind.NODE_CREATED, EventKind.NODE_UPDATED):
        node_record = to_record(record.get("node"))
        node = None
        if node_record is not None and to_string(node_record.get("id")):
            node = _node_content_fields(node_record, to_string(node_record["id"]))
        return NodeEvent(type=event_type, payload=record, node=node)

    if kind == EventKind.NODE_DELETED:
        return NodeDeletedEvent(
            type=event_type,
            payload=record,
            node_id=first_defined(NODE_DELETED_ID_FIELDS, record),
        )

    if kind == EventKind.TAG_RENAMED:
        return TagRenamedEvent(
            type=event_type,
            payload=record,
            old=to_string(record.get("old")),
            new=to_string(record.get("new")),
        )

    edge = to_record(record.get("edge")) or {}
    event_class = EdgeDeletedEvent if kind == EventKind.EDGE_DELETED else EdgeEvent
    return event_class(
        type=event_type,
        payload=record,
        edge=edge,
        edge_id=first_defined(EDGE_EVENT_ID_FIELDS, record),
        source_id=first_defined(EDGE_SOURCE_ID_FIELDS, edge),
        target_id=first_defined(EDGE_TARGET_ID_FIELDS, edge),
    )
