"""
Tag Favorites - Recently used tag filter sets

Favorites are persisted as a JSON array in the config directory
(tag-favorites.json by default), most recent first, capped at
MAX_FAVORITES. Tag comparison is case-insensitive and ignores a leading '#'.

All update functions are pure: they take the current list and return the
new one, or None when nothing changed (so callers can skip the write).
"""

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

MAX_FAVORITES = 15


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class TagFavorite:
    """One remembered tag filter."""
    tags: List[str]
    last_used_at: str
    usage_count: int = 1

    @property
    def key(self) -> str:
        return favorite_key(self.tags)

    @property
    def last_used(self) -> datetime:
        return _parse_timestamp(self.last_used_at) or datetime.min.replace(tzinfo=timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tags": list(self.tags),
            "lastUsedAt": self.last_used_at,
            "usageCount": self.usage_count,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["TagFavorite"]:
        """Lenient parse of a stored entry; None when it has no usable tags."""
        if not isinstance(data, dict):
            return None
        raw_tags = data.get("tags")
        if not isinstance(raw_tags, list):
            return None
        tags = [tag for tag in raw_tags if isinstance(tag, str)]
        if not tags:
            return None

        last_used_at = data.get("lastUsedAt")
        if _parse_timestamp(last_used_at) is None:
            last_used_at = _now_iso()

        usage_count = data.get("usageCount")
        if (
            not isinstance(usage_count, (int, float))
            or isinstance(usage_count, bool)
            or not math.isfinite(usage_count)
            or usage_count < 0
        ):
            usage_count = 1

        return cls(tags=tags, last_used_at=last_used_at, usage_count=int(usage_count))


# =============================================================================
# Tag helpers
# =============================================================================

def normalize_tag_name(name: str) -> str:
    """'  #Python ' -> 'python'"""
    return _strip_hash(name.strip()).lower()


def dedupe_tags(tags: Iterable[str]) -> List[str]:
    """Trim tags and drop blanks and case-insensitive duplicates, keeping first spelling."""
    seen = set()
    result: List[str] = []
    for tag in tags:
        trimmed = tag.strip()
        normalized = normalize_tag_name(trimmed)
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        result.append(trimmed)
    return result


def parse_tags(text: str) -> List[str]:
    """Comma-separated tag input, e.g. '#python, ml,,Python' -> ['python', 'ml']."""
    if not text:
        return []
    tokens = [_strip_hash(token.strip()) for token in text.split(",")]
    return dedupe_tags(tokens)


def _strip_hash(token: str) -> str:
    return token[1:] if token.startswith("#") else token


def favorite_key(tags: Iterable[str]) -> str:
    return "|".join(normalize_tag_name(tag) for tag in tags)


def _same_tags(a: List[str], b: List[str]) -> bool:
    return len(a) == len(b) and all(
        normalize_tag_name(x) == normalize_tag_name(y) for x, y in zip(a, b)
    )


# =============================================================================
# Persistence
# =============================================================================

def load_tag_favorites(path: Path) -> List[TagFavorite]:
    """
    Read favorites from path. A missing file is an empty list; unreadable
    or malformed content is logged and also yields an empty list.
    """
    path = Path(path)
    try:
        contents = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning(f"Failed to read tag favorites from {path}: {e}")
        return []

    try:
        parsed = json.loads(contents)
    except ValueError as e:
        logger.warning(f"Failed to parse tag favorites in {path}: {e}")
        return []

    if not isinstance(parsed, list):
        logger.warning(f"Ignoring tag favorites in {path}: expected a JSON array")
        return []

    favorites = []
    for entry in parsed:
        favorite = TagFavorite.from_dict(entry)
        if favorite is not None:
            favorites.append(favorite)
    return favorites


def save_tag_favorites(path: Path, favorites: List[TagFavorite]) -> bool:
    """Write favorites, creating the directory. Failures are logged; returns success."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([favorite.to_dict() for favorite in favorites], indent=2)
        path.write_text(payload, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Failed to persist tag favorites to {path}: {e}")
        return False
    logger.debug(f"Saved {len(favorites)} tag favorites to {path}")
    return True


# =============================================================================
# Updates
# =============================================================================

def record_favorite(
    favorites: List[TagFavorite],
    tags: Iterable[str],
    only_bump: bool = False,
) -> Optional[List[TagFavorite]]:
    """
    Move a tag set to the front, bumping its usage count, or add it.

    Args:
        favorites: Current favorites, most recent first
        tags: Tag set just used
        only_bump: Update an existing entry but never add a new one

    Returns:
        New list, or None if nothing changed
    """
    normalized = dedupe_tags(tags)
    if not normalized:
        return None

    key = favorite_key(normalized)
    now = _now_iso()
    for index, existing in enumerate(favorites):
        if existing.key == key:
            bumped = TagFavorite(normalized, now, existing.usage_count + 1)
            rest = favorites[:index] + favorites[index + 1:]
            return ([bumped] + rest)[:MAX_FAVORITES]

    if only_bump:
        return None
    return ([TagFavorite(normalized, now, 1)] + list(favorites))[:MAX_FAVORITES]


def remove_favorite(favorites: List[TagFavorite], index: int) -> Optional[List[TagFavorite]]:
    if index < 0 or index >= len(favorites):
        return None
    return favorites[:index] + favorites[index + 1:]


def rename_tag_in_favorites(
    favorites: List[TagFavorite],
    old_name: str,
    new_name: str,
) -> Optional[List[TagFavorite]]:
    """
    Apply a tag rename to every favorite. Sets that become identical are
    merged (usage counts summed, latest timestamp kept). Result is sorted by
    last use, then usage count.

    Returns:
        New list, or None if no favorite referenced old_name
    """
    normalized_old = normalize_tag_name(old_name)
    cleaned_new = new_name.strip()
    if not cleaned_new or normalized_old == normalize_tag_name(cleaned_new):
        return None

    changed = False
    merged: Dict[str, TagFavorite] = {}
    for favorite in favorites:
        updated = [
            cleaned_new if normalize_tag_name(tag) == normalized_old else tag
            for tag in favorite.tags
        ]
        if not _same_tags(favorite.tags, updated):
            changed = True
        tags = dedupe_tags(updated)
        if not tags:
            continue

        key = favorite_key(tags)
        existing = merged.get(key)
        if existing is None:
            merged[key] = TagFavorite(tags, favorite.last_used_at, favorite.usage_count)
        else:
            latest = existing if existing.last_used > favorite.last_used else favorite
            merged[key] = TagFavorite(
                tags,
                latest.last_used_at,
                existing.usage_count + favorite.usage_count,
            )

    if not changed:
        return None

    ordered = sorted(
        merged.values(),
        key=lambda favorite: (favorite.last_used, favorite.usage_count),
        reverse=True,
    )
    return ordered[:MAX_FAVORITES]
