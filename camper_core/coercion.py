"""
Coercion - Tolerant value extraction from untrusted JSON

Helpers used by the normalizers to read server payloads without ever
raising on missing or oddly-typed optional fields. Fallback chains are
expressed as tuples of extractor callables tried in order, so the
precedence of every chain can be declared once as a named constant and
tested on its own.
"""

import math
from typing import Any, Callable, Dict, List, Optional, Sequence

Extractor = Callable[[Any], Any]


def to_number(value: Any) -> Optional[float]:
    """Return value if it is a finite int or float, else None. Strings are not parsed."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return value
    return None


def to_string(value: Any) -> Optional[str]:
    """Return strings as-is and finite numbers stringified, else None."""
    if isinstance(value, str):
        return value
    number = to_number(value)
    if number is None:
        return None
    # Render 5.0 as "5", the way the server would print it
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return str(number)


def to_record(value: Any) -> Optional[Dict[str, Any]]:
    """Return value if it is a JSON object, else None."""
    if isinstance(value, dict):
        return value
    return None


def to_string_list(value: Any) -> List[str]:
    """String members of a list, in order. Anything else yields []."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def to_unique_string_list(value: Any) -> List[str]:
    """Like to_string_list but keeps only the first occurrence of each string."""
    seen = set()
    result = []
    for item in to_string_list(value):
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def non_blank(value: Any) -> Optional[str]:
    """Strings with visible content, else None."""
    if isinstance(value, str) and value.strip():
        return value
    return None


# =============================================================================
# Extractor builders
# =============================================================================

def lookup(source: Any, *path: str) -> Any:
    """Walk nested objects by key; None as soon as a step is not an object."""
    current = source
    for key in path:
        record = to_record(current)
        if record is None:
            return None
        current = record.get(key)
    return current


def field(*path: str) -> Extractor:
    """Extractor returning the raw value at path."""
    return lambda source: lookup(source, *path)


def number_at(*path: str) -> Extractor:
    """Extractor returning the finite number at path."""
    return lambda source: to_number(lookup(source, *path))


def string_at(*path: str) -> Extractor:
    """Extractor returning the string (or stringified number) at path."""
    return lambda source: to_string(lookup(source, *path))


def first_defined(extractors: Sequence[Extractor], source: Any) -> Any:
    """
    Apply extractors in order and return the first non-None result.

    Args:
        extractors: Ordered precedence chain
        source: Value handed to every extractor

    Returns:
        First defined value, or None when every extractor comes up empty
    """
    for extractor in extractors:
        value = extractor(source)
        if value is not None:
            return value
    return None
