"""
Camper Version Management - Centralized version for all components

Single source of truth for the Camper client version. The CLI and the
User-Agent header both read from here.
"""

# =============================================================================
# Camper Version - Single Source of Truth
# =============================================================================

__version__ = "0.4.0"

VERSION_MAJOR = 0
VERSION_MINOR = 4
VERSION_PATCH = 0
VERSION_SUFFIX = ""  # e.g., "alpha", "beta", "rc1", ""

VERSION_FULL = f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}"
if VERSION_SUFFIX:
    VERSION_FULL = f"{VERSION_FULL}-{VERSION_SUFFIX}"


def get_user_agent() -> str:
    """User-Agent sent with every HTTP request."""
    return f"camper/{VERSION_FULL}"
