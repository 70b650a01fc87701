"""
Camper Configuration
====================

Loads configuration from camper.yaml with environment variable overrides.
The resolved ClientConfig is what ForestClient is built from; the client
itself never reads the environment.
"""

import math
import os
import yaml
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "camper.yaml"

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_API_PREFIX = "/api/v1"
DEFAULT_TIMEOUT_MS = 5000
DEFAULT_CONFIG_DIR = "~/.camper"
DEFAULT_FAVORITES_FILE = "tag-favorites.json"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# =============================================================================
# Configuration Data Classes
# =============================================================================

@dataclass
class ClientConfig:
    """Forest server connection."""
    base_url: str = DEFAULT_BASE_URL
    api_prefix: str = DEFAULT_API_PREFIX
    timeout_ms: float = DEFAULT_TIMEOUT_MS


@dataclass
class EventStreamConfig:
    """Push event stream settings."""
    path: str = "/ws"
    protocols: List[str] = field(default_factory=list)
    retry_delay_ms: float = 5000


@dataclass
class StorageConfig:
    """Local files kept by the client."""
    config_dir: str = DEFAULT_CONFIG_DIR
    favorites_file: str = DEFAULT_FAVORITES_FILE

    @property
    def favorites_path(self) -> Path:
        return Path(self.config_dir).expanduser() / self.favorites_file


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    debug_requests: bool = False  # Trace every Forest request at DEBUG


@dataclass
class CamperConfig:
    """Root configuration container."""
    client: ClientConfig = field(default_factory=ClientConfig)
    events: EventStreamConfig = field(default_factory=EventStreamConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source: Optional[str] = None  # File the config was loaded from


# =============================================================================
# Configuration Loader
# =============================================================================

def find_config_file(start_path: Optional[Path] = None) -> Optional[Path]:
    """
    Find camper.yaml by searching upward from start_path.

    Search order:
    1. start_path / camper.yaml
    2. start_path / .camper / camper.yaml
    3. Parent directories (recursive)
    4. ~/.config/camper/camper.yaml

    Args:
        start_path: Starting directory (defaults to cwd)

    Returns:
        Path to config file or None if not found
    """
    if start_path is None:
        start_path = Path.cwd()

    start_path = Path(start_path).resolve()

    current = start_path
    for _ in range(10):  # Max 10 levels up
        candidates = [
            current / CONFIG_FILENAME,
            current / ".camper" / CONFIG_FILENAME,
        ]
        for candidate in candidates:
            if candidate.exists():
                return candidate

        parent = current.parent
        if parent == current:
            break
        current = parent

    user_config = Path.home() / ".config" / "camper" / CONFIG_FILENAME
    if user_config.exists():
        return user_config

    return None


def load_config(config_path: Optional[Path] = None, base_url: Optional[str] = None) -> CamperConfig:
    """
    Load configuration from YAML file with environment variable overrides.

    Environment variables override config file values:
    - CAMPER_FOREST_URL -> client.base_url
    - CAMPER_FOREST_API_PREFIX -> client.api_prefix
    - CAMPER_REQUEST_TIMEOUT_MS -> client.timeout_ms (positive numbers only)
    - CAMPER_CONFIG_DIR -> storage.config_dir
    - CAMPER_WS_PATH -> events.path
    - CAMPER_EVENT_RETRY_MS -> events.retry_delay_ms
    - CAMPER_LOG_LEVEL -> logging.level
    - DEBUG_FOREST_CLIENT -> logging.debug_requests

    Args:
        config_path: Path to config file (auto-detected if None)
        base_url: Explicit Forest URL (e.g. from --url); wins over file and
            environment and is validated like them

    Returns:
        CamperConfig instance
    """
    config = CamperConfig()

    if config_path is None:
        config_path = find_config_file()

    if config_path and Path(config_path).exists():
        config_path = Path(config_path)
        logger.info(f"Loading config from: {config_path}")
        try:
            with open(config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
            config = _parse_config_dict(data)
            config.source = str(config_path)
        except (OSError, yaml.YAMLError, AttributeError, TypeError) as e:
            logger.warning(f"Failed to load config: {e}, using defaults")
    else:
        logger.info("No config file found, using defaults")

    config = _apply_env_overrides(config)
    if base_url:
        config.client.base_url = base_url

    _validate_config(config)

    return config


def _parse_config_dict(data: Dict[str, Any]) -> CamperConfig:
    """Parse configuration dictionary into CamperConfig."""
    config = CamperConfig()

    if "client" in data:
        client = data["client"] or {}
        config.client = ClientConfig(
            base_url=client.get("base_url", config.client.base_url),
            api_prefix=client.get("api_prefix", config.client.api_prefix),
            timeout_ms=client.get("timeout_ms", config.client.timeout_ms),
        )

    if "events" in data:
        events = data["events"] or {}
        protocols = events.get("protocols", config.events.protocols)
        if isinstance(protocols, str):
            protocols = [protocols]
        config.events = EventStreamConfig(
            path=events.get("path", config.events.path),
            protocols=list(protocols or []),
            retry_delay_ms=events.get("retry_delay_ms", config.events.retry_delay_ms),
        )

    if "storage" in data:
        storage = data["storage"] or {}
        config.storage = StorageConfig(
            config_dir=storage.get("config_dir", config.storage.config_dir),
            favorites_file=storage.get("favorites_file", config.storage.favorites_file),
        )

    if "logging" in data:
        log = data["logging"] or {}
        config.logging = LoggingConfig(
            level=log.get("level", config.logging.level),
            debug_requests=log.get("debug_requests", config.logging.debug_requests),
        )

    return config


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _positive_number(raw: str) -> Optional[float]:
    try:
        parsed = float(raw)
    except ValueError:
        return None
    if math.isfinite(parsed) and parsed > 0:
        return parsed
    return None


def _apply_env_overrides(config: CamperConfig) -> CamperConfig:
    """Apply environment variable overrides to config."""

    if os.environ.get("CAMPER_FOREST_URL"):
        config.client.base_url = os.environ["CAMPER_FOREST_URL"]

    if os.environ.get("CAMPER_FOREST_API_PREFIX"):
        config.client.api_prefix = os.environ["CAMPER_FOREST_API_PREFIX"]

    if os.environ.get("CAMPER_REQUEST_TIMEOUT_MS"):
        raw = os.environ["CAMPER_REQUEST_TIMEOUT_MS"]
        timeout_ms = _positive_number(raw)
        if timeout_ms is None:
            logger.warning(f"Ignoring CAMPER_REQUEST_TIMEOUT_MS={raw!r}, keeping {config.client.timeout_ms:g}ms")
        else:
            config.client.timeout_ms = timeout_ms

    if os.environ.get("CAMPER_CONFIG_DIR"):
        config.storage.config_dir = os.environ["CAMPER_CONFIG_DIR"]

    if os.environ.get("CAMPER_WS_PATH"):
        config.events.path = os.environ["CAMPER_WS_PATH"]

    if os.environ.get("CAMPER_EVENT_RETRY_MS"):
        raw = os.environ["CAMPER_EVENT_RETRY_MS"]
        retry_ms = _positive_number(raw)
        if retry_ms is None:
            logger.warning(f"Ignoring CAMPER_EVENT_RETRY_MS={raw!r}")
        else:
            config.events.retry_delay_ms = retry_ms

    if os.environ.get("CAMPER_LOG_LEVEL"):
        config.logging.level = os.environ["CAMPER_LOG_LEVEL"]

    if os.environ.get("DEBUG_FOREST_CLIENT"):
        config.logging.debug_requests = _env_flag(os.environ["DEBUG_FOREST_CLIENT"])

    return config


def _is_positive(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


def _validate_config(config: CamperConfig) -> None:
    """Validate configuration; invalid values fall back to defaults with a warning."""

    base_url = config.client.base_url
    if not isinstance(base_url, str) or not base_url.strip().lower().startswith(("http://", "https://")):
        logger.warning(f"Invalid Forest URL '{base_url}', defaulting to '{DEFAULT_BASE_URL}'")
        config.client.base_url = DEFAULT_BASE_URL

    if not isinstance(config.client.api_prefix, str):
        logger.warning(f"Invalid API prefix '{config.client.api_prefix}', defaulting to '{DEFAULT_API_PREFIX}'")
        config.client.api_prefix = DEFAULT_API_PREFIX

    if not _is_positive(config.client.timeout_ms):
        logger.warning(f"Invalid request timeout '{config.client.timeout_ms}', defaulting to {DEFAULT_TIMEOUT_MS}ms")
        config.client.timeout_ms = DEFAULT_TIMEOUT_MS

    if not _is_positive(config.events.retry_delay_ms):
        logger.warning(f"Invalid event retry delay '{config.events.retry_delay_ms}', defaulting to 5000ms")
        config.events.retry_delay_ms = 5000

    if not isinstance(config.events.path, str) or not config.events.path:
        logger.warning(f"Invalid event stream path '{config.events.path}', defaulting to '/ws'")
        config.events.path = "/ws"

    level = str(config.logging.level).upper()
    if level not in VALID_LOG_LEVELS:
        logger.warning(f"Unknown log level '{config.logging.level}', defaulting to 'INFO'")
        level = "INFO"
    config.logging.level = level


def save_config(config: CamperConfig, path: Path) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: CamperConfig instance
        path: Output path
    """
    data = {
        "client": {
            "base_url": config.client.base_url,
            "api_prefix": config.client.api_prefix,
            "timeout_ms": config.client.timeout_ms,
        },
        "events": {
            "path": config.events.path,
            "protocols": list(config.events.protocols),
            "retry_delay_ms": config.events.retry_delay_ms,
        },
        "storage": {
            "config_dir": config.storage.config_dir,
            "favorites_file": config.storage.favorites_file,
        },
        "logging": {
            "level": config.logging.level,
            "debug_requests": config.logging.debug_requests,
        },
    }

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Configuration saved to: {path}")


def config_to_dict(config: CamperConfig) -> Dict[str, Any]:
    """Plain dict view used by `camper config`."""
    return {
        "source": config.source,
        "client": {
            "base_url": config.client.base_url,
            "api_prefix": config.client.api_prefix,
            "timeout_ms": config.client.timeout_ms,
        },
        "events": {
            "path": config.events.path,
            "protocols": list(config.events.protocols),
            "retry_delay_ms": config.events.retry_delay_ms,
        },
        "storage": {
            "config_dir": config.storage.config_dir,
            "favorites_path": str(config.storage.favorites_path),
        },
        "logging": {
            "level": config.logging.level,
            "debug_requests": config.logging.debug_requests,
        },
    }


# =============================================================================
# Global Config Instance
# =============================================================================

_global_config: Optional[CamperConfig] = None


def get_config() -> CamperConfig:
    """Get the global configuration instance (lazy-loaded)."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def reload_config(config_path: Optional[Path] = None) -> CamperConfig:
    """Reload configuration from file."""
    global _global_config
    _global_config = load_config(config_path)
    return _global_config
