"""
Logging Utilities for Camper

Every module logs through logging.getLogger(__name__); this module only
installs the handler and levels for applications and the CLI.
"""

import logging
import re
import sys
from enum import Enum
from typing import Optional, TextIO

from camper_core.config import LoggingConfig

REQUEST_LOGGER = "camper_core.executor"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


class LogLevel(str, Enum):
    """Log levels accepted in configuration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def parse(cls, value: Optional[str], default: "LogLevel" = None) -> "LogLevel":
        try:
            return cls(str(value).upper())
        except ValueError:
            return default or cls.INFO


# Patterns for secret masking (credentials in URLs, tokens, keys)
SECRET_PATTERNS = [
    (re.compile(r"(\w+://)([^/@\s:]+):([^/@\s]+)@"), r"\1\2:***@"),
    (re.compile(r"(API_KEY|TOKEN|SECRET|PASSWORD|AUTH)=([^&\s]+)", re.I), r"\1=***"),
    (re.compile(r"(Bearer|token)\s+([a-zA-Z0-9_\-\.]+)", re.I), r"\1 ***"),
]


def mask_secrets(text: str) -> str:
    """
    Mask secrets in text before logging.

    Args:
        text: Raw text that may contain secrets

    Returns:
        Text with secrets replaced by ***
    """
    masked = text
    for pattern, replacement in SECRET_PATTERNS:
        masked = pattern.sub(replacement, masked)
    return masked


def configure_logging(
    config: Optional[LoggingConfig] = None,
    stream: Optional[TextIO] = None,
    fmt: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """
    Install a stream handler on the camper_core logger.

    With config.debug_requests the request executor logs every
    `METHOD url` and response status at DEBUG, whatever the base level.

    Returns:
        The camper_core package logger
    """
    config = config or LoggingConfig()
    level = LogLevel.parse(config.level)

    package_logger = logging.getLogger("camper_core")
    package_logger.setLevel(level.value)

    # Replace a handler installed by an earlier call
    for handler in list(package_logger.handlers):
        if getattr(handler, "_camper_handler", False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    handler._camper_handler = True
    package_logger.addHandler(handler)

    request_logger = logging.getLogger(REQUEST_LOGGER)
    if config.debug_requests:
        request_logger.setLevel(logging.DEBUG)
    else:
        request_logger.setLevel(logging.NOTSET)

    return package_logger
