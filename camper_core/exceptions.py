"""Exceptions raised by the Forest client."""

from typing import Any, Optional


class ForestError(Exception):
    """Base exception for Forest client operations."""
    pass


class TransportError(ForestError):
    """Raised on non-2xx responses, network failures and undecodable bodies."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class RequestTimeoutError(ForestError, TimeoutError):
    """Raised when no response arrives within the configured duration."""

    def __init__(self, timeout_ms: float, url: Optional[str] = None):
        self.timeout_ms = timeout_ms
        self.url = url
        super().__init__(f"Forest request timed out after {timeout_ms:g}ms")


class ProtocolError(ForestError):
    """Raised when a response envelope declares success: false."""

    def __init__(self, message: str, envelope: Any = None):
        self.envelope = envelope
        super().__init__(message)


class EventDecodeError(ForestError):
    """Raised for an event frame that is not a well-formed event. Reported, never propagated."""

    def __init__(self, message: str, frame: Any = None):
        self.frame = frame
        super().__init__(message)


class ShapeError(ForestError):
    """Raised when a required identifying field cannot be resolved."""

    def __init__(self, message: str, resource: Optional[str] = None):
        self.resource = resource
        super().__init__(message)
