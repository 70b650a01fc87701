"""
Envelope unwrapping shared by HTTP responses and event-stream frames.

The Forest server answers either with the raw payload or with
{success?, data, message?, error?}. A missing `success` is never a failure.
"""

from typing import Any

from camper_core.exceptions import ProtocolError

GENERIC_ERROR_MESSAGE = "Forest API responded with an error."


def is_envelope(payload: Any) -> bool:
    return isinstance(payload, dict) and "data" in payload


def unwrap_envelope(payload: Any) -> Any:
    """
    Return the inner `data` of an envelope, or the payload itself.

    Raises:
        ProtocolError: If the envelope declares success: false
    """
    if not is_envelope(payload):
        return payload

    if payload.get("success") is False:
        error = payload.get("error")
        message = payload.get("message")
        if isinstance(error, str):
            reason = error
        elif isinstance(message, str) and message:
            reason = message
        else:
            reason = GENERIC_ERROR_MESSAGE
        raise ProtocolError(reason, envelope=payload)

    return payload["data"]
