"""
Request Executor - HTTP calls against the Forest API

Builds URLs from the base URL, the API prefix and a resource path, runs the
request on a shared httpx.AsyncClient under a per-request deadline, and
unwraps the response envelope.

Error mapping:
    no response in time       -> RequestTimeoutError
    non-2xx status            -> TransportError (status_code, body)
    connection/network error  -> TransportError
    body is not JSON          -> TransportError
    envelope success: false   -> ProtocolError (from unwrap_envelope)
    204 No Content            -> None
"""

import logging
import re
from typing import Any, Iterable, List, Optional, Tuple
from urllib.parse import quote, urlencode, urljoin, urlsplit, urlunsplit

import httpx

from camper_core.envelope import unwrap_envelope
from camper_core.exceptions import RequestTimeoutError, TransportError
from camper_core.logging_utils import mask_secrets
from camper_core.resilience import Timeout
from camper_core.version import get_user_agent

logger = logging.getLogger(__name__)

_ABSOLUTE_HTTP = re.compile(r"^https?://", re.IGNORECASE)


# =============================================================================
# URL helpers
# =============================================================================

def normalize_base_url(base: str) -> str:
    """Drop query, fragment and trailing slashes from the base URL."""
    parts = urlsplit(base.strip())
    if parts.scheme and parts.netloc:
        return urlunsplit((parts.scheme, parts.netloc, parts.path.rstrip("/"), "", ""))
    return base.strip().rstrip("/")


def normalize_api_prefix(prefix: Optional[str]) -> str:
    """'/api/v1/' -> '/api/v1', 'api' -> '/api', '/' or '' -> ''."""
    if not prefix:
        return ""
    trimmed = prefix.strip()
    if trimmed in ("", "/"):
        return ""
    if not trimmed.startswith("/"):
        trimmed = f"/{trimmed}"
    return trimmed.rstrip("/")


def build_api_path(path: str, api_prefix: str) -> str:
    """Prefix a resource path with the API prefix; absolute URLs pass through."""
    if _ABSOLUTE_HTTP.match(path):
        return path
    normalized = path.lstrip("/")
    if not api_prefix:
        return normalized
    return f"{api_prefix}/{normalized}".rstrip("/")


def build_http_url(base_url: str, path: str) -> str:
    if _ABSOLUTE_HTTP.match(path):
        return path
    normalized = path.lstrip("/")
    if not normalized:
        return base_url
    return f"{base_url}/{normalized}"


def build_ws_url(base_url: str, path: str = "/ws") -> str:
    """
    WebSocket URL for path resolved against the base URL, with http -> ws
    and https -> wss. An absolute path replaces the base path.
    """
    resolved = urljoin(base_url if base_url.endswith("/") else f"{base_url}/", path)
    parts = urlsplit(resolved)
    if parts.scheme in ("http", "https"):
        scheme = "wss" if parts.scheme == "https" else "ws"
        return urlunsplit((scheme, parts.netloc, parts.path, parts.query, ""))
    if parts.scheme in ("ws", "wss"):
        return resolved
    return f"ws://{base_url.rstrip('/')}/{path.lstrip('/')}"


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_query(pairs: Iterable[Tuple[str, Any]]) -> str:
    """
    Serialize ordered (key, value) pairs. None values are skipped, booleans
    become true/false and list values repeat the key.
    """
    flat: List[Tuple[str, str]] = []
    for key, value in pairs:
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            flat.extend((key, _query_value(item)) for item in value if item is not None)
        else:
            flat.append((key, _query_value(value)))
    return urlencode(flat)


def node_path(node_id: str, suffix: str = "") -> str:
    """nodes/{id} with the id percent-encoded."""
    path = f"nodes/{quote(node_id, safe='')}"
    return f"{path}/{suffix}" if suffix else path


# =============================================================================
# Executor
# =============================================================================

class RequestExecutor:
    """
    Issue Forest API requests.

    Example:
        async with RequestExecutor("http://localhost:3000", "/api/v1", 5000) as executor:
            payload = await executor.request("health")
    """

    def __init__(
        self,
        base_url: str,
        api_prefix: str = "/api/v1",
        timeout_ms: float = 5000,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Server root, e.g. http://localhost:3000
            api_prefix: Path prefix for API resources
            timeout_ms: Per-request deadline in milliseconds
            http_client: Shared client to use instead of creating one (not closed by us)
            transport: Transport for the client we create (tests use httpx.MockTransport)
        """
        self.base_url = normalize_base_url(base_url)
        self.api_prefix = normalize_api_prefix(api_prefix)
        self.timeout_ms = timeout_ms
        self._external_client = http_client
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self._external_client or httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
                headers={"Accept": "application/json", "User-Agent": get_user_agent()},
            )
        return self._client

    def build_url(self, path: str, query: Optional[Iterable[Tuple[str, Any]]] = None) -> str:
        url = build_http_url(self.base_url, build_api_path(path, self.api_prefix))
        query_string = build_query(query or [])
        if query_string:
            url = f"{url}?{query_string}"
        return url

    async def request(
        self,
        path: str,
        method: str = "GET",
        query: Optional[Iterable[Tuple[str, Any]]] = None,
        body: Any = None,
    ) -> Any:
        """
        Perform one API call and return the unwrapped payload.

        Raises:
            RequestTimeoutError: No response within timeout_ms
            TransportError: Non-2xx status, network failure or malformed JSON
            ProtocolError: Envelope with success: false
        """
        url = self.build_url(path, query)
        logger.debug(f"[Forest] {method} {mask_secrets(url)}")
        deadline = Timeout(
            self.timeout_seconds,
            lambda: RequestTimeoutError(self.timeout_ms, url),
        )
        return await deadline.execute(self._send(method, url, body))

    async def _send(self, method: str, url: str, body: Any) -> Any:
        client = self._get_client()
        try:
            response = await client.request(method, url, json=body)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self.timeout_ms, url) from e
        except httpx.RequestError as e:
            raise TransportError(f"Forest request failed ({method} {url}): {e}") from e

        logger.debug(f"[Forest] Response: {response.status_code} {response.reason_phrase}")

        if not response.is_success:
            text = response.text
            raise TransportError(
                f"Forest request failed ({response.status_code} {response.reason_phrase}): {text}",
                status_code=response.status_code,
                body=text,
            )

        if response.status_code == 204:
            return None

        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(
                f"Malformed JSON in response from {url}: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        return unwrap_envelope(payload)

    async def aclose(self):
        """Close the HTTP client if we created it."""
        if self._client is not None and self._client is not self._external_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "RequestExecutor":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
