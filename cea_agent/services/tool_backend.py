"""HTTP client for the CEA tool backend (an MCP server) with retry logic and
timeout handling.

The backend speaks JSON-RPC 2.0 over a single HTTP endpoint.  A session is
opened lazily with ``initialize``; the ``Mcp-Session-Id`` header issued by
the server is echoed on every later request.  Responses arrive either as
plain JSON or framed as server-sent events.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from cea_agent.config import TOOL_BACKEND_API_KEY, TOOL_BACKEND_TIMEOUT_SECONDS, TOOL_BACKEND_URL
from cea_agent.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0

PROTOCOL_VERSION = "2025-03-26"
SESSION_HEADER = "Mcp-Session-Id"


class ToolBackendError(Exception):
    """Raised when a tool backend call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass
class ToolCallResult:
    """Outcome of ``tools/call``: text content plus optional structured data."""

    text: str
    structured: dict[str, Any] | None = None
    is_error: bool = False
    raw: dict[str, Any] = field(default_factory=dict)


def _parse_body(response: httpx.Response) -> dict[str, Any]:
    """Decode a JSON or SSE-framed JSON-RPC response body."""
    content_type = response.headers.get("content-type", "")
    if content_type.startswith("text/event-stream"):
        payload = None
        for line in response.text.splitlines():
            if line.startswith("data:"):
                payload = line[len("data:"):].strip()
        if not payload:
            raise ToolBackendError("Empty event stream from tool backend")
        return json.loads(payload)
    return response.json()


def _result_to_text(result: dict[str, Any]) -> str:
    parts = [
        item.get("text", "")
        for item in result.get("content") or []
        if isinstance(item, dict) and item.get("type") == "text"
    ]
    if parts:
        return "\n".join(parts)
    if result.get("structuredContent") is not None:
        return json.dumps(result["structuredContent"], ensure_ascii=False)
    return "OK"


class ToolBackendClient:
    """Thin JSON-RPC client for the tool backend with automatic retries.

    Transport failures (timeouts, refused connections) and 5xx answers are
    retried with exponential backoff; 4xx answers and JSON-RPC errors are
    raised immediately.
    """

    def __init__(
        self,
        server_url: str | None = None,
        *,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        self._server_url = server_url or TOOL_BACKEND_URL
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        token = api_key or TOOL_BACKEND_API_KEY
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            headers=headers,
            timeout=timeout or TOOL_BACKEND_TIMEOUT_SECONDS,
        )
        self._ids = itertools.count(1)
        self._session_id: str | None = None
        self._session_lock = threading.Lock()

    # ── Internal helpers ─────────────────────────────────────────────

    def _post(self, payload: dict[str, Any]) -> httpx.Response:
        """POST one JSON-RPC message with exponential-backoff retries."""
        headers = {SESSION_HEADER: self._session_id} if self._session_id else None
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = self._client.post(self._server_url, json=payload, headers=headers)
                if response.status_code >= 500:
                    raise ToolBackendError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise ToolBackendError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                return response

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                logger.warning(
                    "Tool backend attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except ToolBackendError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Tool backend server error on attempt %d/%d. Retrying…",
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    raise

            if attempt < MAX_RETRIES:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise ToolBackendError(
            f"Tool backend request failed after {MAX_RETRIES} retries: {last_error}"
        )

    def _rpc(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            payload["params"] = params
        body = _parse_body(self._post(payload))
        if not isinstance(body, dict):
            raise ToolBackendError(f"Malformed response to {method}: expected an object")
        if "error" in body:
            error = body["error"]
            if isinstance(error, dict):
                raise ToolBackendError(
                    f"Tool backend error {error.get('code')}: {error.get('message', 'unknown error')}"
                )
            raise ToolBackendError(f"Tool backend error: {error}")
        result = body.get("result") or {}
        if not isinstance(result, dict):
            raise ToolBackendError(f"Malformed result for {method}: expected an object")
        return result

    def _ensure_session(self) -> None:
        """Run the ``initialize`` handshake once per client."""
        with self._session_lock:
            if self._session_id is not None:
                return
            payload = {
                "jsonrpc": "2.0",
                "id": next(self._ids),
                "method": "initialize",
                "params": {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {},
                    "clientInfo": {"name": "cea-agent", "version": "1.0.0"},
                },
            }
            response = self._post(payload)
            # Servers without session support still get a marker so we
            # don't repeat the handshake on every call.
            self._session_id = response.headers.get(SESSION_HEADER, "")
            self._post({"jsonrpc": "2.0", "method": "notifications/initialized"})
            logger.debug("Tool backend session initialised (%s)", self._session_id or "stateless")

    # ── Public API ───────────────────────────────────────────────────

    def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolCallResult:
        """Execute one remote tool and return its content."""
        t0 = time.perf_counter()
        try:
            self._ensure_session()
            result = self._rpc("tools/call", {"name": name, "arguments": arguments or {}})
        except (ToolBackendError, httpx.HTTPError, ValueError) as exc:
            metrics.record_call(
                "tool_backend", name,
                latency_ms=(time.perf_counter() - t0) * 1000,
                error_type=type(exc).__name__,
            )
            if isinstance(exc, ToolBackendError):
                raise
            raise ToolBackendError(f"Tool backend call {name} failed: {exc}") from exc

        metrics.record_call("tool_backend", name, latency_ms=(time.perf_counter() - t0) * 1000)
        structured = result.get("structuredContent")
        return ToolCallResult(
            text=_result_to_text(result),
            structured=structured if isinstance(structured, dict) else None,
            is_error=bool(result.get("isError")),
            raw=result,
        )

    def list_tools(self) -> list[dict[str, Any]]:
        """Names and schemas of the tools the backend exposes."""
        self._ensure_session()
        return self._rpc("tools/list").get("tools", [])

    def close(self) -> None:
        self._client.close()


# ── Module-level singleton ──────────────────────────────────────────
_client_instance: ToolBackendClient | None = None
_client_lock = threading.Lock()


def get_tool_backend() -> ToolBackendClient:
    """Return the shared ToolBackendClient (created lazily, thread-safe)."""
    global _client_instance
    if _client_instance is None:
        with _client_lock:
            if _client_instance is None:
                _client_instance = ToolBackendClient()
    return _client_instance
