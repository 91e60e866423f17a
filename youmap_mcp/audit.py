"""
Best-effort reporting of tool calls to the YouMap internal log endpoint.

Each tool call made through the HTTP front-ends is posted to

    POST <YOUMAP_API_URL>/internal/ai-logs/mcp-tool-call
    X-Internal-API-Key: <YOUMAP_INTERNAL_API_KEY>

with the tool name, parameters, outcome and timing. Reporting never affects
the tool call itself: when the endpoint is not configured the report is
skipped, and delivery failures are logged and dropped.

Calls sharing a correlation ID (X-Correlation-ID header) are numbered in
the order this process saw them.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

import httpx
from cachetools import TTLCache

from youmap_mcp.client import YouMapClient
from youmap_mcp.tools import call_tool

LOG_PATH = "/internal/ai-logs/mcp-tool-call"
CORRELATION_HEADER = "x-correlation-id"

# Sequence counters are kept for this many correlation IDs, for this long.
SEQUENCE_CACHE_SIZE = 10_000
SEQUENCE_TTL = 60 * 60

logger = logging.getLogger(__name__)


def extract_correlation_id(headers: Mapping[str, str] | None) -> str | None:
    """Read X-Correlation-ID regardless of header-name casing."""
    if not headers:
        return None
    for name, value in headers.items():
        if name.lower() == CORRELATION_HEADER and value:
            return value
    return None


class ToolCallAuditor:
    def __init__(
        self,
        api_url: str | None,
        api_key: str | None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sequence_cache_size: int = SEQUENCE_CACHE_SIZE,
        sequence_ttl: float = SEQUENCE_TTL,
    ) -> None:
        self._api_url = api_url.rstrip("/") if api_url else None
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._sequence: TTLCache[str, int] = TTLCache(maxsize=sequence_cache_size, ttl=sequence_ttl)
        self._warned = False

    @classmethod
    def from_settings(cls, settings, transport: httpx.AsyncBaseTransport | None = None) -> "ToolCallAuditor":
        return cls(
            settings.api_url,
            settings.internal_api_key,
            timeout=settings.audit_timeout,
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._api_url and self._api_key)

    def next_sequence(self, correlation_id: str) -> int:
        sequence = self._sequence.get(correlation_id, 0) + 1
        self._sequence[correlation_id] = sequence
        return sequence

    async def record(
        self,
        *,
        correlation_id: str,
        tool_name: str,
        parameters: Any,
        response: Any,
        error: str | None,
        duration_ms: int,
        success: bool,
        client_id: str | None = None,
    ) -> None:
        if not self.enabled:
            if not self._warned:
                logger.warning(
                    "YOUMAP_API_URL or YOUMAP_INTERNAL_API_KEY not configured - skipping tool call logs"
                )
                self._warned = True
            return

        sequence = self.next_sequence(correlation_id)
        entry = {
            "correlationId": correlation_id,
            "toolName": tool_name,
            "parameters": parameters,
            "response": response,
            "error": error,
            "duration": duration_ms,
            "success": success,
            "sequenceNumber": sequence,
            "clientId": client_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as http:
                result = await http.post(
                    f"{self._api_url}{LOG_PATH}",
                    json=entry,
                    headers={"X-Internal-API-Key": self._api_key},
                )
                result.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("Failed to log tool call to API: %s", e)
            return

        logger.info(
            "Logged tool call",
            extra={
                "event_data": {
                    "tool": tool_name,
                    "correlation_id": correlation_id,
                    "sequence": sequence,
                }
            },
        )


async def audited_call(
    auditor: ToolCallAuditor,
    name: str,
    arguments: dict[str, Any] | None,
    client: YouMapClient,
    *,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Run a tool through the dispatcher and report the outcome.

    The tool's result or exception is passed through unchanged.
    """
    correlation_id = correlation_id or str(uuid.uuid4())
    started = time.perf_counter()
    result = None
    failure: Exception | None = None
    try:
        result = await call_tool(name, arguments, client)
        return result
    except Exception as e:
        failure = e
        raise
    finally:
        await auditor.record(
            correlation_id=correlation_id,
            tool_name=name,
            parameters=arguments,
            response=result,
            error=str(failure) if failure else None,
            duration_ms=int((time.perf_counter() - started) * 1000),
            success=failure is None,
            client_id=client.credentials.client_id,
        )
