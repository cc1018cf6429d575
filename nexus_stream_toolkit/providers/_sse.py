"""Shared plumbing for adapters that speak raw HTTP + server-sent events."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator, AsyncIterable, Dict, Optional, Tuple

import httpx

from ..exceptions import ProviderError, ProviderHTTPError
from ._base import BaseProvider

logger = logging.getLogger(__name__)


async def iter_sse_data(
    lines: AsyncIterable[str],
) -> AsyncGenerator[Tuple[Optional[str], str], None]:
    """Yield ``(event_name, data)`` for every ``data:`` line in *lines*.

    Lines are trimmed; blank lines reset the current event name, comment lines
    (starting with ``:``) and other fields are ignored.
    """
    event: Optional[str] = None
    async for raw in lines:
        line = raw.strip()
        if not line:
            event = None
            continue
        if line.startswith(":"):
            continue
        if line.startswith("event:"):
            event = line[len("event:"):].strip()
            continue
        if line.startswith("data:"):
            yield event, line[len("data:"):].lstrip()


def parse_json_payload(data: str) -> Optional[Dict[str, Any]]:
    """Decode one SSE data payload. Malformed payloads are skipped (``None``)."""
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed SSE payload: %.200s", data)
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


class SSEProvider(BaseProvider):
    """Base for adapters that stream over a shared :class:`httpx.AsyncClient`."""

    def __init__(
        self,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def stream_lines(
        self,
        url: str,
        *,
        headers: Dict[str, str],
        payload: Dict[str, Any],
    ) -> AsyncGenerator[str, None]:
        """POST *payload* and yield the response body line by line.

        A non-2xx status raises :class:`ProviderHTTPError` carrying the body
        text; transport failures are wrapped in :class:`ProviderError`.
        """
        client = self._get_client()
        try:
            async with client.stream("POST", url, headers=headers, json=payload) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.warning(
                        "%s request failed with status %d", self.kind.value, response.status_code
                    )
                    raise ProviderHTTPError(response.status_code, body, provider=self.kind.value)
                async for line in response.aiter_lines():
                    yield line
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.kind.value} network error: {e}") from e
