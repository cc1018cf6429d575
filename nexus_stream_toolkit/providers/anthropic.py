"""Anthropic Messages API adapter over raw SSE."""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, Dict, List, Optional

from ..exceptions import ProviderError
from ..models import ProviderKind, Role, StreamRequest
from ._base import AdapterEvent, ProviderSession, TextDelta
from ._sse import SSEProvider, iter_sse_data, parse_json_payload

logger = logging.getLogger(__name__)

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicAdapter(SSEProvider):
    """Streams ``/v1/messages`` and yields ``text_delta`` content."""

    DEFAULT_KIND = ProviderKind.ANTHROPIC

    def __init__(
        self,
        *,
        url: str = ANTHROPIC_MESSAGES_URL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.url = url
        self.max_tokens = max_tokens

    def build_headers(self, api_key: Optional[str]) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
        }

    @staticmethod
    def _merge_consecutive(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        """Merge consecutive messages with the same role.

        Anthropic requires alternating user/assistant messages.
        """
        merged: List[Dict[str, str]] = []
        for msg in messages:
            if merged and msg["role"] == merged[-1]["role"]:
                merged[-1] = {
                    "role": msg["role"],
                    "content": f"{merged[-1]['content']}\n\n{msg['content']}",
                }
            else:
                merged.append(dict(msg))
        return merged

    def build_messages(self, request: StreamRequest, message: str) -> List[Dict[str, str]]:
        messages = [
            {
                "role": "assistant" if turn.role == Role.ASSISTANT else "user",
                "content": turn.content,
            }
            for turn in request.history
            if turn.content
        ]
        messages.append({"role": "user", "content": message})
        return self._merge_consecutive(messages)

    def build_payload(self, request: StreamRequest, message: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": self.build_messages(request, message),
            "max_tokens": self.max_tokens,
            "stream": True,
        }
        if request.system_instruction:
            payload["system"] = request.system_instruction
        return payload

    def _create_session(
        self, request: StreamRequest, api_key: Optional[str]
    ) -> ProviderSession:
        return AnthropicSession(self, request, api_key)


class AnthropicSession(ProviderSession):
    provider: AnthropicAdapter

    def __init__(
        self,
        provider: AnthropicAdapter,
        request: StreamRequest,
        api_key: Optional[str],
    ) -> None:
        super().__init__(provider, request)
        self._api_key = api_key

    async def send(self, message: str) -> AsyncGenerator[AdapterEvent, None]:
        adapter = self.provider
        lines = adapter.stream_lines(
            adapter.url,
            headers=adapter.build_headers(self._api_key),
            payload=adapter.build_payload(self.request, message),
        )
        try:
            async for event_name, data in iter_sse_data(lines):
                if data == "[DONE]":
                    return
                event = parse_json_payload(data)
                if event is None:
                    continue
                event_type = event.get("type") or event_name
                if event_type == "message_stop":
                    return
                if event_type == "error":
                    error = event.get("error") or {}
                    detail = error.get("message") if isinstance(error, dict) else None
                    raise ProviderError(f"Anthropic stream error: {detail or error}")
                if event_type != "content_block_delta":
                    continue
                delta = event.get("delta")
                if not isinstance(delta, dict) or delta.get("type") != "text_delta":
                    continue
                text = delta.get("text")
                if isinstance(text, str) and text:
                    yield TextDelta(text)
        finally:
            await lines.aclose()
