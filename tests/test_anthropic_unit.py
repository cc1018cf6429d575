"""Unit tests for the Anthropic SSE adapter without calling any real APIs."""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import make_request
from nexus_stream_toolkit.exceptions import ProviderError, ProviderHTTPError
from nexus_stream_toolkit.models import ProviderKind, Role, Turn
from nexus_stream_toolkit.providers.anthropic import AnthropicAdapter


def _event(name: str, payload: dict) -> str:
    return f"event: {name}\ndata: {json.dumps(payload)}\n\n"


def _text(text: str) -> str:
    return _event(
        "content_block_delta",
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}},
    )


async def _collect(adapter: AnthropicAdapter, **overrides) -> str:
    request = make_request(provider=ProviderKind.ANTHROPIC, **overrides)
    session = adapter.open_session(request)
    return "".join([event.text async for event in session.send(request.new_message)])


class TestAnthropicRequest:
    def test_consecutive_roles_are_merged(self) -> None:
        adapter = AnthropicAdapter(api_key="k")
        request = make_request(
            provider=ProviderKind.ANTHROPIC,
            history=(
                Turn(role=Role.USER, content="one"),
                Turn(role=Role.USER, content="two"),
                Turn(role=Role.ASSISTANT, content="reply"),
            ),
            new_message="three",
        )
        assert adapter.build_messages(request, request.new_message) == [
            {"role": "user", "content": "one\n\ntwo"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "three"},
        ]

    def test_payload_and_headers(self) -> None:
        adapter = AnthropicAdapter(api_key="sk-ant-test")
        payload = adapter.build_payload(make_request(provider=ProviderKind.ANTHROPIC), "Hi")
        assert payload["system"] == "Be brief."
        assert payload["max_tokens"] == 4096
        assert payload["stream"] is True
        headers = adapter.build_headers("sk-ant-test")
        assert headers["x-api-key"] == "sk-ant-test"
        assert headers["anthropic-version"] == "2023-06-01"


@pytest.mark.asyncio
async def test_text_deltas_until_message_stop(recording_client) -> None:
    body = (
        _event("message_start", {"type": "message_start", "message": {"id": "msg_1"}})
        + _event("content_block_start", {"type": "content_block_start", "index": 0})
        + _text("Hel")
        + _event("ping", {"type": "ping"})
        + _text("lo")
        + _event(
            "content_block_delta",
            {"type": "content_block_delta", "delta": {"type": "input_json_delta", "partial_json": "{"}},
        )
        + _event("message_stop", {"type": "message_stop"})
        + _text(" ignored")
    ).encode()
    client, transport = recording_client(lambda request: httpx.Response(200, content=body))
    adapter = AnthropicAdapter(api_key="sk-ant-test", http_client=client)

    assert await _collect(adapter) == "Hello"
    (sent,) = transport.requests
    assert str(sent.url) == "https://api.anthropic.com/v1/messages"
    assert sent.headers["x-api-key"] == "sk-ant-test"


@pytest.mark.asyncio
async def test_malformed_deltas_are_skipped(recording_client) -> None:
    body = (
        _text("a")
        + _event("content_block_delta", {"type": "content_block_delta", "delta": "oops"})
        + _event("content_block_delta", {"type": "content_block_delta", "delta": ["x"]})
        + _event("content_block_delta", {"type": "content_block_delta", "delta": {"type": "text_delta", "text": 5}})
        + _text("b")
        + _event("message_stop", {"type": "message_stop"})
    ).encode()
    client, _ = recording_client(lambda request: httpx.Response(200, content=body))
    adapter = AnthropicAdapter(api_key="k", http_client=client)

    assert await _collect(adapter) == "ab"


@pytest.mark.asyncio
async def test_error_event_raises(recording_client) -> None:
    body = (
        _text("partial")
        + _event("error", {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
    ).encode()
    client, _ = recording_client(lambda request: httpx.Response(200, content=body))
    adapter = AnthropicAdapter(api_key="k", http_client=client)

    with pytest.raises(ProviderError, match="Overloaded"):
        await _collect(adapter)


@pytest.mark.asyncio
async def test_http_error(recording_client) -> None:
    client, _ = recording_client(
        lambda request: httpx.Response(400, text='{"error":{"message":"bad model"}}')
    )
    adapter = AnthropicAdapter(api_key="k", http_client=client)

    with pytest.raises(ProviderHTTPError) as exc_info:
        await _collect(adapter)
    assert exc_info.value.status == 400
    assert "bad model" in exc_info.value.body
