"""Pytest configuration and shared fakes for nexus_stream_toolkit tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx
import pytest
from dotenv import load_dotenv

from nexus_stream_toolkit.config import AppSettings, _CREDENTIAL_ENV_VARS
from nexus_stream_toolkit.models import Capability, ProviderKind, StreamRequest, ToolResult
from nexus_stream_toolkit.orchestrator import StreamOrchestrator
from nexus_stream_toolkit.providers import BaseProvider, ProviderRegistry, ProviderSession

# Ensure pytest-asyncio is always available so async tests execute without
# requiring plugins to be explicitly enabled via command line options.
pytest_plugins = ("pytest_asyncio",)

load_dotenv()


# ---------------------------------------------------------------------------
# Scripted provider
# ---------------------------------------------------------------------------


class ScriptedSession(ProviderSession):
    """Plays back one scripted round per send/send_tool_results call.

    A round is a list of adapter events; a float item sleeps for that many
    seconds, an exception item is raised.
    """

    def __init__(self, provider: "ScriptedProvider", request: StreamRequest) -> None:
        super().__init__(provider, request)
        self.sent_messages: List[str] = []
        self.sent_results: List[List[ToolResult]] = []
        self.closed = False

    async def send(self, message: str):
        self.sent_messages.append(message)
        async for event in self._play():
            yield event

    async def send_tool_results(self, results: Sequence[ToolResult]):
        self.sent_results.append(list(results))
        async for event in self._play():
            yield event

    async def _play(self):
        for item in self.provider.rounds.pop(0):
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, float):
                await asyncio.sleep(item)
                continue
            yield item

    async def aclose(self) -> None:
        self.closed = True


class ScriptedProvider(BaseProvider):
    DEFAULT_KIND = ProviderKind.GOOGLE
    SUPPORTS_TOOLS = True

    def __init__(self, rounds: List[List[Any]], **kwargs: Any) -> None:
        kwargs.setdefault("api_key", "test-key")
        super().__init__(**kwargs)
        self.rounds = list(rounds)
        self.sessions: List[ScriptedSession] = []

    def _create_session(self, request: StreamRequest, api_key: Optional[str]) -> ProviderSession:
        session = ScriptedSession(self, request)
        self.sessions.append(session)
        return session


class RecordingBrowser:
    """Stands in for BrowserTool; records the order of starts and ends."""

    NAME = "visit_website"
    CAPABILITY = Capability.BROWSER

    def __init__(self, delay: float = 0.0, error: Optional[Exception] = None) -> None:
        self.delay = delay
        self.error = error
        self.calls: List[str] = []
        self.log: List[str] = []
        self.completed: List[str] = []

    async def execute(self, url: str) -> str:
        self.calls.append(url)
        self.log.append(f"start:{url}")
        if self.delay:
            await asyncio.sleep(self.delay)
        self.log.append(f"end:{url}")
        self.completed.append(url)
        if self.error is not None:
            raise self.error
        return f"Contents of {url}"


@pytest.fixture
def make_orchestrator() -> Callable[..., Tuple[StreamOrchestrator, ScriptedProvider]]:
    def _make(
        rounds: List[List[Any]],
        *,
        tool: Optional[RecordingBrowser] = None,
        max_tool_rounds: int = 5,
    ) -> Tuple[StreamOrchestrator, ScriptedProvider]:
        provider = ScriptedProvider(rounds)
        registry = ProviderRegistry(AppSettings(), adapters={ProviderKind.GOOGLE: provider})
        orchestrator = StreamOrchestrator(
            registry, [tool] if tool is not None else [], max_tool_rounds=max_tool_rounds
        )
        return orchestrator, provider

    return _make


@pytest.fixture
def fast_settings() -> AppSettings:
    """Settings with playback timings small enough for tests."""
    return AppSettings(min_loader_duration=0.0, tick_interval=0.001, chars_per_tick=50)


# ---------------------------------------------------------------------------
# Environment and HTTP helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def no_credentials_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every provider key from the environment."""
    for names in _CREDENTIAL_ENV_VARS.values():
        for name in names:
            monkeypatch.delenv(name, raising=False)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], Any]) -> None:
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> Any:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


def sse_body(*payloads: str) -> bytes:
    """Frame each payload as a ``data:`` event."""
    return "".join(f"data: {payload}\n\n" for payload in payloads).encode()


@pytest.fixture
def recording_client() -> Callable[..., Tuple[httpx.AsyncClient, RecordingTransport]]:
    def _make(handler: Callable[[httpx.Request], Any]) -> Tuple[httpx.AsyncClient, RecordingTransport]:
        transport = RecordingTransport(handler)
        return httpx.AsyncClient(transport=transport), transport

    return _make


def make_request(**overrides: Any) -> StreamRequest:
    values: Dict[str, Any] = {
        "provider": ProviderKind.GOOGLE,
        "model": "test-model",
        "system_instruction": "Be brief.",
        "new_message": "Hi",
    }
    values.update(overrides)
    return StreamRequest(**values)
