"""Drive one provider stream to completion, resolving browser tool calls on the way.

Usage::

    orchestrator = StreamOrchestrator.from_settings(AppSettings.from_env())
    result = await orchestrator.run(request, on_chunk=print)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import (
    Any,
    AsyncGenerator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Union,
)

from .config import AppSettings, CredentialProvider
from .exceptions import AbortedError, ToolError, ToolLoopExceededError
from .models import (
    Capability,
    GroundingMetadata,
    StreamRequest,
    StreamResult,
    ToolCall,
    ToolResult,
)
from .providers import (
    AdapterEvent,
    GroundingUpdate,
    ProviderRegistry,
    ProviderSession,
    TextDelta,
    ToolCallsRequested,
)
from .tools.browser import BrowserTool

logger = logging.getLogger(__name__)

#: Emitted through ``on_chunk`` while a tool round is being resolved.
BROWSING_NOTICE = " *Browsing web...* "

ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]


class OrchestrationState(str, Enum):
    AWAITING_FIRST_CHUNK = "awaiting_first_chunk"
    STREAMING = "streaming"
    TOOL_PENDING = "tool_pending"
    CONTINUING = "continuing"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {OrchestrationState.DONE, OrchestrationState.ABORTED, OrchestrationState.FAILED}
)

StateCallback = Callable[[OrchestrationState], Any]


class Tool(Protocol):
    """What the orchestrator needs from a tool executor."""

    NAME: str
    CAPABILITY: Capability

    async def execute(self, **arguments: Any) -> str: ...


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class _Run:
    """Mutable bookkeeping for a single :meth:`StreamOrchestrator.run` call."""

    def __init__(
        self,
        request: StreamRequest,
        on_chunk: Optional[ChunkCallback],
        on_state: Optional[StateCallback],
    ) -> None:
        self.request = request
        self.on_chunk = on_chunk
        self.on_state = on_state
        self.state = OrchestrationState.AWAITING_FIRST_CHUNK
        self.parts: List[str] = []
        self.grounding: Optional[GroundingMetadata] = None

    @property
    def text(self) -> str:
        return "".join(self.parts)

    def transition(self, state: OrchestrationState) -> None:
        if self.state in TERMINAL_STATES or state == self.state:
            return
        logger.debug("Orchestration %s -> %s", self.state.value, state.value)
        self.state = state
        if self.on_state is not None:
            try:
                self.on_state(state)
            except Exception:
                logger.error("State callback failed for %s", state.value, exc_info=True)

    async def emit(self, chunk: str) -> None:
        if self.on_chunk is not None:
            await _maybe_await(self.on_chunk(chunk))


def _discard_result(task: "asyncio.Task[str]") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("Discarded tool call failed after abort: %s", error)
    else:
        logger.debug("Discarded tool result received after abort")


class StreamOrchestrator:
    """Turns a :class:`StreamRequest` into exactly one :class:`StreamResult` or one error.

    Tool calls are resolved sequentially in declaration order and fed back on
    the same provider session; at most ``max_tool_rounds`` rounds are allowed.
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        tools: Optional[Iterable[Tool]] = None,
        *,
        max_tool_rounds: int = 5,
    ) -> None:
        self.providers = providers
        self.tools: Dict[str, Tool] = {tool.NAME: tool for tool in tools or ()}
        self.max_tool_rounds = max_tool_rounds

    @classmethod
    def from_settings(
        cls,
        settings: Optional[AppSettings] = None,
        *,
        credentials: Optional[CredentialProvider] = None,
    ) -> "StreamOrchestrator":
        settings = settings or AppSettings.from_env()
        return cls(
            ProviderRegistry(settings, credentials=credentials),
            [BrowserTool.from_settings(settings)],
            max_tool_rounds=settings.max_tool_rounds,
        )

    async def aclose(self) -> None:
        await self.providers.aclose()
        for tool in self.tools.values():
            closer = getattr(tool, "aclose", None)
            if closer is not None:
                await closer()

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------

    async def run(
        self,
        request: StreamRequest,
        on_chunk: Optional[ChunkCallback] = None,
        on_state: Optional[StateCallback] = None,
    ) -> StreamResult:
        """Stream *request*, forwarding text to *on_chunk* as it arrives.

        Raises :class:`AbortedError` when ``request.cancellation_token`` is
        cancelled, and propagates adapter errors unchanged.
        """
        run = _Run(request, on_chunk, on_state)
        token = request.cancellation_token

        try:
            token.raise_if_cancelled()
            session = self.providers.get(request.provider).open_session(request)
        except AbortedError:
            run.transition(OrchestrationState.ABORTED)
            raise
        except Exception:
            run.transition(OrchestrationState.FAILED)
            raise

        task = asyncio.current_task()
        try:
            with token.bind(task):
                try:
                    result = await self._drive(run, session)
                finally:
                    await session.aclose()
        except asyncio.CancelledError:
            if not token.cancelled:
                run.transition(OrchestrationState.ABORTED)
                raise
            if task is not None:
                task.uncancel()
            run.transition(OrchestrationState.ABORTED)
            raise AbortedError(token.reason or "Aborted") from None
        except AbortedError:
            run.transition(OrchestrationState.ABORTED)
            raise
        except Exception as e:
            logger.warning("Orchestration for %s failed: %s", request.provider.value, e)
            run.transition(OrchestrationState.FAILED)
            raise

        run.transition(OrchestrationState.DONE)
        return result

    async def _drive(self, run: _Run, session: ProviderSession) -> StreamResult:
        request = run.request
        token = request.cancellation_token
        events = session.send(request.new_message)
        rounds = 0

        while True:
            calls = await self._consume(run, events)
            if not calls:
                break

            runnable = self._runnable_tools(request, session)
            if not runnable:
                logger.warning(
                    "Ignoring %d tool call(s): no tool is enabled for this request or provider",
                    len(calls),
                )
                break

            rounds += 1
            if rounds > self.max_tool_rounds:
                raise ToolLoopExceededError(self.max_tool_rounds)

            run.transition(OrchestrationState.TOOL_PENDING)
            await run.emit(BROWSING_NOTICE)
            results = await self._dispatch_tool_calls(calls, runnable, request)
            token.raise_if_cancelled()

            run.transition(OrchestrationState.CONTINUING)
            events = session.send_tool_results(results)

        return StreamResult(content=run.text, grounding_metadata=run.grounding)

    async def _consume(
        self, run: _Run, events: AsyncGenerator[AdapterEvent, None]
    ) -> List[ToolCall]:
        """Forward one provider stream; return the tool calls that ended it, if any."""
        token = run.request.cancellation_token
        try:
            async for event in events:
                token.raise_if_cancelled()
                if isinstance(event, TextDelta):
                    if run.state != OrchestrationState.STREAMING:
                        run.transition(OrchestrationState.STREAMING)
                    run.parts.append(event.text)
                    await run.emit(event.text)
                    token.raise_if_cancelled()
                elif isinstance(event, GroundingUpdate):
                    run.grounding = event.metadata
                elif isinstance(event, ToolCallsRequested):
                    return list(event.calls)
        finally:
            await events.aclose()
        token.raise_if_cancelled()
        return []

    # ------------------------------------------------------------------
    # Tool resolution
    # ------------------------------------------------------------------

    def _runnable_tools(
        self, request: StreamRequest, session: ProviderSession
    ) -> Dict[str, Tool]:
        if not session.provider.SUPPORTS_TOOLS:
            return {}
        return {
            name: tool
            for name, tool in self.tools.items()
            if request.has_capability(tool.CAPABILITY)
        }

    async def _dispatch_tool_calls(
        self,
        calls: List[ToolCall],
        tools: Dict[str, Tool],
        request: StreamRequest,
    ) -> List[ToolResult]:
        """Execute *calls* one after another; failures become ``"Error: ..."`` content."""
        token = request.cancellation_token
        results: List[ToolResult] = []
        for call in calls:
            token.raise_if_cancelled()
            content = await self._handle_one(call, tools)
            results.append(ToolResult(call_id=call.id, name=call.name, content=content))
        return results

    async def _handle_one(self, call: ToolCall, tools: Dict[str, Tool]) -> str:
        tool = tools.get(call.name)
        if tool is None:
            logger.error("Unknown tool requested: %s (%s)", call.name, call.id)
            return f"Error: Unknown tool '{call.name}'."

        try:
            coro = tool.execute(**call.arguments)
        except TypeError as e:
            logger.error("Invalid arguments for %s (%s): %s", call.name, call.id, e)
            return f"Error: Invalid arguments for {call.name} ({e})."

        task = asyncio.ensure_future(coro)
        try:
            # An abort must not interrupt the call itself; its result is dropped.
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(_discard_result)
            raise
        except ToolError as e:
            logger.error("Tool error for %s (%s): %s", call.name, call.id, e)
            return f"Error: {e}"
        except Exception as e:
            logger.error(
                "Unexpected error for tool %s (%s): %s", call.name, call.id, e, exc_info=True
            )
            return f"Error: Unexpected error ({e})."
