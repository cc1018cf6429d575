"""Chat session: the send/stop handlers a chat UI binds to.

``ChatSession.send_message`` turns one user message into exactly one committed
assistant turn (or, for an abort before any output, none), while showing the
streamed reply through a :class:`PlaybackReconciler` in the store's transient
slot.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from .agents import AgentConfig
from .cancellation import CancellationToken
from .config import AppSettings
from .exceptions import AbortedError
from .log_utils import log_event
from .models import Role, StreamRequest, StreamResult, Turn
from .orchestrator import StreamOrchestrator
from .playback import PlaybackReconciler

logger = logging.getLogger(__name__)


@runtime_checkable
class MessageStore(Protocol):
    """Where conversation turns live, per agent."""

    def history(self, agent_id: str) -> List[Turn]: ...

    def append(self, agent_id: str, turn: Turn) -> None: ...

    def set_transient(self, agent_id: str, content: str) -> None: ...

    def discard_transient(self, agent_id: str) -> None: ...

    def commit(self, agent_id: str, turn: Turn) -> None:
        """Drop the transient slot and append *turn* in one step."""
        ...


class InMemoryMessageStore:
    """Dict-backed :class:`MessageStore` with a single transient slot per agent."""

    def __init__(self) -> None:
        self._turns: Dict[str, List[Turn]] = {}
        self._transient: Dict[str, str] = {}

    def history(self, agent_id: str) -> List[Turn]:
        return list(self._turns.get(agent_id, []))

    def append(self, agent_id: str, turn: Turn) -> None:
        self._turns.setdefault(agent_id, []).append(turn)

    def transient(self, agent_id: str) -> Optional[str]:
        return self._transient.get(agent_id)

    def set_transient(self, agent_id: str, content: str) -> None:
        self._transient[agent_id] = content

    def discard_transient(self, agent_id: str) -> None:
        self._transient.pop(agent_id, None)

    def commit(self, agent_id: str, turn: Turn) -> None:
        self._transient.pop(agent_id, None)
        self._turns.setdefault(agent_id, []).append(turn)

    def view(self, agent_id: str) -> List[Turn]:
        """Committed turns plus the in-progress reply, as a UI would render them."""
        turns = self.history(agent_id)
        transient = self._transient.get(agent_id)
        if transient is not None:
            turns.append(Turn(id="streaming", role=Role.ASSISTANT, content=transient))
        return turns


class ChatSession:
    """Runs one request at a time against a :class:`StreamOrchestrator`."""

    def __init__(
        self,
        orchestrator: StreamOrchestrator,
        store: Optional[MessageStore] = None,
        settings: Optional[AppSettings] = None,
        *,
        on_loading: Optional[Callable[[bool], Any]] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.store: MessageStore = store if store is not None else InMemoryMessageStore()
        self.settings = settings or AppSettings()
        self.on_loading = on_loading
        self.is_loading = False
        self._active_token: Optional[CancellationToken] = None
        self._active_agent: Optional[AgentConfig] = None
        self._active_playback: Optional[PlaybackReconciler] = None

    @property
    def busy(self) -> bool:
        return self._active_token is not None

    def _set_loading(self, loading: bool) -> None:
        if self.is_loading == loading:
            return
        self.is_loading = loading
        if self.on_loading is not None:
            self.on_loading(loading)

    async def send_message(self, agent: AgentConfig, content: str) -> Optional[Turn]:
        """Send *content* to *agent* and return the committed assistant turn.

        Returns ``None`` for blank input, when another request is running, or
        when the user stopped the request before any text arrived.
        """
        text = content.strip()
        if not text:
            return None
        if self.busy:
            logger.warning("Ignoring message for %s: a request is already running", agent.id)
            return None

        history = self.store.history(agent.id)
        user_turn = Turn(role=Role.USER, content=text)
        self.store.append(agent.id, user_turn)
        log_event(
            "user_message",
            {
                **self._agent_fields(agent),
                "messageId": user_turn.id,
                "content": user_turn.content,
                "contentLength": len(user_turn.content),
            },
        )

        token = CancellationToken()
        request = StreamRequest(
            provider=agent.provider,
            model=agent.model,
            system_instruction=agent.system_instruction,
            history=tuple(history),
            new_message=text,
            enabled_capabilities=agent.capabilities,
            cancellation_token=token,
        )
        playback = PlaybackReconciler.from_settings(
            self.settings,
            lambda shown: self.store.set_transient(agent.id, shown),
            on_loading=self._set_loading,
        )
        remove_callback = token.add_callback(playback.cancel)
        started = time.monotonic()

        self._active_token = token
        self._active_agent = agent
        self._active_playback = playback
        self._set_loading(True)
        try:
            try:
                result = await self.orchestrator.run(request, on_chunk=playback.feed)
            except AbortedError:
                return self._commit_partial(agent, playback)
            except asyncio.CancelledError:
                # Our own task was cancelled (UI teardown, wait_for): keep what arrived.
                self._commit_partial(agent, playback)
                raise
            except Exception as e:
                playback.cancel()
                return await self._commit_error(agent, e, started)

            playback.finish()
            try:
                await playback.wait_done()
            except asyncio.CancelledError:
                self._commit_result(agent, result, playback, started)
                raise
            except Exception:
                logger.warning(
                    "Playback for %s failed; committing the complete reply", agent.id
                )
            return self._commit_result(agent, result, playback, started)
        finally:
            playback.cancel()
            remove_callback()
            self._active_token = None
            self._active_agent = None
            self._active_playback = None
            self._set_loading(False)

    def stop(self) -> bool:
        """Cancel the running request. Returns ``False`` when idle."""
        token = self._active_token
        if token is None or token.cancelled:
            return False
        agent = self._active_agent
        playback = self._active_playback
        log_event(
            "user_stop",
            {
                **(self._agent_fields(agent) if agent is not None else {}),
                "partialLength": len(playback.target) if playback is not None else 0,
            },
        )
        token.cancel("Stopped by user")
        self._set_loading(False)
        return True

    # ------------------------------------------------------------------
    # Commit paths: each request ends in exactly one of these
    # ------------------------------------------------------------------

    def _commit_result(
        self,
        agent: AgentConfig,
        result: StreamResult,
        playback: PlaybackReconciler,
        started: float,
    ) -> Turn:
        final = Turn(
            role=Role.ASSISTANT,
            content=result.content or playback.target,
            grounding_metadata=result.grounding_metadata,
        )
        self.store.commit(agent.id, final)
        log_event(
            "assistant_message",
            {
                **self._agent_fields(agent),
                "messageId": final.id,
                "content": final.content,
                "contentLength": len(final.content),
                "durationMs": int((time.monotonic() - started) * 1000),
                "isError": False,
            },
        )
        return final

    def _commit_partial(self, agent: AgentConfig, playback: PlaybackReconciler) -> Optional[Turn]:
        playback.cancel()
        partial = playback.partial_content()
        if not partial:
            self.store.discard_transient(agent.id)
            logger.info("Request for %s stopped before any output", agent.id)
            return None
        turn = Turn(role=Role.ASSISTANT, content=partial)
        self.store.commit(agent.id, turn)
        logger.info("Request for %s stopped; kept %d characters", agent.id, len(partial))
        return turn

    async def _commit_error(self, agent: AgentConfig, error: Exception, started: float) -> Turn:
        turn = Turn(role=Role.ASSISTANT, content=f"Error: {error}", is_error=True)
        remaining = self.settings.min_loader_duration - (time.monotonic() - started)
        try:
            if remaining > 0:
                await asyncio.sleep(remaining)
        finally:
            self.store.commit(agent.id, turn)
            log_event(
                "assistant_error",
                {
                    **self._agent_fields(agent),
                    "messageId": turn.id,
                    "error": turn.content,
                    "durationMs": int((time.monotonic() - started) * 1000),
                },
                level="error",
            )
        return turn

    @staticmethod
    def _agent_fields(agent: AgentConfig) -> Dict[str, Any]:
        return {
            "agentId": agent.id,
            "agentName": agent.name,
            "provider": agent.provider.value,
            "model": agent.model,
        }
