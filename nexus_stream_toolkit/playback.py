"""Typewriter playback of streamed text.

Network chunks arrive in bursts; :class:`PlaybackReconciler` reveals them at a
steady pace instead. The text on screen (``displayed``) is always a prefix of
everything received so far (``target``) and only ever grows.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class PlaybackBuffer:
    """Pure playback state, no timers."""

    def __init__(self, chars_per_tick: int = 3) -> None:
        if chars_per_tick < 1:
            raise ValueError("chars_per_tick must be at least 1")
        self.chars_per_tick = chars_per_tick
        self.target = ""
        self.displayed = ""
        self.upstream_done = False

    def __repr__(self) -> str:
        return (
            f"PlaybackBuffer(displayed={len(self.displayed)}/{len(self.target)}, "
            f"upstream_done={self.upstream_done})"
        )

    @property
    def pending(self) -> int:
        """Characters received but not displayed yet."""
        return len(self.target) - len(self.displayed)

    def append(self, chunk: str) -> None:
        if self.upstream_done:
            raise RuntimeError("Cannot append to a finished playback buffer")
        self.target += chunk

    def advance(self) -> str:
        """Reveal up to ``chars_per_tick`` more characters; return the displayed text."""
        if self.pending > 0:
            self.displayed = self.target[: len(self.displayed) + self.chars_per_tick]
        return self.displayed

    def mark_upstream_done(self) -> None:
        self.upstream_done = True

    def is_complete(self) -> bool:
        return self.upstream_done and self.pending == 0


class PlaybackState(str, Enum):
    IDLE = "idle"
    GATED = "gated"
    TYPING = "typing"
    DONE = "done"
    CANCELLED = "cancelled"


class PlaybackReconciler:
    """Drive a :class:`PlaybackBuffer` with a loader gate and a fixed-rate ticker.

    The first :meth:`feed` schedules the gate so the loading indicator stays up
    for at least ``min_loader_duration`` since construction. When the gate
    fires, ``on_loading(False)`` is called and a ticker starts revealing
    ``chars_per_tick`` characters every ``tick_interval`` seconds through
    ``on_render(displayed)``. The ticker is started once and never restarted.
    """

    def __init__(
        self,
        on_render: Optional[Callable[[str], Any]] = None,
        *,
        on_loading: Optional[Callable[[bool], Any]] = None,
        min_loader_duration: float = 0.5,
        tick_interval: float = 0.03,
        chars_per_tick: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.on_render = on_render
        self.on_loading = on_loading
        self.min_loader_duration = min_loader_duration
        self.tick_interval = tick_interval
        self.chars_per_tick = chars_per_tick
        self._clock = clock
        self._started_at = clock()

        self.state = PlaybackState.IDLE
        self.buffer: Optional[PlaybackBuffer] = None
        self._gate: Optional[asyncio.TimerHandle] = None
        self._ticker: Optional[asyncio.Task[None]] = None
        self._done: Optional[asyncio.Future[PlaybackState]] = None

    @classmethod
    def from_settings(cls, settings: Any, on_render=None, *, on_loading=None) -> "PlaybackReconciler":
        return cls(
            on_render,
            on_loading=on_loading,
            min_loader_duration=settings.min_loader_duration,
            tick_interval=settings.tick_interval,
            chars_per_tick=settings.chars_per_tick,
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def target(self) -> str:
        return self.buffer.target if self.buffer is not None else ""

    @property
    def displayed(self) -> str:
        return self.buffer.displayed if self.buffer is not None else ""

    @property
    def has_timers(self) -> bool:
        return self._gate is not None or self._ticker is not None

    def partial_content(self) -> str:
        """Everything received so far, trimmed."""
        return self.target.strip()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def feed(self, chunk: str) -> None:
        """Add a streamed chunk. Chunks after finish/cancel are ignored."""
        if self.state in (PlaybackState.DONE, PlaybackState.CANCELLED) or (
            self.buffer is not None and self.buffer.upstream_done
        ):
            logger.debug("Ignoring chunk fed to finished playback")
            return
        if self.buffer is None:
            self.buffer = PlaybackBuffer(self.chars_per_tick)
            elapsed = self._clock() - self._started_at
            delay = max(0.0, self.min_loader_duration - elapsed)
            self.state = PlaybackState.GATED
            self._gate = asyncio.get_running_loop().call_later(delay, self._open_gate)
        self.buffer.append(chunk)

    def finish(self) -> None:
        """Upstream is complete; playback drains what is left and then resolves."""
        if self.state in (PlaybackState.DONE, PlaybackState.CANCELLED):
            return
        if self.buffer is None:
            self._settle(PlaybackState.DONE)
            return
        self.buffer.mark_upstream_done()

    def cancel(self) -> None:
        """Clear both timers immediately. Idempotent."""
        if self.state in (PlaybackState.DONE, PlaybackState.CANCELLED):
            return
        self._clear_timers()
        self._settle(PlaybackState.CANCELLED)

    async def wait_done(self) -> PlaybackState:
        """Wait until playback finished or was cancelled; return the final state."""
        return await asyncio.shield(self._done_future())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _done_future(self) -> "asyncio.Future[PlaybackState]":
        if self._done is None:
            self._done = asyncio.get_running_loop().create_future()
            if self.state in (PlaybackState.DONE, PlaybackState.CANCELLED):
                self._done.set_result(self.state)
        return self._done

    def _open_gate(self) -> None:
        self._gate = None
        if self.state != PlaybackState.GATED:
            return
        self.state = PlaybackState.TYPING
        self._notify_loading(False)
        self._ticker = asyncio.get_running_loop().create_task(self._tick())

    async def _tick(self) -> None:
        buffer = self.buffer
        assert buffer is not None
        try:
            while self.state == PlaybackState.TYPING and not buffer.is_complete():
                await asyncio.sleep(self.tick_interval)
                before = len(buffer.displayed)
                displayed = buffer.advance()
                if len(displayed) != before and self.on_render is not None:
                    self.on_render(displayed)
        except Exception as e:
            logger.error("Playback render failed", exc_info=True)
            self._ticker = None
            self._fail(e)
            return
        if self.state != PlaybackState.TYPING:
            # Cancelled from inside on_render.
            return
        self._ticker = None
        self._settle(PlaybackState.DONE)

    def _clear_timers(self) -> None:
        if self._gate is not None:
            self._gate.cancel()
            self._gate = None
        ticker, self._ticker = self._ticker, None
        if ticker is not None and not ticker.done() and ticker is not asyncio.current_task():
            ticker.cancel()

    def _settle(self, state: PlaybackState) -> None:
        if self.state == PlaybackState.GATED:
            # Never got past the loader; take it down.
            self._notify_loading(False)
        self.state = state
        done = self._done_future()
        if not done.done():
            done.set_result(state)

    def _fail(self, error: BaseException) -> None:
        self.state = PlaybackState.DONE
        done = self._done_future()
        if not done.done():
            done.set_exception(error)

    def _notify_loading(self, loading: bool) -> None:
        if self.on_loading is None:
            return
        try:
            self.on_loading(loading)
        except Exception:
            logger.error("Loading callback failed", exc_info=True)
