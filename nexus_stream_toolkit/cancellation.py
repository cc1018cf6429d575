"""Cooperative cancellation shared by the network, tool and playback layers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable, Iterator, List, Optional, Set

from .exceptions import AbortedError

logger = logging.getLogger(__name__)


def _current_task() -> Optional[asyncio.Task[Any]]:
    try:
        return asyncio.current_task()
    except RuntimeError:  # no running loop
        return None


class CancellationToken:
    """A single cancellation signal for one top-level orchestration call.

    Cancelling the token:

    * flips :attr:`cancelled` so every suspension point can check it,
    * cancels any task registered through :meth:`bind` (this is what
      interrupts an in-flight HTTP read),
    * runs callbacks registered with :meth:`add_callback` (playback timers
      use this to clear themselves).

    ``cancel()`` is idempotent: only the first call has any effect.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Optional[str] = None
        self._event = asyncio.Event()
        self._callbacks: List[Callable[[], Any]] = []
        self._tasks: Set[asyncio.Task[Any]] = set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "Aborted") -> bool:
        """Trigger cancellation. Returns ``False`` if it was already triggered."""
        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason
        self._event.set()
        logger.debug("Cancellation requested: %s", reason)

        # A task that cancels its own token notices at its next check point.
        current = _current_task()
        for task in list(self._tasks):
            if not task.done() and task is not current:
                task.cancel()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.error("Cancellation callback %r failed", callback, exc_info=True)
        return True

    def add_callback(self, callback: Callable[[], Any]) -> Callable[[], None]:
        """Run *callback* on cancellation; returns a function that unregisters it.

        If the token is already cancelled the callback runs immediately.
        """
        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    @contextlib.contextmanager
    def bind(self, task: Optional[asyncio.Task[Any]] = None) -> Iterator[asyncio.Task[Any]]:
        """Register *task* (default: the current task) to be cancelled with the token."""
        task = task or asyncio.current_task()
        if task is None:
            raise RuntimeError("CancellationToken.bind() requires a running task")
        self._tasks.add(task)
        try:
            yield task
        finally:
            self._tasks.discard(task)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise AbortedError(self._reason or "Aborted")

    async def wait(self) -> None:
        await self._event.wait()
