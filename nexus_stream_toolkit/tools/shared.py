"""Lazily initialised resource shared by concurrent callers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SharedResource(Generic[T]):
    """Create a resource once, on first use, and hand the same instance to everyone.

    * The first :meth:`get` starts initialisation; concurrent callers await the
      same in-flight future instead of starting their own.
    * A caller that gets cancelled while waiting does not cancel the
      initialisation for the others.
    * A failed initialisation is not cached: the next :meth:`get` retries.
    * :meth:`aclose` is the explicit shutdown hook; afterwards the next
      :meth:`get` initialises a fresh instance.
    """

    def __init__(
        self,
        factory: Callable[[], Union[T, Awaitable[T]]],
        *,
        closer: Optional[Callable[[T], Awaitable[Any]]] = None,
        name: str = "resource",
    ) -> None:
        self._factory = factory
        self._closer = closer
        self.name = name
        self._value: Optional[T] = None
        self._ready = False
        self._pending: Optional[asyncio.Future[T]] = None

    @property
    def initialized(self) -> bool:
        return self._ready

    async def get(self) -> T:
        if self._ready:
            return self._value  # type: ignore[return-value]
        if self._pending is None:
            logger.debug("Initialising shared %s", self.name)
            self._pending = asyncio.ensure_future(self._initialize())
        return await asyncio.shield(self._pending)

    async def _initialize(self) -> T:
        try:
            result = self._factory()
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            self._forget_current()
            raise
        except Exception:
            self._forget_current()
            logger.warning("Initialisation of shared %s failed", self.name, exc_info=True)
            raise
        self._value = result
        self._ready = True
        return result

    def _forget_current(self) -> None:
        # Only drop our own attempt; aclose() may already have started another.
        if self._pending is asyncio.current_task():
            self._pending = None

    async def aclose(self) -> None:
        pending, self._pending = self._pending, None
        if pending is not None and not pending.done():
            pending.cancel()
            await asyncio.wait([pending])
        value, ready = self._value, self._ready
        self._value, self._ready = None, False
        if ready and self._closer is not None:
            logger.debug("Closing shared %s", self.name)
            await self._closer(value)  # type: ignore[arg-type]
