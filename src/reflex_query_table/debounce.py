"""Trailing-edge debounce as a cancellable, closable resource.

:class:`DebouncedCall` wraps a callback so a burst of :meth:`~DebouncedCall.schedule`
calls produces a single invocation carrying only the last arguments, after
``delay_ms`` of quiet.  Timers come from a *scheduler*: any object with
``call_later(delay_seconds, fn)`` returning a handle with ``cancel()``.  The
running asyncio event loop is the default scheduler.
"""

import asyncio
import logging
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


class DebouncedCall:
    """Delay *callback* until *delay_ms* pass without a new :meth:`schedule`.

    Args:
        callback: Function invoked with the arguments of the last
            :meth:`schedule` call.
        delay_ms: Quiescence window in milliseconds.  ``0`` invokes the
            callback synchronously from :meth:`schedule`.
        scheduler: Timer source.  When ``None``, the running asyncio loop
            is looked up on each :meth:`schedule`.
        name: Label used in log messages.
    """

    def __init__(
        self,
        callback: Callable[..., Any],
        delay_ms: int,
        scheduler: Scheduler | None = None,
        name: str = "debounce",
    ) -> None:
        if delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {delay_ms}")
        self._callback = callback
        self._delay_ms = delay_ms
        self._scheduler = scheduler
        self._name = name
        self._handle: TimerHandle | None = None
        self._args: tuple[Any, ...] = ()
        self._closed = False

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(self, *args: Any) -> None:
        """(Re)start the window; only the latest *args* survive."""
        if self._closed:
            logger.debug("%s: schedule ignored, already closed", self._name)
            return
        if self._delay_ms == 0:
            self.cancel()
            self._callback(*args)
            return
        if self._handle is not None:
            self._handle.cancel()
            logger.debug("%s: pending call replaced", self._name)
        self._args = args
        scheduler = self._scheduler or asyncio.get_running_loop()
        self._handle = scheduler.call_later(self._delay_ms / 1000, self._fire)

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            self._args = ()
            logger.debug("%s: pending call cancelled", self._name)

    def flush(self) -> None:
        """Run the pending call immediately instead of waiting."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def close(self) -> None:
        """Cancel the pending call and refuse any further scheduling."""
        self.cancel()
        self._closed = True

    def _fire(self) -> None:
        args = self._args
        self._handle = None
        self._args = ()
        logger.debug("%s: firing after %dms", self._name, self._delay_ms)
        self._callback(*args)

    def __enter__(self) -> "DebouncedCall":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
