"""
Resilience - Deadlines, reconnect timers and cancellation

Small asyncio primitives shared by the request executor (per-request
deadline) and the event stream (fixed-delay reconnect that can be cancelled
by unsubscribing).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Timeout:
    """
    Deadline wrapper for a single awaitable.

    Only the wrapped awaitable is cancelled when the deadline passes;
    nothing else running on the loop is affected.

    Example:
        result = await Timeout(5.0, lambda: RequestTimeoutError(5000)).execute(fetch())
    """
    seconds: float
    error_factory: Callable[[], Exception] = lambda: TimeoutError("Operation timed out")

    async def execute(self, awaitable: Awaitable[Any]) -> Any:
        """Await with the deadline; raise error_factory() on expiry."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.seconds)
        except asyncio.TimeoutError:
            raise self.error_factory() from None


class CancellationToken:
    """
    One-way cancelled flag with callbacks.

    Example:
        token = CancellationToken()
        token.add_callback(timer.cancel)
        token.cancel()        # runs timer.cancel once
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: List[Callable[[], Any]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], Any]):
        """Run callback on cancel (immediately if already cancelled)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], Any]):
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def cancel(self) -> bool:
        """Cancel the token. Returns False if it was already cancelled."""
        if self._cancelled:
            return False
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")
        return True


class ReconnectTimer:
    """
    Cancellable fixed delay.

    `wait()` resolves True when the delay elapses and False when `cancel()`
    is called first. The delay never grows between attempts.
    """

    def __init__(self, delay: float):
        """
        Args:
            delay: Seconds to wait before the next connection attempt
        """
        self.delay = delay
        self._waiter: Optional[asyncio.Future] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        """True while a wait is in progress."""
        return self._waiter is not None and not self._waiter.done()

    async def wait(self) -> bool:
        loop = asyncio.get_running_loop()
        self._waiter = loop.create_future()
        self._handle = loop.call_later(self.delay, self._fire)
        try:
            return await self._waiter
        finally:
            if self._handle is not None:
                self._handle.cancel()
            self._handle = None
            self._waiter = None

    def _fire(self):
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(True)

    def cancel(self) -> bool:
        """Stop a pending wait. Returns True if one was pending."""
        if self._handle is not None:
            self._handle.cancel()
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(False)
            return True
        return False
