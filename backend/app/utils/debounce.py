"""
Coalescing debounce for async callbacks.

The first trigger opens a window; every trigger that lands inside the window
is merged into it; a single call runs on the trailing edge. A trigger that
arrives while that call is running opens a new window.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    def __init__(self, func: Callable[[], Awaitable[object]], wait: float):
        if wait < 0:
            raise ValueError("wait must be >= 0")
        self._func = func
        self.wait = wait
        self._pending: Optional[asyncio.Task] = None
        self.coalesced = 0

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def trigger(self) -> None:
        """Request a call. Must be invoked from inside a running event loop."""
        if self.pending:
            self.coalesced += 1
            return
        self._pending = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        await asyncio.sleep(self.wait)
        # Clear first so triggers fired during the call open a fresh window.
        self._pending = None
        try:
            await self._func()
        except Exception:
            logger.exception("Debounced call failed")

    async def flush(self) -> None:
        """Run the pending call now instead of waiting for the window to close."""
        if not self.pending:
            return
        self.cancel()
        await self._func()

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
