"""
Cooperative cancellation signal shared by the build pipeline, the retry
policy and the realtime session.
"""

import asyncio
from typing import Optional


class CancellationToken:
    """A one-shot flag that async code can poll or wait on.

    Must be used from the event loop thread; call ``cancel_threadsafe`` from
    other threads (a GUI callback, for example).
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()

    def cancel_threadsafe(self, loop: asyncio.AbstractEventLoop):
        loop.call_soon_threadsafe(self._event.set)

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait until cancelled or ``timeout`` elapses; return whether cancelled."""
        if timeout is None:
            await self._event.wait()
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            pass
        return self._event.is_set()
