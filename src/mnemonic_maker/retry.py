"""
Bounded retry with a fixed, cancellable backoff.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .cancellation import CancellationToken
from .errors import Cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _cancellable_sleep(cancel_token: Optional[CancellationToken]):
    async def sleep(seconds: float):
        if cancel_token is None:
            await asyncio.sleep(seconds)
            return
        if cancel_token.is_cancelled or await cancel_token.wait(timeout=seconds):
            raise Cancelled("Cancelled while waiting to retry")

    return sleep


def _log_retry(label: str):
    def before_sleep(retry_state):
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.info("%s failed on attempt %d, retrying: %s",
                    label, retry_state.attempt_number, error)

    return before_sleep


async def retry(operation: Callable[[], Awaitable[T]],
                attempts: int = 3,
                delay: float = 2.0,
                cancel_token: Optional[CancellationToken] = None,
                label: str = "operation") -> T:
    """Run ``operation`` up to ``attempts`` times, waiting ``delay`` seconds between tries.

    The error of the last attempt is re-raised unchanged. If ``cancel_token``
    fires during a wait, :class:`Cancelled` is raised and no further attempt
    is made.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(Cancelled),
        sleep=_cancellable_sleep(cancel_token),
        before_sleep=_log_retry(label),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation()
