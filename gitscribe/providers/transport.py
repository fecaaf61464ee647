"""Shared transport policy: client headers, deadlines and cancellation."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from ..exceptions import Cancelled, ProviderTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 60.0

COMMON_HEADERS: dict[str, str] = {
    "Content-Type": "application/json",
    "User-Agent": "gitscribe",
}


class CancellationToken:
    """Cooperative cancellation signal for one in-flight call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self, what: str = "Operation") -> None:
        if self._event.is_set():
            raise Cancelled(f"{what} was cancelled")


def build_headers(extra: Optional[dict[str, str]] = None) -> dict[str, str]:
    headers = dict(COMMON_HEADERS)
    if extra:
        headers.update(extra)
    return headers


async def run_guarded(
    work: Awaitable[T],
    *,
    timeout: float,
    provider_id: str,
    token: Optional[CancellationToken] = None,
) -> T:
    """Await ``work`` bounded by ``timeout`` and the cancellation ``token``.

    The deadline and the token are armed when the call starts and released
    in every outcome: whatever is still pending is cancelled and awaited
    before this returns or raises. Cancellation wins over the deadline when
    both fire in the same loop iteration.
    """
    if token is not None and token.cancelled:
        if asyncio.iscoroutine(work):
            work.close()
        token.raise_if_cancelled(f"{provider_id} call")

    task = asyncio.ensure_future(work)
    waiters: set[asyncio.Future] = {task}
    cancel_waiter: Optional[asyncio.Future] = None
    if token is not None:
        cancel_waiter = asyncio.ensure_future(token.wait())
        waiters.add(cancel_waiter)

    try:
        done, _pending = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
        if cancel_waiter is not None and cancel_waiter in done:
            logger.debug("%s call cancelled by caller", provider_id)
            if task.done() and not task.cancelled():
                # Mark a late failure as retrieved.
                task.exception()
            raise Cancelled(f"{provider_id} call was cancelled")
        if task in done:
            return task.result()
        logger.debug("%s call exceeded %.1fs deadline", provider_id, timeout)
        raise ProviderTimeout(provider_id, timeout)
    finally:
        leftovers = [w for w in waiters if not w.done()]
        for waiter in leftovers:
            waiter.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)
