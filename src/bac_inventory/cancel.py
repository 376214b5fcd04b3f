"""Cooperative cancellation shared by every task of one scan."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, TypeVar

from bac_inventory.errors import ScanCancelledError

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")


class CancelToken:
    """A single cancellation signal propagated from the top-level scan call.

    Every suspension point of a scan (sends, receive-with-timeout and
    settle delays) goes through :meth:`guard` or :meth:`sleep`, so one
    :meth:`cancel` call stops the whole fan-out promptly.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`ScanCancelledError` if cancellation was requested."""
        if self._event.is_set():
            msg = "Scan cancelled"
            raise ScanCancelledError(msg)

    async def sleep(self, delay: float) -> None:
        """Sleep for *delay* seconds, waking early and raising if cancelled."""
        self.raise_if_cancelled()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._event.wait(), delay)
        self.raise_if_cancelled()

    async def guard(self, aw: Awaitable[T], timeout: float | None = None) -> T:
        """Await *aw*, racing it against the timeout and the cancel signal.

        :param aw: Awaitable to run.
        :param timeout: Seconds to wait, or ``None`` for no limit.
        :returns: The result of *aw*.
        :raises ScanCancelledError: If cancelled before *aw* finished.
        :raises TimeoutError: If *timeout* elapsed first.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait(
                {task, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        if task.done() and not task.cancelled():
            return task.result()
        self.raise_if_cancelled()
        raise TimeoutError
