"""Cooperative cancellation for conversation runs."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, TypeVar

from quill.core.errors import GenerationCancelledError

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")


class CancelToken:
    """Signal shared between the caller and one run.

    ``cancel()`` may be called from any coroutine on the same loop; the
    run observes it at the model call boundary and before each tool
    dispatch.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelledError

    async def race(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` unless the token fires first.

        The losing side is cancelled. Raises
        :class:`GenerationCancelledError` when the token wins.
        """
        if self.cancelled:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise GenerationCancelledError
        work = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await work

        if work not in done:
            raise GenerationCancelledError
        return work.result()
