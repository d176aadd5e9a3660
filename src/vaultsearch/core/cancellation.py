"""
Cooperative cancellation and pause for long-running indexing.

The token is passed through every indexing call and checked between batches. Pausing clears
an asyncio.Event that ``checkpoint()`` awaits, so a paused indexer blocks instead of spinning.
Hosts that only expose the polled hook contract are re-checked at ``hook_poll_interval``.
"""

import asyncio
from typing import Optional

from vaultsearch.core.exceptions import IndexingCancelledError
from vaultsearch.store.protocols import IndexingHooks


class CancellationToken:
    """Cancel/pause flag shared between the host and an indexing run."""

    def __init__(self, hooks: Optional[IndexingHooks] = None, hook_poll_interval: float = 0.5):
        self._hooks = hooks
        self._hook_poll_interval = hook_poll_interval
        self._cancelled = False
        self._paused_by_hooks = False
        self._resumed = asyncio.Event()
        self._resumed.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    def cancel(self) -> None:
        self._cancelled = True
        # A paused run has to wake up to notice the cancellation
        self._resumed.set()

    def pause(self) -> None:
        if not self._cancelled:
            self._resumed.clear()

    def resume(self) -> None:
        self._paused_by_hooks = False
        self._resumed.set()

    def report_progress(self, completed: int, total: int) -> None:
        if self._hooks is not None:
            self._hooks.on_progress(completed, total)

    def _sync_from_hooks(self) -> None:
        if self._hooks is None:
            return
        if self._hooks.on_cancel_requested():
            self.cancel()
        elif self._hooks.on_pause_requested():
            self._paused_by_hooks = True
            self.pause()
        elif self._paused_by_hooks:
            self.resume()

    async def checkpoint(self) -> None:
        """
        Cancellation point between batches.

        Blocks while paused; raises IndexingCancelledError once cancelled.
        """
        self._sync_from_hooks()
        while not self._cancelled and self.paused:
            if self._paused_by_hooks:
                try:
                    await asyncio.wait_for(self._resumed.wait(), timeout=self._hook_poll_interval)
                except asyncio.TimeoutError:
                    self._sync_from_hooks()
            else:
                await self._resumed.wait()
        if self._cancelled:
            raise IndexingCancelledError("Indexing cancelled")
