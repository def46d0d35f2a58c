"""Refresh Scheduler - coalesces push-driven thread refreshes.

A burst of push notifications about the active workspace results in one
delayed re-fetch. The scheduler owns a single timer slot:

    idle --schedule()--> armed --delay--> firing --> idle
                           |
                        cancel()
                           v
                         idle

While armed, further schedule() calls are no-ops. Requests for any workspace
other than the active one are dropped, both when arming and when firing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .event_log import EventLog
from .sync import SyncStore

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 0.6


class RefreshScheduler:
    """Single-slot delayed thread refresh for the active workspace."""

    def __init__(
        self,
        store: SyncStore,
        event_log: Optional[EventLog] = None,
        delay: float = DEFAULT_DELAY_SECONDS,
    ):
        self.store = store
        self.event_log = event_log if event_log is not None else store.event_log
        self.delay = delay
        self._timer: Optional[asyncio.Task] = None
        self._target: Optional[str] = None
        self._last_task: Optional[asyncio.Task] = None
        self.fired = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None

    @property
    def target(self) -> Optional[str]:
        return self._target

    def schedule(self, workspace_id: str) -> bool:
        """Arm a refresh for ``workspace_id``. Returns True if a timer was armed."""
        if not workspace_id or workspace_id != self.store.active_workspace_id:
            logger.debug(f"Dropping refresh for inactive workspace {workspace_id!r}")
            return False
        if self._timer is not None:
            return False

        self._target = workspace_id
        self._timer = asyncio.get_running_loop().create_task(self._fire(workspace_id))
        self._last_task = self._timer
        logger.debug(f"Armed thread refresh for {workspace_id} in {self.delay}s")
        return True

    def cancel(self) -> None:
        """Disarm a pending refresh, if any."""
        timer = self._timer
        self._clear()
        if timer is not None and not timer.done():
            timer.cancel()

    async def aclose(self) -> None:
        """Cancel any pending or in-flight refresh and wait for it to finish."""
        self.cancel()
        timer, self._last_task = self._last_task, None
        if timer is not None and not timer.done():
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass

    def _clear(self) -> None:
        self._timer = None
        self._target = None

    async def _fire(self, workspace_id: str) -> None:
        await asyncio.sleep(self.delay)
        # Clear before fetching so a burst during the fetch can re-arm.
        self._clear()

        if workspace_id != self.store.active_workspace_id:
            logger.debug(f"Workspace changed before refresh of {workspace_id} fired")
            return

        self.fired += 1
        try:
            await self.store.refresh_threads()
        except Exception as e:
            logger.warning(f"Scheduled thread refresh failed: {e}")
            self.event_log.append("refresh/error", str(e))
