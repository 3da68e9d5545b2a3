"""
Phase deadline scheduler.

One pending deadline per (session_id, game_id). Arming a key replaces its
previous deadline; firing pops the entry before running the callback, so each
deadline runs its callback at most once and a cancelled deadline never runs.

Two ways to drive it over the same table:
  - asyncio: arm() creates a task that sleeps until the deadline (the server);
  - virtual clock: run_due() fires every deadline <= clock.now() in deadline
    order, including ones armed by callbacks that are already due (tests).
"""
import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from utils.clock import SystemClock

logger = logging.getLogger(__name__)

DeadlineKey = Tuple[str, str]  # (session_id, game_id)
DeadlineCallback = Callable[[DeadlineKey], None]


@dataclass
class _Deadline:
    key: DeadlineKey
    at: datetime
    callback: DeadlineCallback
    seq: int
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class PhaseScheduler:
    def __init__(self, clock=None, use_tasks: bool = True):
        self._clock = clock or SystemClock()
        self._use_tasks = use_tasks
        self._pending: Dict[DeadlineKey, _Deadline] = {}
        self._seq = itertools.count()

    def arm(self, key: DeadlineKey, at: datetime, callback: DeadlineCallback) -> None:
        self.cancel(key)
        entry = _Deadline(key=key, at=at, callback=callback, seq=next(self._seq))
        self._pending[key] = entry
        if self._use_tasks:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop — deadline %s waits for run_due()", key)
            else:
                entry.task = loop.create_task(self._wait_and_fire(entry))

    def cancel(self, key: DeadlineKey) -> bool:
        entry = self._pending.pop(key, None)
        if entry is None:
            return False
        if entry.task is not None and not entry.task.done():
            if entry.task is not _current_task():
                entry.task.cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._pending):
            self.cancel(key)

    def pending(self, key: DeadlineKey) -> Optional[datetime]:
        entry = self._pending.get(key)
        return entry.at if entry else None

    def __len__(self) -> int:
        return len(self._pending)

    def run_due(self, now: Optional[datetime] = None) -> int:
        """Fire every deadline that is due; returns how many fired."""
        fired = 0
        while True:
            current = now or self._clock.now()
            due = [e for e in self._pending.values() if e.at <= current]
            if not due:
                return fired
            entry = min(due, key=lambda e: (e.at, e.seq))
            self._fire(entry)
            fired += 1

    async def _wait_and_fire(self, entry: _Deadline) -> None:
        delay = (entry.at - self._clock.now()).total_seconds()
        if delay > 0:
            await asyncio.sleep(delay)
        self._fire(entry)

    def _fire(self, entry: _Deadline) -> None:
        # Stale or cancelled entries are no longer the table's entry for the key
        if self._pending.get(entry.key) is not entry:
            return
        del self._pending[entry.key]
        try:
            entry.callback(entry.key)
        except Exception:
            logger.exception("[%s] Deadline callback failed for game %s", *entry.key)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
