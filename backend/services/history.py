"""
History sink: append-only record of completed games.

Records are kept in process (newest queries are served from memory) and,
when a store is configured, persisted fire-and-forget: the write is scheduled
on the running event loop and its failure is only logged, never surfaced to
game logic.
"""
import asyncio
import logging
from typing import List, Optional, Set

from models.game import HistoryRecord

logger = logging.getLogger(__name__)


class HistorySink:
    def __init__(self, store=None, max_records: int = 1000):
        self._store = store
        self._max_records = max_records
        self._records: List[HistoryRecord] = []
        self._pending: Set[asyncio.Task] = set()

    def append(self, record: HistoryRecord) -> None:
        self._records.append(record)
        if len(self._records) > self._max_records:
            del self._records[: len(self._records) - self._max_records]
        logger.info(
            f"[{record.session_id}] History: {record.type.value} {record.game_id} "
            f"winner={record.winner or 'none'}"
        )
        if self._store is not None:
            self._persist(record)

    def query(self, session_id: Optional[str] = None, limit: int = 10) -> List[HistoryRecord]:
        """Newest-first by game start time, optionally for one session."""
        records = self._records
        if session_id is not None:
            records = [r for r in records if r.session_id == session_id]
        return sorted(records, key=lambda r: r.started_at, reverse=True)[:limit]

    def __len__(self) -> int:
        return len(self._records)

    def _persist(self, record: HistoryRecord) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"[{record.session_id}] No event loop — history {record.game_id} kept in memory only")
            return
        task = loop.create_task(self._write(record))
        # Keep a reference until done so the task is not garbage-collected
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, record: HistoryRecord) -> None:
        try:
            await self._store.append_history(record)
        except Exception:
            logger.warning(
                "[%s] Could not persist history for game %s", record.session_id, record.game_id,
                exc_info=True,
            )
