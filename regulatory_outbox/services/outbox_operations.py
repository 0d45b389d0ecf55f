from datetime import timedelta
from typing import Iterable, Optional
from uuid import UUID

from regulatory_outbox.events.outbox_store import OutboxStatistics, OutboxStore


class OutboxOperations:
    """
    Operator escape hatches for outbox recovery. Everything goes through the
    store, so resets only ever touch failed/dead records and only clear
    status, attempts and error.
    """

    def __init__(self, store: OutboxStore):
        self._store = store

    async def retry_failed_events(self, event_ids: Optional[Iterable[UUID]] = None) -> int:
        """Resets the given failed/dead records (all of them when no ids are given)."""
        ids = None if event_ids is None else [UUID(str(i)) for i in event_ids]
        return await self._store.reset_for_retry(ids)

    async def get_processing_stats(self, window: Optional[timedelta] = None) -> OutboxStatistics:
        return await self._store.statistics(window)
