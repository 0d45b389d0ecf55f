import logging
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from tortoise.exceptions import BaseORMException
from tortoise.expressions import F, Q
from tortoise.functions import Count, Sum
from tortoise.transactions import in_transaction

from regulatory_outbox.core.clock import Clock, SystemClock
from regulatory_outbox.core.errors import PersistenceError
from regulatory_outbox.events.backoff import RetryBackoff
from regulatory_outbox.models.outbox import OutboxRecord, OutboxStatus

log = logging.getLogger("outbox_store")

MAX_ERROR_LENGTH = 2000
RESETTABLE = [OutboxStatus.FAILED, OutboxStatus.DEAD]
HANDLEABLE = [OutboxStatus.PENDING, OutboxStatus.FAILED]


@dataclass(frozen=True)
class OutboxStatistics:
    pending: int
    processed: int
    failed: int
    dead: int
    total_attempts: int
    window_start: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@contextmanager
def _storage(operation: str):
    """Re-raises ORM and connection failures as PersistenceError."""
    try:
        yield
    except (BaseORMException, OSError) as e:
        log.error(f"Outbox {operation} failed: {e}")
        raise PersistenceError(operation, e) from e


class OutboxStore:
    """
    Durable, append-only log of outbox records with their delivery lifecycle.

    Status changes are single conditional UPDATE statements so concurrent
    writers never lose an ``attempts`` increment, and claiming works across
    processes by writing a lease only on rows that are still eligible.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        backoff: Optional[RetryBackoff] = None,
        lease: timedelta = timedelta(minutes=5),
        default_stats_window: Optional[timedelta] = timedelta(days=30),
        clock: Optional[Clock] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff = backoff or RetryBackoff()
        self.lease = lease
        self.default_stats_window = default_stats_window
        self.clock = clock or SystemClock()

    async def append(
        self,
        *,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        payload: Dict[str, Any],
        occurred_at: datetime,
        organization_id: Optional[str] = None,
        conn: Any = None,
    ) -> OutboxRecord:
        """
        Inserts a new pending record. Pass the business transaction as ``conn``
        so the record commits (or rolls back) together with the state change.
        """
        with _storage("append"):
            return await OutboxRecord.create(
                event_type=event_type,
                aggregate_type=aggregate_type,
                aggregate_id=aggregate_id,
                organization_id=organization_id,
                payload=payload,
                status=OutboxStatus.PENDING,
                attempts=0,
                occurred_at=occurred_at,
                next_attempt_at=self.clock.now(),
                using_db=conn,
            )

    @staticmethod
    def _unleased(now: datetime) -> Q:
        return Q(claimed_until__isnull=True) | Q(claimed_until__lt=now)

    def _claimable(self, now: datetime) -> Q:
        return Q(
            Q(status=OutboxStatus.PENDING) | Q(status=OutboxStatus.FAILED, attempts__lt=self.max_attempts),
            self._unleased(now),
            next_attempt_at__lte=now,
        )

    @staticmethod
    def _held_by(query, claim_token: Optional[UUID]):
        # With a token, only the current lease holder may write an outcome
        return query.filter(claim_token=claim_token) if claim_token is not None else query

    async def _bury_exhausted(self, now: datetime) -> int:
        """Failed records already at the attempt limit (e.g. after max_attempts was lowered) become dead."""
        buried = await OutboxRecord.filter(
            self._unleased(now), status=OutboxStatus.FAILED, attempts__gte=self.max_attempts
        ).update(status=OutboxStatus.DEAD, claim_token=None, claimed_until=None)
        if buried:
            log.warning(f"Moved {buried} exhausted failed record(s) to dead")
        return buried

    async def claim_batch(self, limit: int) -> List[OutboxRecord]:
        """
        Returns up to ``limit`` due records, oldest ``occurred_at`` first (ties by id),
        each leased to this caller alone.
        """
        if limit <= 0:
            return []
        now = self.clock.now()
        token = uuid.uuid4()
        with _storage("claim_batch"):
            await self._bury_exhausted(now)
            candidate_ids = await (
                OutboxRecord.filter(self._claimable(now))
                .order_by("occurred_at", "id")
                .limit(limit)
                .values_list("id", flat=True)
            )
            if not candidate_ids:
                return []
            # Eligibility is re-checked by the UPDATE itself; rows another caller
            # leased in the meantime are simply not matched.
            claimed = await OutboxRecord.filter(self._claimable(now), id__in=list(candidate_ids)).update(
                claim_token=token,
                claimed_until=now + self.lease,
            )
            if not claimed:
                return []
            return await OutboxRecord.filter(claim_token=token).order_by("occurred_at", "id")

    async def mark_processed(self, record_id: UUID, claim_token: Optional[UUID] = None) -> bool:
        """
        Finalizes a handled record. With ``claim_token`` the write only lands while
        that claim still holds the lease; returns False otherwise.
        """
        query = self._held_by(OutboxRecord.filter(id=record_id, status__in=HANDLEABLE), claim_token)
        with _storage("mark_processed"):
            updated = await query.update(
                status=OutboxStatus.PROCESSED,
                processed_at=self.clock.now(),
                error=None,
                claim_token=None,
                claimed_until=None,
            )
        if not updated:
            log.warning(f"mark_processed: record {record_id} missing, finalized or re-claimed")
        return bool(updated)

    async def mark_failed(
        self, record_id: UUID, error_message: str, claim_token: Optional[UUID] = None
    ) -> Optional[OutboxStatus]:
        """
        Counts one failed pass. Returns the resulting status (``failed`` or ``dead``),
        or None when the record is missing, no longer pending/failed, or (given
        ``claim_token``) leased to another claim.
        """
        now = self.clock.now()
        with _storage("mark_failed"):
            async with in_transaction() as conn:
                query = self._held_by(OutboxRecord.filter(id=record_id, status__in=HANDLEABLE), claim_token)
                updated = await query.using_db(conn).update(
                    attempts=F("attempts") + 1,
                    status=OutboxStatus.FAILED,
                    error=(error_message or "Unknown error")[:MAX_ERROR_LENGTH],
                    claim_token=None,
                    claimed_until=None,
                )
                if not updated:
                    log.warning(f"mark_failed: record {record_id} missing, finalized or re-claimed")
                    return None
                record = await OutboxRecord.get(id=record_id, using_db=conn)
                if record.attempts >= self.max_attempts:
                    await OutboxRecord.filter(id=record_id).using_db(conn).update(status=OutboxStatus.DEAD)
                    return OutboxStatus.DEAD
                await OutboxRecord.filter(id=record_id).using_db(conn).update(
                    next_attempt_at=now + self.backoff.next_delay(record.attempts),
                )
                return OutboxStatus.FAILED

    async def release(self, record_ids: Iterable[UUID], claim_token: Optional[UUID] = None) -> int:
        """Drops the lease on claimed records that were not handled this cycle."""
        ids = list(record_ids)
        if not ids:
            return 0
        query = self._held_by(OutboxRecord.filter(id__in=ids, status__in=HANDLEABLE), claim_token)
        with _storage("release"):
            return await query.update(
                claim_token=None,
                claimed_until=None,
            )

    async def reset_for_retry(self, record_ids: Optional[Iterable[UUID]] = None) -> int:
        """
        Moves failed/dead records back to pending with a fresh attempt budget.
        Only failed or dead records are touched, whether or not ids are given,
        and never while a dispatcher holds a live lease on them.
        """
        now = self.clock.now()
        query = OutboxRecord.filter(self._unleased(now), status__in=RESETTABLE)
        if record_ids is not None:
            ids = list(record_ids)
            if not ids:
                return 0
            query = query.filter(id__in=ids)
        with _storage("reset_for_retry"):
            reset = await query.update(
                status=OutboxStatus.PENDING,
                attempts=0,
                error=None,
                next_attempt_at=now,
                claim_token=None,
                claimed_until=None,
            )
        log.info(f"Reset {reset} outbox record(s) for retry")
        return reset

    async def statistics(self, window: Optional[timedelta] = None) -> OutboxStatistics:
        window = window if window is not None else self.default_stats_window
        query = OutboxRecord.all()
        window_start = None
        if window is not None:
            window_start = self.clock.now() - window
            query = query.filter(occurred_at__gte=window_start)
        with _storage("statistics"):
            rows = await (
                query.annotate(count=Count("id"), attempt_sum=Sum("attempts"))
                .group_by("status")
                .values("status", "count", "attempt_sum")
            )

        counts = {status: 0 for status in OutboxStatus}
        total_attempts = 0
        for row in rows:
            counts[OutboxStatus(row["status"])] = row["count"]
            total_attempts += int(row["attempt_sum"] or 0)
        return OutboxStatistics(
            pending=counts[OutboxStatus.PENDING],
            processed=counts[OutboxStatus.PROCESSED],
            failed=counts[OutboxStatus.FAILED],
            dead=counts[OutboxStatus.DEAD],
            total_attempts=total_attempts,
            window_start=window_start,
        )

    async def get(self, record_id: UUID) -> Optional[OutboxRecord]:
        with _storage("get"):
            return await OutboxRecord.get_or_none(id=record_id)
