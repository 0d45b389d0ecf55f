import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from regulatory_outbox.core.clock import Clock, SystemClock
from regulatory_outbox.core.errors import DispatchCycleError, EventDecodeError, PersistenceError
from regulatory_outbox.events.codec import EventCodec
from regulatory_outbox.events.outbox_store import OutboxStore
from regulatory_outbox.events.registry import HandlerRegistry
from regulatory_outbox.models.outbox import OutboxRecord, OutboxStatus

log = logging.getLogger("outbox_dispatcher")


class Ticker(Protocol):
    async def wait(self) -> None:  # pragma: no cover - protocol
        ...


class IntervalTicker:
    """Fires every ``interval_seconds`` of real time."""

    def __init__(self, interval_seconds: float):
        self.interval_seconds = interval_seconds

    async def wait(self) -> None:
        await asyncio.sleep(self.interval_seconds)


@dataclass
class DispatchReport:
    claimed: int = 0
    processed: int = 0
    failed: int = 0
    dead: int = 0
    released: int = 0
    errors: int = 0


class OutboxDispatcher:
    """
    Background read path: claims due outbox records and delivers them to the
    registered handlers, recording each outcome back in the store.
    """

    def __init__(
        self,
        store: OutboxStore,
        registry: HandlerRegistry,
        codec: EventCodec,
        batch_size: int = 50,
        batch_time_budget: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._registry = registry
        self._codec = codec
        self.batch_size = batch_size
        self.batch_time_budget = batch_time_budget or None
        self._clock = clock or SystemClock()
        self._cycle_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._cycle_lock.locked()

    async def tick(self) -> Optional[DispatchReport]:
        """
        Runs one dispatch cycle. Returns None without doing anything when a cycle
        is already in progress; overlapping ticks are dropped, not queued.
        """
        if self._cycle_lock.locked():
            log.debug("Dispatch cycle already running, skipping tick")
            return None

        async with self._cycle_lock:
            report = DispatchReport()
            try:
                await self._run_cycle(report)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                report.errors += 1
                error = DispatchCycleError(f"Dispatch cycle aborted: {e}")
                log.exception(str(error))
            if report.claimed:
                log.info(
                    f"Dispatch cycle: claimed={report.claimed} processed={report.processed} "
                    f"failed={report.failed} dead={report.dead} released={report.released}"
                )
            return report

    async def _run_cycle(self, report: DispatchReport) -> None:
        try:
            records = await self._store.claim_batch(self.batch_size)
        except PersistenceError as e:
            report.errors += 1
            log.error(f"Could not claim outbox batch: {e}")
            return

        report.claimed = len(records)
        started = self._clock.monotonic()
        for index, record in enumerate(records):
            if self._budget_exhausted(started):
                leftover = records[index:]
                report.released = await self._release(leftover)
                log.warning(f"Batch time budget exhausted, released {len(leftover)} record(s) for the next tick")
                break
            try:
                await self._process_record(record, report)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Includes PersistenceError from mark_processed/mark_failed; the record
                # keeps its lease and becomes claimable again once it expires.
                report.errors += 1
                log.error(f"Failed to record outcome for outbox record {record.id}: {e}")

    def _budget_exhausted(self, started: float) -> bool:
        if self.batch_time_budget is None:
            return False
        return self._clock.monotonic() - started >= self.batch_time_budget

    async def _release(self, records) -> int:
        try:
            await self._store.release([r.id for r in records], claim_token=records[0].claim_token)
        except PersistenceError as e:
            log.error(f"Could not release unhandled claims: {e}")
            return 0
        return len(records)

    async def _process_record(self, record: OutboxRecord, report: DispatchReport) -> None:
        try:
            event = self._codec.decode(record)
        except EventDecodeError as e:
            log.error(f"Cannot decode outbox record {record.id}: {e}")
            await self._fail(record, str(e), report)
            return

        log.debug(f"Dispatching {record.event_type} (ID: {record.id.hex[:8]}...)")
        outcomes = await self._registry.notify(event)
        failures = [o.error for o in outcomes if not o.succeeded]
        if failures:
            await self._fail(record, "; ".join(str(f) for f in failures), report)
            return

        if await self._store.mark_processed(record.id, claim_token=record.claim_token):
            report.processed += 1

    async def _fail(self, record: OutboxRecord, message: str, report: DispatchReport) -> None:
        status = await self._store.mark_failed(record.id, message, claim_token=record.claim_token)
        if status == OutboxStatus.DEAD:
            report.dead += 1
            log.error(f"Outbox record {record.id} ({record.event_type}) is dead after {record.attempts + 1} attempt(s): {message}")
        elif status == OutboxStatus.FAILED:
            report.failed += 1
            log.warning(f"Outbox record {record.id} ({record.event_type}) failed, will retry: {message}")

    async def run(self, ticker: Ticker, stop: Optional[asyncio.Event] = None) -> None:
        """Main loop: one tick, then wait for the ticker, until ``stop`` is set."""
        stop = stop or asyncio.Event()
        log.info("--- Outbox Dispatcher Started ---")
        while not stop.is_set():
            await self.tick()
            if stop.is_set():
                break
            await ticker.wait()
        log.info("--- Outbox Dispatcher Stopped ---")


async def start_outbox_dispatcher():
    """Standalone worker process: connects to the database and dispatches forever."""
    from regulatory_outbox.core.config import POLL_INTERVAL_MS
    from regulatory_outbox.core.db import close_db, init_db
    from regulatory_outbox.core.wiring import build_outbox

    await init_db()
    try:
        outbox = build_outbox()
        await outbox.dispatcher.run(IntervalTicker(POLL_INTERVAL_MS / 1000))
    finally:
        await close_db()


if __name__ == "__main__":
    from regulatory_outbox.core.config import LOG_LEVEL

    logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    try:
        asyncio.run(start_outbox_dispatcher())
    except KeyboardInterrupt:
        log.info("Dispatcher service stopped.")
