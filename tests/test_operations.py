import pytest
from datetime import timedelta
from uuid import uuid4

from regulatory_outbox.models.outbox import OutboxRecord, OutboxStatus
from regulatory_outbox.services.outbox_operations import OutboxOperations


async def dead_record(store, clock, aggregate_id):
    record = await store.append(
        event_type="PermitExpired",
        aggregate_type="Permit",
        aggregate_id=aggregate_id,
        payload={"event_type": "PermitExpired", "aggregate_id": aggregate_id},
        occurred_at=clock.now(),
    )
    for _ in range(store.max_attempts):
        await store.mark_failed(record.id, "handler exploded")
    return record


class TestOutboxOperations:

    @pytest.mark.asyncio
    async def test_retry_specific_dead_record(self, db, store, clock):
        operations = OutboxOperations(store)
        target = await dead_record(store, clock, "permit-1")
        other = await dead_record(store, clock, "permit-2")

        reset = await operations.retry_failed_events([str(target.id)])

        assert reset == 1
        target_row = await OutboxRecord.get(id=target.id)
        assert (target_row.status, target_row.attempts, target_row.error) == (OutboxStatus.PENDING, 0, None)
        assert (await OutboxRecord.get(id=other.id)).status == OutboxStatus.DEAD
        assert [r.id for r in await store.claim_batch(10)] == [target.id]

    @pytest.mark.asyncio
    async def test_retry_all(self, db, store, clock):
        operations = OutboxOperations(store)
        await dead_record(store, clock, "permit-1")
        await dead_record(store, clock, "permit-2")

        assert await operations.retry_failed_events() == 2
        assert await OutboxRecord.filter(status=OutboxStatus.PENDING).count() == 2

    @pytest.mark.asyncio
    async def test_retry_unknown_id_changes_nothing(self, db, store, clock):
        operations = OutboxOperations(store)
        record = await dead_record(store, clock, "permit-1")

        assert await operations.retry_failed_events([uuid4()]) == 0
        assert (await OutboxRecord.get(id=record.id)).status == OutboxStatus.DEAD

    @pytest.mark.asyncio
    async def test_retry_rejects_malformed_ids(self, db, store):
        with pytest.raises(ValueError):
            await OutboxOperations(store).retry_failed_events(["not-a-uuid"])

    @pytest.mark.asyncio
    async def test_stats_delegate_to_store(self, db, store, clock):
        operations = OutboxOperations(store)
        await dead_record(store, clock, "permit-1")

        stats = await operations.get_processing_stats(timedelta(days=1))

        assert stats.dead == 1
        assert stats.total_attempts == store.max_attempts
        assert stats.pending == stats.processed == stats.failed == 0
