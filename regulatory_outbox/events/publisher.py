import logging
from typing import Any, Optional

from regulatory_outbox.events.codec import EventCodec
from regulatory_outbox.events.outbox_store import OutboxStore
from regulatory_outbox.events.registry import HandlerRegistry
from regulatory_outbox.events.regulatory_events import DomainEvent
from regulatory_outbox.models.outbox import OutboxRecord

log = logging.getLogger("outbox_publisher")


class OutboxPublisher:
    """Write path used by business operations to record regulatory events."""

    def __init__(
        self,
        store: OutboxStore,
        codec: EventCodec,
        registry: HandlerRegistry,
        fast_path_notify: bool = True,
    ):
        self._store = store
        self._codec = codec
        self._registry = registry
        self._fast_path_notify = fast_path_notify

    async def publish(
        self,
        event: DomainEvent,
        organization_id: Optional[str] = None,
        conn: Any = None,
    ) -> OutboxRecord:
        """
        Records ``event`` in the outbox, then notifies in-process handlers.

        The append is the durability boundary: a PersistenceError from it is
        raised to the caller so the business operation fails with it. Handler
        failures on the fast path are only logged, since the dispatcher will
        deliver the stored record anyway.

        CRITICAL: Passing 'conn' creates the record inside the caller's transaction.
        """
        payload = self._codec.encode(event)
        record = await self._store.append(
            event_type=event.event_type,
            aggregate_type=event.aggregate_type,
            aggregate_id=event.aggregate_id,
            organization_id=organization_id,
            payload=payload,
            occurred_at=event.occurred_on,
            conn=conn,
        )
        log.debug(
            f"Outbox event recorded: {event.event_type} for "
            f"{event.aggregate_type}:{event.aggregate_id} (record {record.id})"
        )

        if self._fast_path_notify:
            await self._notify_fast_path(event, record)
        return record

    async def _notify_fast_path(self, event: DomainEvent, record: OutboxRecord) -> None:
        try:
            outcomes = await self._registry.notify(event)
        except Exception:
            log.exception(f"Fast-path notification crashed for record {record.id}")
            return
        failed = [o for o in outcomes if not o.succeeded]
        if failed:
            log.warning(
                f"Fast-path delivery of {event.event_type} (record {record.id}) had "
                f"{len(failed)} failing handler(s); dispatcher will retry"
            )
