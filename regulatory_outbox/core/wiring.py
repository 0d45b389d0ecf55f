"""Builds the outbox components once, at startup, from configuration."""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from regulatory_outbox.consumers.outbox_dispatcher import OutboxDispatcher
from regulatory_outbox.consumers.regulatory_handlers import register_regulatory_handlers
from regulatory_outbox.core import config
from regulatory_outbox.core.clock import Clock, SystemClock
from regulatory_outbox.events.backoff import RetryBackoff
from regulatory_outbox.events.codec import EventCodec
from regulatory_outbox.events.outbox_store import OutboxStore
from regulatory_outbox.events.publisher import OutboxPublisher
from regulatory_outbox.events.registry import HandlerRegistry
from regulatory_outbox.services.outbox_operations import OutboxOperations


@dataclass(frozen=True)
class OutboxComponents:
    codec: EventCodec
    registry: HandlerRegistry
    store: OutboxStore
    publisher: OutboxPublisher
    dispatcher: OutboxDispatcher
    operations: OutboxOperations


def _seconds(ms: int) -> Optional[float]:
    return ms / 1000 if ms > 0 else None


def build_outbox(
    registry: Optional[HandlerRegistry] = None,
    clock: Optional[Clock] = None,
) -> OutboxComponents:
    """
    Wires codec, registry, store, publisher, dispatcher and operator API.
    A registry passed in is used as-is (and frozen); otherwise one is built
    with the regulatory handlers.
    """
    clock = clock or SystemClock()
    codec = EventCodec()
    if registry is None:
        registry = HandlerRegistry(
            known_event_types=codec.known_event_types,
            handler_timeout=_seconds(config.HANDLER_TIMEOUT_MS),
        )
        register_regulatory_handlers(registry)
    registry.freeze()

    store = OutboxStore(
        max_attempts=config.MAX_ATTEMPTS,
        backoff=RetryBackoff(
            base_seconds=config.RETRY_BACKOFF_BASE_MS / 1000,
            cap_seconds=config.RETRY_BACKOFF_MAX_MS / 1000,
        ),
        lease=timedelta(milliseconds=config.CLAIM_LEASE_MS),
        default_stats_window=timedelta(days=config.STATS_WINDOW_DAYS),
        clock=clock,
    )
    publisher = OutboxPublisher(store, codec, registry, fast_path_notify=config.FAST_PATH_NOTIFY)
    dispatcher = OutboxDispatcher(
        store,
        registry,
        codec,
        batch_size=config.BATCH_SIZE,
        batch_time_budget=_seconds(config.BATCH_TIME_BUDGET_MS),
        clock=clock,
    )
    return OutboxComponents(
        codec=codec,
        registry=registry,
        store=store,
        publisher=publisher,
        dispatcher=dispatcher,
        operations=OutboxOperations(store),
    )
