import asyncio
import pytest
from unittest.mock import AsyncMock

from regulatory_outbox.core.errors import HandlerExecutionError, RegistryFrozenError
from regulatory_outbox.events.registry import HandlerRegistry
from regulatory_outbox.events.regulatory_events import IncidentReported, PermitExpired

EXPIRED = PermitExpired(aggregate_id="permit-1", permit_number="TX-1")


class TestHandlerRegistry:

    @pytest.mark.asyncio
    async def test_handlers_run_in_registration_order(self, registry):
        calls = []

        async def first(event):
            calls.append("first")

        async def second(event):
            calls.append("second")

        registry.register("PermitExpired", first)
        registry.register(PermitExpired, second)

        outcomes = await registry.notify(EXPIRED)

        assert calls == ["first", "second"]
        assert [o.handler_name for o in outcomes] == [first.__qualname__, second.__qualname__]
        assert all(o.succeeded for o in outcomes)

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_siblings(self, registry):
        sibling = AsyncMock()

        async def broken(event):
            raise RuntimeError("notification gateway down")

        registry.register(PermitExpired, broken)
        registry.register(PermitExpired, sibling)

        outcomes = await registry.notify(EXPIRED)

        sibling.assert_awaited_once_with(EXPIRED)
        assert not outcomes[0].succeeded
        assert isinstance(outcomes[0].error, HandlerExecutionError)
        assert "notification gateway down" in str(outcomes[0].error)
        assert outcomes[1].succeeded

    @pytest.mark.asyncio
    async def test_notify_without_handlers_is_empty_success(self, registry):
        registry.register(PermitExpired, AsyncMock())

        outcomes = await registry.notify(
            IncidentReported(aggregate_id="inc-1", incident_number="HSE-1", incident_type="spill", severity="low")
        )

        assert outcomes == []

    @pytest.mark.asyncio
    async def test_slow_handler_times_out_as_failure(self, codec):
        registry = HandlerRegistry(known_event_types=codec.known_event_types, handler_timeout=0.01)
        fast = AsyncMock()

        async def slow(event):
            await asyncio.sleep(1)

        registry.register(PermitExpired, slow)
        registry.register(PermitExpired, fast)

        outcomes = await registry.notify(EXPIRED)

        assert not outcomes[0].succeeded
        assert isinstance(outcomes[0].error.cause, asyncio.TimeoutError)
        fast.assert_awaited_once()

    def test_unknown_event_type_is_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register("PermitExpird", AsyncMock())

    def test_registration_closed_after_freeze(self, registry):
        registry.register(PermitExpired, AsyncMock())
        registry.freeze()

        with pytest.raises(RegistryFrozenError):
            registry.register(PermitExpired, AsyncMock())
        assert len(registry.handlers_for("PermitExpired")) == 1

    def test_registry_without_known_types_accepts_any_tag(self):
        registry = HandlerRegistry()
        registry.register("FutureEvent", AsyncMock())

        assert len(registry.handlers_for("FutureEvent")) == 1
