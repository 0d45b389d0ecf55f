"""
In-process handler registry.

Handlers are async callables taking the decoded event. The registry is filled
during composition and then frozen, after which it is shared read-only by the
publisher and the dispatcher.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Type, Union

from regulatory_outbox.core.errors import HandlerExecutionError, RegistryFrozenError
from regulatory_outbox.events.regulatory_events import DomainEvent, event_tag

log = logging.getLogger("outbox_registry")

EventHandler = Callable[[DomainEvent], Awaitable[None]]


@dataclass(frozen=True)
class HandlerOutcome:
    handler_name: str
    event_type: str
    error: Optional[HandlerExecutionError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or type(handler).__name__


class HandlerRegistry:
    def __init__(
        self,
        known_event_types: Optional[Iterable[str]] = None,
        handler_timeout: Optional[float] = None,
    ):
        self._known = frozenset(known_event_types) if known_event_types is not None else None
        self._handler_timeout = handler_timeout or None
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, event_type: Union[str, Type[DomainEvent]], handler: EventHandler) -> None:
        """Adds ``handler`` after any handler already registered for the type."""
        if self._frozen:
            raise RegistryFrozenError("Handler registry is frozen; register handlers during composition.")
        tag = event_type if isinstance(event_type, str) else event_tag(event_type)
        if self._known is not None and tag not in self._known:
            raise ValueError(f"Cannot register handler for unknown event type: {tag}")
        self._handlers.setdefault(tag, []).append(handler)
        log.debug(f"Registered {handler_name(handler)} for {tag}")

    def freeze(self) -> "HandlerRegistry":
        self._frozen = True
        return self

    def handlers_for(self, event_type: str) -> Tuple[EventHandler, ...]:
        return tuple(self._handlers.get(event_type, ()))

    async def notify(self, event: DomainEvent) -> List[HandlerOutcome]:
        """
        Runs every handler registered for the event's type, in registration order.
        A failing (or timed out) handler is reported in its outcome and never
        stops the handlers after it. No handlers means an empty, successful result.
        """
        outcomes = []
        for handler in self.handlers_for(event.event_type):
            name = handler_name(handler)
            try:
                await self._invoke(handler, event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = HandlerExecutionError(name, event.event_type, e)
                log.error(f"Error in event handler {name} for {event.event_type} ({event.aggregate_id}): {error}")
                outcomes.append(HandlerOutcome(name, event.event_type, error))
            else:
                outcomes.append(HandlerOutcome(name, event.event_type))
        return outcomes

    async def _invoke(self, handler: EventHandler, event: DomainEvent) -> None:
        if self._handler_timeout is None:
            await handler(event)
        else:
            await asyncio.wait_for(handler(event), timeout=self._handler_timeout)
