from typing import Any, Dict, FrozenSet, Iterable, Optional, Type

from pydantic import ValidationError

from regulatory_outbox.core.errors import MalformedEventPayload, UnknownEventType
from regulatory_outbox.events.regulatory_events import EVENT_MODELS, DomainEvent, event_tag
from regulatory_outbox.models.outbox import OutboxRecord


class EventCodec:
    """
    Converts regulatory events to and from the JSON payload stored in the outbox.

    The payload is the event's JSON-mode dump, so the ``event_type`` tag travels
    inside it as well as in the record's own column.
    """

    def __init__(self, models: Optional[Iterable[Type[DomainEvent]]] = None):
        self._models: Dict[str, Type[DomainEvent]] = {
            event_tag(model): model for model in (models if models is not None else EVENT_MODELS)
        }

    @property
    def known_event_types(self) -> FrozenSet[str]:
        return frozenset(self._models)

    def encode(self, event: DomainEvent) -> Dict[str, Any]:
        if event.event_type not in self._models:
            raise UnknownEventType(event.event_type)
        return event.model_dump(mode="json")

    def decode(self, record: OutboxRecord) -> DomainEvent:
        """Rebuild the event stored in ``record``. Never touches the record itself."""
        return self.decode_payload(record.event_type, record.payload)

    def decode_payload(self, event_type: str, payload: Any) -> DomainEvent:
        model = self._models.get(event_type)
        if model is None:
            raise UnknownEventType(event_type)
        if not isinstance(payload, dict):
            raise MalformedEventPayload(event_type, f"expected an object, got {type(payload).__name__}")
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise MalformedEventPayload(event_type, f"{e.error_count()} validation error(s)") from e
