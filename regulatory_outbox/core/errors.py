from typing import Optional


class OutboxError(Exception):
    """Base class for every error raised by the outbox subsystem."""


class PersistenceError(OutboxError):
    """The outbox table could not be read or written."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"Outbox storage failure during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class EventDecodeError(OutboxError):
    """A stored payload could not be turned back into a domain event."""

    def __init__(self, event_type: str, message: str):
        self.event_type = event_type
        super().__init__(message)


class UnknownEventType(EventDecodeError):
    def __init__(self, event_type: str):
        super().__init__(event_type, f"Unknown event type: {event_type}")


class MalformedEventPayload(EventDecodeError):
    def __init__(self, event_type: str, detail: str):
        self.detail = detail
        super().__init__(event_type, f"Malformed payload for {event_type}: {detail}")


class HandlerExecutionError(OutboxError):
    """Wraps whatever a registered handler raised (timeouts included)."""

    def __init__(self, handler_name: str, event_type: str, cause: BaseException):
        self.handler_name = handler_name
        self.event_type = event_type
        self.cause = cause
        reason = str(cause) or type(cause).__name__
        super().__init__(f"{handler_name}: {reason}")


class DispatchCycleError(OutboxError):
    """Failure of the dispatch loop itself rather than of a single record."""


class RegistryFrozenError(OutboxError):
    """Handlers can only be registered while the outbox is being composed."""
