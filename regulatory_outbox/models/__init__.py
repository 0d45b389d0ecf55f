# regulatory_outbox/models/__init__.py
from .outbox import OutboxRecord, OutboxStatus

# Export all models
__all__ = [
    "OutboxRecord",
    "OutboxStatus",
]
