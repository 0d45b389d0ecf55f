from enum import Enum
from tortoise import fields, models
import uuid


class OutboxStatus(str, Enum):
    PENDING = "pending"      # Initial state, waiting for the dispatcher
    PROCESSED = "processed"  # Every handler succeeded (terminal)
    FAILED = "failed"        # Last pass failed, re-claimable while attempts < max
    DEAD = "dead"            # Attempts exhausted, only a manual reset brings it back


class OutboxRecord(models.Model):
    """
    The Outbox table stores regulatory events atomically with the business transaction.
    Rows are never deleted here; retention is handled outside this service.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    event_type = fields.CharField(max_length=128) # e.g., 'PermitExpired'
    aggregate_type = fields.CharField(max_length=64) # e.g., 'Permit', 'HSEIncident'
    aggregate_id = fields.CharField(max_length=128) # ID of the entity that produced the event
    organization_id = fields.CharField(max_length=64, null=True) # Tenant scope, null for system events
    payload = fields.JSONField() # Codec output, opaque to the store
    status = fields.CharEnumField(OutboxStatus, max_length=16, default=OutboxStatus.PENDING)
    attempts = fields.IntField(default=0)
    error = fields.TextField(null=True)
    occurred_at = fields.DatetimeField()
    processed_at = fields.DatetimeField(null=True)
    # Not claimable before this instant (retry backoff)
    next_attempt_at = fields.DatetimeField()
    # Lease written by the atomic claim
    claim_token = fields.UUIDField(null=True)
    claimed_until = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "outbox_events"
        indexes = [
            ("status", "occurred_at"),           # Claim scan
            ("status", "next_attempt_at"),       # Due failed records
            ("claim_token",),                    # Claimed rows lookup
            ("organization_id",),                # Tenant queries
            ("aggregate_type", "aggregate_id"),  # Downstream correlation
        ]

    def __str__(self):
        return f"{self.event_type}:{self.id}"
