"""
In-process consumers for regulatory events. Each one raises the alert at the
event's severity; notification delivery hooks in here.

Delivery is at-least-once (fast path plus dispatcher), so handlers must
tolerate seeing the same event more than once.
"""
import logging

from regulatory_outbox.events.registry import HandlerRegistry
from regulatory_outbox.events.regulatory_events import (
    ComplianceLimitExceeded,
    IncidentReported,
    PermitCreated,
    PermitExpired,
    ReportOverdue,
)

log = logging.getLogger("regulatory_handlers")


async def handle_permit_created(event: PermitCreated):
    log.info(f"Permit created: {event.permit_number} ({event.aggregate_id})")


async def handle_permit_expired(event: PermitExpired):
    """Expired permits need renewal before operations can continue."""
    log.warning(f"Permit expired: {event.permit_number} ({event.aggregate_id})")


async def handle_incident_reported(event: IncidentReported):
    log.warning(f"HSE Incident reported: {event.incident_number} ({event.severity})")


async def handle_report_overdue(event: ReportOverdue):
    log.warning(
        f"Regulatory report overdue: {event.aggregate_id} ({event.report_type}) "
        f"for {event.regulatory_agency}, due {event.due_date.date().isoformat()}"
    )


async def handle_compliance_limit_exceeded(event: ComplianceLimitExceeded):
    log.error(
        f"Compliance limit exceeded: {event.monitoring_point_id} - {event.parameter} "
        f"({event.measured_value} > {event.compliance_limit})"
    )


def register_regulatory_handlers(registry: HandlerRegistry) -> HandlerRegistry:
    registry.register(PermitCreated, handle_permit_created)
    registry.register(PermitExpired, handle_permit_expired)
    registry.register(IncidentReported, handle_incident_reported)
    registry.register(ReportOverdue, handle_report_overdue)
    registry.register(ComplianceLimitExceeded, handle_compliance_limit_exceeded)
    return registry
