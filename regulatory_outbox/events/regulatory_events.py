"""
Regulatory domain events carried through the outbox.

Every event kind is a frozen pydantic model whose ``event_type`` field is a
``Literal`` tag, and ``RegulatoryEvent`` is the discriminated union over all
of them. Adding a kind means adding a model here and to the union; the codec
and the handler registry pick it up from there.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Union, get_args

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to already be in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Canonical textual form for event times: ISO-8601, UTC, microseconds, 'Z'."""
    return _as_utc(value).isoformat(timespec="microseconds").replace("+00:00", "Z")


UtcDatetime = Annotated[
    datetime,
    AfterValidator(_as_utc),
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DomainEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_type: str
    aggregate_type: str
    aggregate_id: str
    occurred_on: UtcDatetime = Field(default_factory=_now)


# Permits

class PermitCreated(DomainEvent):
    event_type: Literal["PermitCreated"] = "PermitCreated"
    aggregate_type: Literal["Permit"] = "Permit"
    permit_number: str
    permit_type: str


class PermitStatusChanged(DomainEvent):
    event_type: Literal["PermitStatusChanged"] = "PermitStatusChanged"
    aggregate_type: Literal["Permit"] = "Permit"
    old_status: str
    new_status: str


class PermitExpired(DomainEvent):
    event_type: Literal["PermitExpired"] = "PermitExpired"
    aggregate_type: Literal["Permit"] = "Permit"
    permit_number: str = ""


# HSE incidents

class IncidentReported(DomainEvent):
    event_type: Literal["IncidentReported"] = "IncidentReported"
    aggregate_type: Literal["HSEIncident"] = "HSEIncident"
    incident_number: str
    incident_type: str
    severity: str


# Regulatory reports

class ReportGenerated(DomainEvent):
    event_type: Literal["ReportGenerated"] = "ReportGenerated"
    aggregate_type: Literal["RegulatoryReport"] = "RegulatoryReport"
    report_type: str
    regulatory_agency: str
    report_data: Dict[str, Any] = Field(default_factory=dict)


class ReportSubmitted(DomainEvent):
    event_type: Literal["ReportSubmitted"] = "ReportSubmitted"
    aggregate_type: Literal["RegulatoryReport"] = "RegulatoryReport"
    report_type: str
    regulatory_agency: str
    external_submission_id: str


class ReportOverdue(DomainEvent):
    event_type: Literal["ReportOverdue"] = "ReportOverdue"
    aggregate_type: Literal["RegulatoryReport"] = "RegulatoryReport"
    report_type: str
    regulatory_agency: str
    due_date: UtcDatetime


# Environmental monitoring

class MonitoringDataRecorded(DomainEvent):
    event_type: Literal["MonitoringDataRecorded"] = "MonitoringDataRecorded"
    aggregate_type: Literal["EnvironmentalMonitoring"] = "EnvironmentalMonitoring"
    monitoring_point_id: str
    parameter: str
    measured_value: float


class ComplianceLimitExceeded(DomainEvent):
    event_type: Literal["ComplianceLimitExceeded"] = "ComplianceLimitExceeded"
    aggregate_type: Literal["EnvironmentalMonitoring"] = "EnvironmentalMonitoring"
    monitoring_point_id: str
    parameter: str
    measured_value: float
    compliance_limit: float


RegulatoryEvent = Annotated[
    Union[
        PermitCreated,
        PermitStatusChanged,
        PermitExpired,
        IncidentReported,
        ReportGenerated,
        ReportSubmitted,
        ReportOverdue,
        MonitoringDataRecorded,
        ComplianceLimitExceeded,
    ],
    Field(discriminator="event_type"),
]

EVENT_MODELS = get_args(get_args(RegulatoryEvent)[0])


def event_tag(event_cls) -> str:
    """Return the ``event_type`` tag declared by an event model."""
    return event_cls.model_fields["event_type"].default
