import pytest
from types import SimpleNamespace
from datetime import datetime, timedelta, timezone

from regulatory_outbox.core.errors import EventDecodeError, MalformedEventPayload, UnknownEventType
from regulatory_outbox.events.codec import EventCodec
from regulatory_outbox.events.regulatory_events import (
    EVENT_MODELS,
    ComplianceLimitExceeded,
    IncidentReported,
    MonitoringDataRecorded,
    PermitCreated,
    PermitExpired,
    PermitStatusChanged,
    ReportGenerated,
    ReportOverdue,
    ReportSubmitted,
    event_tag,
    format_timestamp,
)
from regulatory_outbox.models.outbox import OutboxStatus

OCCURRED = datetime(2026, 3, 1, 8, 15, 30, 123456, tzinfo=timezone.utc)

SAMPLE_EVENTS = [
    PermitCreated(aggregate_id="permit-1", permit_number="TX-2026-001", permit_type="drilling", occurred_on=OCCURRED),
    PermitStatusChanged(aggregate_id="permit-1", old_status="draft", new_status="submitted", occurred_on=OCCURRED),
    PermitExpired(aggregate_id="permit-1", permit_number="TX-2026-001", occurred_on=OCCURRED),
    IncidentReported(
        aggregate_id="inc-7", incident_number="HSE-0042", incident_type="spill", severity="high", occurred_on=OCCURRED
    ),
    ReportGenerated(
        aggregate_id="rpt-3",
        report_type="monthly-production",
        regulatory_agency="TRC",
        report_data={"wells": 12, "volumes": [1.5, 2.25]},
        occurred_on=OCCURRED,
    ),
    ReportSubmitted(
        aggregate_id="rpt-3",
        report_type="monthly-production",
        regulatory_agency="TRC",
        external_submission_id="SUB-991",
        occurred_on=OCCURRED,
    ),
    ReportOverdue(
        aggregate_id="rpt-4",
        report_type="emissions",
        regulatory_agency="EPA",
        due_date=datetime(2026, 2, 28, tzinfo=timezone.utc),
        occurred_on=OCCURRED,
    ),
    MonitoringDataRecorded(
        aggregate_id="mon-1", monitoring_point_id="MP-9", parameter="H2S", measured_value=4.2, occurred_on=OCCURRED
    ),
    ComplianceLimitExceeded(
        aggregate_id="mon-1",
        monitoring_point_id="MP-9",
        parameter="H2S",
        measured_value=12.5,
        compliance_limit=10.0,
        occurred_on=OCCURRED,
    ),
]


def _record(event_type, payload):
    return SimpleNamespace(
        event_type=event_type,
        aggregate_type="Permit",
        aggregate_id="permit-1",
        payload=payload,
        status=OutboxStatus.PENDING,
        attempts=0,
        occurred_at=OCCURRED,
        next_attempt_at=OCCURRED,
    )


class TestEventCodec:

    def test_every_event_kind_has_a_sample(self, codec):
        """The codec covers the whole union, and the samples cover the codec."""
        assert codec.known_event_types == {event_tag(m) for m in EVENT_MODELS}
        assert {e.event_type for e in SAMPLE_EVENTS} == codec.known_event_types

    @pytest.mark.parametrize("event", SAMPLE_EVENTS, ids=lambda e: e.event_type)
    def test_decode_restores_encoded_event(self, codec, event):
        payload = codec.encode(event)
        decoded = codec.decode(_record(event.event_type, payload))

        assert type(decoded) is type(event)
        assert decoded == event

    def test_payload_embeds_type_tag_and_canonical_times(self, codec):
        event = SAMPLE_EVENTS[6]  # ReportOverdue
        payload = codec.encode(event)

        assert payload["event_type"] == "ReportOverdue"
        assert payload["occurred_on"] == "2026-03-01T08:15:30.123456Z"
        assert payload["due_date"] == "2026-02-28T00:00:00.000000Z"

    def test_non_utc_times_normalize_to_same_instant(self, codec):
        plus_two = timezone(timedelta(hours=2))
        event = PermitExpired(aggregate_id="permit-1", occurred_on=datetime(2026, 3, 1, 10, 0, tzinfo=plus_two))

        payload = codec.encode(event)
        decoded = codec.decode(_record("PermitExpired", payload))

        assert payload["occurred_on"] == "2026-03-01T08:00:00.000000Z"
        assert decoded.occurred_on == datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)

    def test_naive_times_are_treated_as_utc(self):
        assert format_timestamp(datetime(2026, 1, 1, 12, 0)) == "2026-01-01T12:00:00.000000Z"

    def test_unknown_event_type_leaves_record_untouched(self, codec):
        record = _record("WellSpudded", {"event_type": "WellSpudded"})

        with pytest.raises(UnknownEventType) as excinfo:
            codec.decode(record)

        assert excinfo.value.event_type == "WellSpudded"
        assert record.status == OutboxStatus.PENDING
        assert record.attempts == 0

    def test_payload_missing_fields_is_malformed(self, codec):
        with pytest.raises(MalformedEventPayload):
            codec.decode(_record("PermitCreated", {"event_type": "PermitCreated", "aggregate_id": "permit-1"}))

    def test_payload_tag_must_match_record_type(self, codec):
        payload = codec.encode(SAMPLE_EVENTS[2])  # PermitExpired

        with pytest.raises(EventDecodeError):
            codec.decode(_record("PermitCreated", payload))

    def test_non_object_payload_is_malformed(self, codec):
        with pytest.raises(MalformedEventPayload):
            codec.decode(_record("PermitExpired", ["not", "an", "object"]))

    def test_encode_rejects_types_outside_codec(self):
        codec = EventCodec(models=[PermitCreated])

        with pytest.raises(UnknownEventType):
            codec.encode(SAMPLE_EVENTS[2])
