import unittest
from datetime import date
from unittest.mock import MagicMock

import pytest

from tourwatch.db.models import ChangeEvent
from tourwatch.errors import PermissionDeniedError, ValidationError
from tourwatch.events import ScheduleEventChange, VenueChange
from tourwatch.live.stream import InMemoryChangeStream
from tourwatch.services.change_events import ChangeEventService


def record(session, tour, **overrides):
    kwargs = dict(
        tour_id=tour["tour"],
        author_id=tour["admin"],
        entity_type="schedule_event",
        entity_id=42,
        action="UPDATE",
        summary="Updated notes for The Fillmore on 2026-05-03",
        reason="Production manager confirmed new times",
        affects_time=True,
        associated_date=date(2026, 5, 3),
        detail={"field": "notes", "old": "", "new": "Load-in 6am"},
    )
    kwargs.update(overrides)
    return ChangeEventService.record_change(session, **kwargs)


def test_record_change_persists_and_classifies(session, tour):
    row = record(session, tour)

    assert row.id is not None
    assert row.severity == "IMPORTANT"
    assert row.processed is False
    assert row.entity_id == "42"
    assert row.detail["field"] == "notes"


def test_record_change_publishes_typed_payload(session, tour):
    stream = InMemoryChangeStream()
    received = []
    stream.subscribe(received.append)

    row = record(session, tour, stream=stream, entity_type="venue_tech_spec", detail={"section": "power"})

    assert len(received) == 1
    payload = received[0]
    assert isinstance(payload, VenueChange)
    assert payload.id == row.id
    assert payload.detail.section == "power"


def test_short_reason_is_rejected(session, tour):
    with pytest.raises(ValidationError) as exc:
        record(session, tour, reason="  too short ")
    assert exc.value.code == "REASON_TOO_SHORT"
    assert session.query(ChangeEvent).count() == 0


def test_unknown_entity_type_is_rejected(session, tour):
    with pytest.raises(ValidationError) as exc:
        record(session, tour, entity_type="spaceship")
    assert exc.value.code == "INVALID_PAYLOAD"


def test_demo_member_cannot_author(session, tour):
    with pytest.raises(PermissionDeniedError):
        record(session, tour, author_id=tour["demo"])


def test_explicit_severity_override(session, tour):
    row = record(session, tour, affects_time=False, severity="CRITICAL")
    assert row.severity == "CRITICAL"


class TestPayloadParsing(unittest.TestCase):
    def test_payload_from_row_uses_entity_family(self):
        from tourwatch.events import payload_from_row

        row = MagicMock()
        row.id = 3
        row.tour_id = 1
        row.author_id = 2
        row.entity_type = "schedule_event"
        row.entity_id = "9"
        row.action = "CREATE"
        row.summary = "Added show"
        row.reason = "Booked by agent today"
        row.affects_safety = False
        row.affects_time = False
        row.affects_money = False
        row.severity = "INFO"
        row.associated_date = None
        row.created_at = None
        row.detail = {"venue": "Red Rocks", "city": "Morrison"}

        payload = payload_from_row(row)
        self.assertIsInstance(payload, ScheduleEventChange)
        self.assertEqual(payload.detail.venue, "Red Rocks")
