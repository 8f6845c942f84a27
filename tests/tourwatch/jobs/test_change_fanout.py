from datetime import date, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from tourwatch.channels.base import DeliveryResult
from tourwatch.channels.durable_message import DurableMessageSender
from tourwatch.config import Settings
from tourwatch.db.models import ChangeEvent, DirectMessage, NotificationPreference
from tourwatch.errors import PermissionDeniedError
from tourwatch.jobs.change_fanout import ChangeFanoutJob, compose_message, urgency_label

TODAY = date(2026, 5, 1)


def add_change(session, tour, author="admin", **overrides):
    data = dict(
        tour_id=tour["tour"],
        author_id=tour[author],
        entity_type="schedule_event",
        entity_id="1",
        action="UPDATE",
        summary="Load-in moved to 6am",
        reason="Venue curfew changed",
        affects_time=True,
        severity="IMPORTANT",
    )
    data.update(overrides)
    row = ChangeEvent(**data)
    session.add(row)
    session.commit()
    return row.id


@pytest.fixture
def job(session_factory):
    return ChangeFanoutJob(session_factory=session_factory, settings=Settings())


def messages(session):
    return session.execute(select(DirectMessage).order_by(DirectMessage.id)).scalars().all()


def test_fanout_delivers_to_everyone_but_author(session, tour, job):
    change_id = add_change(session, tour)

    result = job.fanout(tour["tour"], tour["admin"], today=TODAY)

    assert result.processed_count == 1
    assert result.sent_count == 3
    recipients = {m.recipient_id for m in messages(session)}
    assert recipients == {tour["crew_a"], tour["crew_b"], tour["demo"]}
    assert tour["admin"] not in recipients
    assert session.get(ChangeEvent, change_id).processed is True


def test_second_run_sends_nothing(session, tour, job):
    add_change(session, tour)
    job.fanout(tour["tour"], tour["admin"], today=TODAY)

    again = job.fanout(tour["tour"], tour["admin"], today=TODAY)

    assert again.sent_count == 0
    assert again.processed_count == 0
    assert len(messages(session)) == 3


def test_non_admin_is_refused(session, tour, job):
    change_id = add_change(session, tour)
    with pytest.raises(PermissionDeniedError):
        job.fanout(tour["tour"], tour["crew_a"], today=TODAY)
    session.expire_all()
    assert session.get(ChangeEvent, change_id).processed is False


def test_preferences_filter_recipients(session, tour, job):
    session.add(NotificationPreference(
        user_id=tour["crew_b"],
        tour_id=tour["tour"],
        min_severity="CRITICAL",
        time_always=False,
    ))
    session.commit()
    change_id = add_change(session, tour)

    result = job.fanout(tour["tour"], tour["admin"], today=TODAY)

    assert result.sent_count == 2
    assert tour["crew_b"] not in {m.recipient_id for m in messages(session)}
    # processed even though a member was filtered out
    assert session.get(ChangeEvent, change_id).processed is True


def test_events_processed_oldest_first(session, tour, job):
    first = add_change(session, tour, summary="First")
    second = add_change(session, tour, author="crew_a", summary="Second")

    job.fanout(tour["tour"], tour["admin"], today=TODAY)

    to_b = [m for m in messages(session) if m.recipient_id == tour["crew_b"]]
    assert [m.change_event_id for m in to_b] == [first, second]


def test_message_composition(session, tour):
    add_change(
        session,
        tour,
        affects_safety=True,
        affects_time=True,
        severity="CRITICAL",
        associated_date=TODAY + timedelta(days=1),
    )
    event = session.execute(select(ChangeEvent)).scalar_one()
    assert compose_message(event, TODAY) == "[TOMORROW] ⚠️ 🛡️ SAFETY ⏰ TIME — Load-in moved to 6am"

    event.affects_safety = False
    event.affects_time = False
    event.severity = "INFO"
    event.associated_date = TODAY + timedelta(days=5)
    assert compose_message(event, TODAY) == "ℹ️ Load-in moved to 6am"


@pytest.mark.parametrize(
    "days_out,label",
    [(None, None), (-1, None), (0, "TODAY"), (1, "TOMORROW"), (3, "in 3 days"), (4, None)],
)
def test_urgency_label(days_out, label):
    assert urgency_label(days_out) == label


def test_store_error_for_one_member_does_not_stop_fanout(session, tour, job):
    first = add_change(session, tour, summary="First")
    second = add_change(session, tour, summary="Second")
    original = DurableMessageSender.deliver

    def flaky(self, destination, body, **kwargs):
        if destination == tour["crew_a"]:
            return DeliveryResult.failure(self.code, "STORE_ERROR")
        return original(self, destination, body, **kwargs)

    with patch.object(DurableMessageSender, "deliver", flaky):
        result = job.fanout(tour["tour"], tour["admin"], today=TODAY)

    assert result.failed_count == 2
    assert result.sent_count == 4
    assert result.processed_count == 2
    assert tour["crew_a"] not in {m.recipient_id for m in messages(session)}
    session.expire_all()
    assert session.get(ChangeEvent, first).processed is True
    assert session.get(ChangeEvent, second).processed is True

    again = job.fanout(tour["tour"], tour["admin"], today=TODAY)
    assert again.processed_count == 0


def test_existing_message_counts_as_duplicate(session, tour, job):
    change_id = add_change(session, tour)
    session.add(DirectMessage(
        tour_id=tour["tour"],
        sender_id=tour["admin"],
        recipient_id=tour["crew_a"],
        change_event_id=change_id,
        body="Load-in moved to 6am",
    ))
    session.commit()

    result = job.fanout(tour["tour"], tour["admin"], today=TODAY)

    assert result.duplicate_count == 1
    assert result.sent_count == 2
    assert result.failed_count == 0
    assert len(messages(session)) == 3
