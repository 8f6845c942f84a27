from unittest.mock import MagicMock

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from tourwatch.channels.durable_message import DurableMessageSender
from tourwatch.db.models import ChangeEvent, DirectMessage


def _change(session, tour):
    row = ChangeEvent(
        tour_id=tour["tour"],
        author_id=tour["admin"],
        entity_type="schedule_event",
        entity_id="1",
        action="UPDATE",
        summary="Doors moved",
        reason="Promoter request via email",
    )
    session.add(row)
    session.commit()
    return row.id


def test_deliver_inserts_message(session, tour):
    change_id = _change(session, tour)
    sender = DurableMessageSender(session)

    result = sender.deliver(
        tour["crew_a"], "🟡 Doors moved", extra={"tour_id": tour["tour"], "sender_id": tour["admin"], "change_event_id": change_id}
    )

    assert result.ok and not result.duplicate
    rows = session.execute(select(DirectMessage)).scalars().all()
    assert len(rows) == 1
    assert rows[0].recipient_id == tour["crew_a"]
    assert rows[0].body == "🟡 Doors moved"


def test_second_insert_for_same_change_is_duplicate(session, tour):
    change_id = _change(session, tour)
    sender = DurableMessageSender(session)
    extra = {"tour_id": tour["tour"], "change_event_id": change_id}

    first = sender.deliver(tour["crew_a"], "hello", extra=extra)
    second = sender.deliver(tour["crew_a"], "hello", extra=extra)

    assert first.ok and not first.duplicate
    assert second.ok and second.duplicate
    assert len(session.execute(select(DirectMessage)).scalars().all()) == 1


def test_storage_error_is_a_failed_result():
    session = MagicMock()
    session.commit.side_effect = OperationalError("INSERT", {}, Exception("database is locked"))

    result = DurableMessageSender(session).deliver(7, "hello", extra={"tour_id": 1})

    assert not result.ok
    assert result.reason == "STORE_ERROR"
    session.rollback.assert_called_once()


def test_integrity_error_without_existing_row_is_a_failure(session, tour):
    change_id = _change(session, tour)
    sender = DurableMessageSender(session)

    # tour_id is NOT NULL, so the insert fails without any duplicate present
    result = sender.deliver(tour["crew_a"], "hello", extra={"tour_id": None, "change_event_id": change_id})

    assert not result.ok
    assert result.reason == "STORE_ERROR"
    assert session.execute(select(DirectMessage)).scalars().all() == []
