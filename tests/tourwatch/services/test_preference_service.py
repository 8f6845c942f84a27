import pytest

from tourwatch.classification import Severity
from tourwatch.db.models import TourNotificationDefault
from tourwatch.errors import PermissionDeniedError, ValidationError
from tourwatch.services.preferences import PreferenceService


def test_save_requires_owner(session, tour):
    with pytest.raises(PermissionDeniedError):
        PreferenceService.save_preferences(session, tour["admin"], tour["crew_a"], tour["tour"], {"day_window": 5})


def test_save_creates_then_updates(session, tour):
    row = PreferenceService.save_preferences(
        session, tour["crew_a"], tour["crew_a"], tour["tour"], {"min_severity": "important", "day_window": "5"}
    )
    assert row.min_severity == "IMPORTANT"
    assert row.day_window == 5

    PreferenceService.save_preferences(
        session, tour["crew_a"], tour["crew_a"], tour["tour"], {"notify_contact_changes": True}
    )
    prefs = PreferenceService.resolve_for_user(session, tour["crew_a"], tour["tour"])
    assert prefs.min_severity == Severity.IMPORTANT
    assert prefs.day_window == 5
    assert prefs.notify_contact_changes is True


def test_save_rejects_unknown_fields_and_values(session, tour):
    with pytest.raises(ValidationError):
        PreferenceService.save_preferences(session, tour["crew_a"], tour["crew_a"], tour["tour"], {"volume": 11})
    with pytest.raises(ValidationError):
        PreferenceService.save_preferences(
            session, tour["crew_a"], tour["crew_a"], tour["tour"], {"min_severity": "LOUD"}
        )


def test_new_row_is_seeded_from_tour_defaults(session, tour):
    session.add(TourNotificationDefault(tour_id=tour["tour"], min_severity="INFO", day_window=10))
    session.commit()

    row = PreferenceService.save_preferences(
        session, tour["crew_b"], tour["crew_b"], tour["tour"], {"notify_finance_changes": True}
    )
    assert row.min_severity == "INFO"
    assert row.day_window == 10
    assert row.safety_always is True


def test_resolve_for_members_falls_back(session, tour):
    from sqlalchemy import select
    from tourwatch.db.models import TourMember

    session.add(TourNotificationDefault(tour_id=tour["tour"], min_severity="IMPORTANT", day_window=2))
    session.commit()
    PreferenceService.save_preferences(session, tour["crew_a"], tour["crew_a"], tour["tour"], {"day_window": 9})

    members = session.execute(select(TourMember).where(TourMember.tour_id == tour["tour"])).scalars().all()
    resolved = PreferenceService.resolve_for_members(session, tour["tour"], members)

    assert resolved[tour["crew_a"]].day_window == 9
    assert resolved[tour["crew_b"]].day_window == 2
    assert resolved[tour["crew_b"]].min_severity == Severity.IMPORTANT


def test_snapshot_for_user(session, tour):
    snapshot = PreferenceService.snapshot_for_user(session, tour["crew_a"])
    assert set(snapshot) == {tour["tour"]}
    assert snapshot[tour["tour"]].min_severity == Severity.CRITICAL
