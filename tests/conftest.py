from dataclasses import dataclass, field
from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tourwatch.channels.base import DeliveryResult
from tourwatch.config import Settings, TwilioConfig
from tourwatch.db.base import Base
from tourwatch.db import models  # noqa: F401
from tourwatch.db.models import Tour, TourMember, User


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    return Settings(
        twilio=TwilioConfig(
            account_sid="AC123",
            auth_token="secret",
            from_number="+15550001111",
        )
    )


@pytest.fixture
def tour(session):
    """A tour with a TA (admin), two crew members and a demo user."""
    users = {
        "admin": User(email="ta@example.com", display_name="Tour Admin", phone="+15550000001"),
        "crew_a": User(email="a@example.com", display_name="Crew A", phone="+15550000002"),
        "crew_b": User(email="b@example.com", display_name="Crew B", phone="+15550000003"),
        "demo": User(email="demo@example.com", display_name="Demo"),
    }
    t = Tour(name="Spring Run")
    session.add_all([t, *users.values()])
    session.flush()
    session.add_all([
        TourMember(tour_id=t.id, user_id=users["admin"].id, role="TA"),
        TourMember(tour_id=t.id, user_id=users["crew_a"].id, role="CREW"),
        TourMember(tour_id=t.id, user_id=users["crew_b"].id, role="CREW"),
        TourMember(tour_id=t.id, user_id=users["demo"].id, role="DEMO"),
    ])
    session.commit()
    ids = {name: u.id for name, u in users.items()}
    ids["tour"] = t.id
    return ids


@dataclass
class FakeSmsSender:
    """Records sends instead of calling the gateway."""

    code: str = "SMS"
    fail: bool = False
    sent: List[tuple] = field(default_factory=list)

    def format_body(self, text: str) -> str:
        return f"{text}. -TELA"

    def deliver(self, destination, body, *, trace_id: Optional[str] = None, extra=None) -> DeliveryResult:
        self.sent.append((destination, body))
        if self.fail:
            return DeliveryResult.failure(self.code, "HTTP_500")
        return DeliveryResult.success(self.code, ref=f"SM{len(self.sent)}")


@pytest.fixture
def fake_sms():
    return FakeSmsSender()
