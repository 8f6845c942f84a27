"""Typed change-event payloads, one model per entity family."""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from tourwatch.classification import Severity

ACTIONS = ("CREATE", "UPDATE", "DELETE", "APPROVE")


class _Detail(BaseModel):
    model_config = ConfigDict(extra="allow")

    changed_fields: List[str] = []
    field: Optional[str] = None
    old: Optional[Any] = None
    new: Optional[Any] = None


class ScheduleEventDetail(_Detail):
    venue: Optional[str] = None
    city: Optional[str] = None
    event_date: Optional[date] = None


class ContactDetail(_Detail):
    name: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class VenueDetail(_Detail):
    venue_name: Optional[str] = None
    section: Optional[str] = None


class FinanceDetail(_Detail):
    description: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None


class DocumentDetail(_Detail):
    file_name: Optional[str] = None
    doc_type: Optional[str] = None


class _ChangeBase(BaseModel):
    model_config = ConfigDict(extra="ignore", from_attributes=True)

    id: Optional[int] = None
    tour_id: int
    author_id: int
    entity_id: str
    action: Literal["CREATE", "UPDATE", "DELETE", "APPROVE"]
    summary: str
    reason: Optional[str] = None
    affects_safety: bool = False
    affects_time: bool = False
    affects_money: bool = False
    severity: Optional[Severity] = None
    associated_date: Optional[date] = None
    created_at: Optional[datetime] = None


class ScheduleEventChange(_ChangeBase):
    entity_type: Literal["schedule_event"]
    detail: ScheduleEventDetail = ScheduleEventDetail()


class ContactChange(_ChangeBase):
    entity_type: Literal["contact"]
    detail: ContactDetail = ContactDetail()


class VenueChange(_ChangeBase):
    entity_type: Literal["venue_note", "venue_tech_spec", "venue_advance_note"]
    detail: VenueDetail = VenueDetail()


class FinanceChange(_ChangeBase):
    entity_type: Literal["finance_line"]
    detail: FinanceDetail = FinanceDetail()


class DocumentChange(_ChangeBase):
    entity_type: Literal["document"]
    detail: DocumentDetail = DocumentDetail()


ChangePayload = Annotated[
    Union[ScheduleEventChange, ContactChange, VenueChange, FinanceChange, DocumentChange],
    Field(discriminator="entity_type"),
]

_ADAPTER: TypeAdapter[Any] = TypeAdapter(ChangePayload)


def parse_change(data: Any) -> ChangePayload:
    """Validate a raw mapping into its entity-specific payload. Raises pydantic.ValidationError."""
    return _ADAPTER.validate_python(data)


def payload_from_row(row: Any) -> ChangePayload:
    """Build a payload from a ChangeEvent ORM row."""
    data = {
        "id": row.id,
        "tour_id": row.tour_id,
        "author_id": row.author_id,
        "entity_type": row.entity_type,
        "entity_id": row.entity_id,
        "action": row.action,
        "summary": row.summary,
        "reason": row.reason,
        "affects_safety": row.affects_safety,
        "affects_time": row.affects_time,
        "affects_money": row.affects_money,
        "severity": row.severity,
        "associated_date": row.associated_date,
        "created_at": row.created_at,
        "detail": row.detail or {},
    }
    return parse_change(data)
