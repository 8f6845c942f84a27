from datetime import date
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError as PayloadValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from tourwatch.classification import classify
from tourwatch.db.models import ChangeEvent, TourMember
from tourwatch.errors import PermissionDeniedError, ValidationError
from tourwatch.events import parse_change, payload_from_row
from tourwatch.live.stream import ChangeStream

MIN_REASON_LENGTH = 10


class ChangeEventService:
    """Authoring side of the change log: sign-off, classification, persistence, broadcast."""

    @staticmethod
    def record_change(
        session: Session,
        *,
        tour_id: int,
        author_id: int,
        entity_type: str,
        entity_id: Any,
        action: str,
        summary: str,
        reason: str,
        affects_safety: bool = False,
        affects_time: bool = False,
        affects_money: bool = False,
        severity: Optional[str] = None,
        associated_date: Optional[date] = None,
        detail: Optional[Dict[str, Any]] = None,
        stream: Optional[ChangeStream] = None,
    ) -> ChangeEvent:
        """
        Validate and store one signed-off change, then publish it to `stream`.
        The caller triggers fanout afterwards.
        """
        if len((reason or "").strip()) < MIN_REASON_LENGTH:
            raise ValidationError(
                f"Reason must be at least {MIN_REASON_LENGTH} characters", code="REASON_TOO_SHORT"
            )

        member = session.execute(
            select(TourMember).where(TourMember.tour_id == tour_id, TourMember.user_id == author_id)
        ).scalar_one_or_none()
        if member is None or member.role == "DEMO":
            raise PermissionDeniedError(
                f"User {author_id} cannot edit tour {tour_id}", code="NOT_AN_EDITOR"
            )

        derived = classify(affects_safety, affects_time, affects_money, severity)
        try:
            payload = parse_change({
                "tour_id": tour_id,
                "author_id": author_id,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "summary": summary,
                "reason": reason.strip(),
                "affects_safety": affects_safety,
                "affects_time": affects_time,
                "affects_money": affects_money,
                "severity": derived,
                "associated_date": associated_date,
                "detail": detail or {},
            })
        except PayloadValidationError as e:
            raise ValidationError(f"Invalid change payload: {e}", code="INVALID_PAYLOAD") from e

        row = ChangeEvent(
            tour_id=payload.tour_id,
            author_id=payload.author_id,
            entity_type=payload.entity_type,
            entity_id=payload.entity_id,
            action=payload.action,
            summary=payload.summary,
            reason=payload.reason,
            affects_safety=payload.affects_safety,
            affects_time=payload.affects_time,
            affects_money=payload.affects_money,
            severity=derived.value,
            associated_date=payload.associated_date,
            detail=payload.detail.model_dump(mode="json", exclude_none=True),
            processed=False,
        )
        session.add(row)
        session.commit()
        session.refresh(row)
        logger.info(f"Recorded {row.severity} change {row.id} on {row.entity_type} {row.entity_id} (tour {tour_id})")

        if stream is not None:
            stream.publish(payload_from_row(row))

        return row

    @staticmethod
    def list_unprocessed(session: Session, tour_id: int) -> List[ChangeEvent]:
        """Unprocessed changes for a tour, oldest first."""
        return list(
            session.execute(
                select(ChangeEvent)
                .where(ChangeEvent.tour_id == tour_id, ChangeEvent.processed.is_(False))
                .order_by(ChangeEvent.created_at.asc(), ChangeEvent.id.asc())
            ).scalars()
        )

    @staticmethod
    def mark_processed(session: Session, change_event_id: int) -> None:
        row = session.get(ChangeEvent, change_event_id)
        if row and not row.processed:
            row.processed = True
            session.commit()
