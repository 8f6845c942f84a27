"""Durable in-app message channel backed by the direct_messages table."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tourwatch.channels.base import DeliveryResult
from tourwatch.db.models import DirectMessage


class DurableMessageSender:
    code = "DURABLE"

    def __init__(self, session: Session):
        self.session = session

    def deliver(
        self,
        destination: int,
        body: str,
        *,
        trace_id: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> DeliveryResult:
        """
        Insert one DirectMessage for recipient `destination` and commit.

        `extra` carries tour_id (required), sender_id and change_event_id.
        A unique violation on (change_event_id, recipient_id) means another run
        already delivered it and is reported as a duplicate success. Any other
        integrity or store error is a STORE_ERROR failure.
        """
        extra = extra or {}
        message = DirectMessage(
            tour_id=extra["tour_id"],
            sender_id=extra.get("sender_id"),
            recipient_id=destination,
            change_event_id=extra.get("change_event_id"),
            body=body,
        )
        try:
            self.session.add(message)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if self._already_delivered(extra.get("change_event_id"), destination):
                logger.info(
                    f"[FANOUT] Message for change {extra.get('change_event_id')} already delivered to user {destination}"
                )
                return DeliveryResult.success(self.code, duplicate=True)
            logger.error(f"[FANOUT] Failed to store message for user {destination} (trace={trace_id}): {e}")
            return DeliveryResult.failure(self.code, "STORE_ERROR")
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"[FANOUT] Failed to store message for user {destination} (trace={trace_id}): {e}")
            return DeliveryResult.failure(self.code, "STORE_ERROR")

        return DeliveryResult.success(self.code, ref=str(message.id))

    def _already_delivered(self, change_event_id: Optional[int], recipient_id: int) -> bool:
        if change_event_id is None:
            return False
        existing = self.session.execute(
            select(DirectMessage.id).where(
                DirectMessage.change_event_id == change_event_id,
                DirectMessage.recipient_id == recipient_id,
            )
        ).first()
        return existing is not None
