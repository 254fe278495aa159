# FILE: gradedesk/services/event_service.py
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gradedesk.core.database import is_unique_violation
from gradedesk.core.errors import EventAlreadyProcessed, StoreError
from gradedesk.models.stripe_event import StripeEvent

logger = logging.getLogger("gradedesk.events")


async def has_processed(db: AsyncSession, event_id: str) -> bool:
    try:
        found = (
            await db.execute(select(StripeEvent.id).where(StripeEvent.event_id == event_id))
        ).scalar_one_or_none()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StoreError("could not read processed events", operation="has_processed", raw=str(exc)[:4000]) from exc
    return found is not None


async def mark_processed(db: AsyncSession, event_id: str, event_type: str = "") -> StripeEvent:
    """Record ``event_id`` as handled. Raises ``EventAlreadyProcessed`` on a duplicate."""
    event = StripeEvent(event_id=event_id, event_type=event_type or "unknown")
    db.add(event)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        if is_unique_violation(exc):
            logger.info("event %s already recorded", event_id)
            raise EventAlreadyProcessed(event_id) from exc
        raise StoreError("could not record event", operation="mark_processed", raw=str(exc)[:4000]) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StoreError("could not record event", operation="mark_processed", raw=str(exc)[:4000]) from exc
    return event
