# /gradedesk/models/stripe_event.py
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime

from gradedesk.core.database import Base


class StripeEvent(Base):
    """Webhook events already handled, keyed by the provider's event id."""
    __tablename__ = "stripe_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(255), unique=True)  # e.g. "evt_1Abc..."
    event_type: Mapped[str] = mapped_column(String(100))
    processed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
