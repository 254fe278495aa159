# /gradedesk/models/payment.py
from datetime import datetime
from typing import Optional, Any
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, ForeignKey, DateTime, JSON, CheckConstraint

from gradedesk.core.database import Base

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"


class StripePayment(Base):
    """One checkout attempt. ``completed`` is terminal."""
    __tablename__ = "stripe_payments"
    __table_args__ = (
        CheckConstraint(
            "(status = 'completed' AND completed_at IS NOT NULL) "
            "OR (status <> 'completed' AND completed_at IS NULL)",
            name="ck_stripe_payments_completed_at",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True)

    # Checkout session id assigned by the provider; idempotency key for crediting
    stripe_session_id: Mapped[str] = mapped_column(String(190), unique=True)

    # Charge in cents
    amount: Mapped[int] = mapped_column(Integer)

    # Credit units added to the account balance on completion
    tokens: Mapped[int] = mapped_column(Integer)

    # Status: pending, completed, failed
    status: Mapped[str] = mapped_column(String(20), default=PAYMENT_PENDING)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Raw metadata (tier, webhook origin, stripe event ids)
    raw: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
