# /gradedesk/models/user.py
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, CheckConstraint

from gradedesk.core.database import Base

class User(Base):
    """Authenticated account. ``token_balance`` is written only by the ledger."""
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("token_balance >= 0", name="ck_users_token_balance_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    token_balance: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
