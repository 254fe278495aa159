# /gradedesk/models/tenant_owned.py
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, declared_attr
from sqlalchemy import String, Integer, ForeignKey, DateTime, CheckConstraint

from gradedesk.core.config import SESSION_ID_MAX_LENGTH


class TenantOwned:
    """Owner columns shared by every tenant-scoped table.

    Exactly one of ``user_id`` / ``session_id`` is set; the CHECK constraint
    rejects rows that are both anonymous and account-owned, or ownerless.
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True, index=True
    )
    session_id: Mapped[Optional[str]] = mapped_column(
        String(SESSION_ID_MAX_LENGTH), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    @declared_attr.directive
    def __table_args__(cls):
        return (
            CheckConstraint(
                "(user_id IS NULL AND session_id IS NOT NULL) "
                "OR (user_id IS NOT NULL AND session_id IS NULL)",
                name=f"ck_{cls.__tablename__}_single_owner",
            ),
        )


# Columns a payload patch may never touch.
PROTECTED_COLUMNS = frozenset({"id", "user_id", "session_id", "created_at"})
