# /gradedesk/models/reference_document.py
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer

from gradedesk.core.database import Base
from gradedesk.models.tenant_owned import TenantOwned


class ReferenceDocument(TenantOwned, Base):
    """Grading reference material (rubric, answer key) uploaded by a tenant."""
    __tablename__ = "reference_documents"

    file_name: Mapped[str] = mapped_column(String(255))
    file_type: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    content: Mapped[str] = mapped_column(Text)
    word_count: Mapped[int] = mapped_column(Integer, default=0)
