# /gradedesk/models/assignment.py
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer

from gradedesk.core.database import Base
from gradedesk.models.tenant_owned import TenantOwned


class Assignment(TenantOwned, Base):
    """A submitted assignment and the generated answer, owned by one tenant."""
    __tablename__ = "assignments"

    # Input: text, file, image
    input_type: Mapped[str] = mapped_column(String(20), default="text")
    input_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    extracted_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Text-generation backend that produced the response
    llm_provider: Mapped[str] = mapped_column(String(40), default="openai")
    llm_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    processing_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # ms
    input_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    output_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
