# =========================================================
# FILE: /gradedesk/schemas/reference_documents.py
# =========================================================

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ReferenceDocumentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    file_name: str = Field(min_length=1, max_length=255)
    file_type: Optional[str] = None
    content: str


class ReferenceDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    file_name: str
    file_type: Optional[str] = None
    content: str
    word_count: int
    created_at: datetime
