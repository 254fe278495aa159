# =========================================================
# FILE: /gradedesk/schemas/assignments.py
# =========================================================

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator


INPUT_TYPES = {"text", "file", "image"}


class AssignmentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    input_type: str = "text"
    input_text: Optional[str] = None
    file_name: Optional[str] = None
    extracted_text: Optional[str] = None
    llm_provider: str = "openai"
    llm_response: Optional[str] = None
    processing_time: Optional[int] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None

    @field_validator("input_type")
    @classmethod
    def validate_input_type(cls, v: str):
        v = (v or "").lower().strip()
        if v not in INPUT_TYPES:
            raise ValueError(f"input_type must be one of {sorted(INPUT_TYPES)}")
        return v


class AssignmentUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    input_text: Optional[str] = None
    extracted_text: Optional[str] = None
    llm_provider: Optional[str] = None
    llm_response: Optional[str] = None
    processing_time: Optional[int] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None

    # Omitting it keeps the stored provider; null is not a value it can take.
    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: Optional[str]):
        if v is None:
            raise ValueError("llm_provider cannot be null")
        return v


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    input_type: str
    input_text: Optional[str] = None
    file_name: Optional[str] = None
    extracted_text: Optional[str] = None
    llm_provider: str
    llm_response: Optional[str] = None
    processing_time: Optional[int] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    created_at: datetime
