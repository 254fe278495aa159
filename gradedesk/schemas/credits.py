# =========================================================
# FILE: /gradedesk/schemas/credits.py
# =========================================================

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class CreditBalance(BaseModel):
    balance: int


class CreditPackage(BaseModel):
    id: str
    price_cents: int
    price_display: str
    tokens: int


class PurchaseRequest(BaseModel):
    tier: str


class PurchaseResponse(BaseModel):
    session_id: str
    checkout_url: Optional[str] = None
    status: str


class ConfirmRequest(BaseModel):
    session_id: str


class ConfirmResponse(BaseModel):
    already_completed: bool
    balance: int
    credited: int = 0


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stripe_session_id: str
    amount: int
    tokens: int
    status: str
    created_at: datetime
    completed_at: Optional[datetime] = None
