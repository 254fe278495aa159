# /gradedesk/api/credits.py
"""Credits and billing API endpoints."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from gradedesk.api.deps import get_current_user
from gradedesk.core.config import CREDIT_TIERS
from gradedesk.core.database import get_db
from gradedesk.core.errors import AccountNotFound
from gradedesk.models.user import User
from gradedesk.schemas.credits import (
    ConfirmRequest,
    ConfirmResponse,
    CreditBalance,
    CreditPackage,
    PaymentResponse,
    PurchaseRequest,
    PurchaseResponse,
)
from gradedesk.services import ledger_service, payment_service
from gradedesk.services.payment_service import CheckoutUnavailable, InvalidWebhook

logger = logging.getLogger("gradedesk.credits")

router = APIRouter(prefix="/api/credits", tags=["credits"])


# ─────────────────────────────────────────────
# ENDPOINTS
# ─────────────────────────────────────────────

@router.get("/balance", response_model=CreditBalance)
async def get_credit_balance(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Get current credit balance for the authenticated user."""
    try:
        balance = await ledger_service.get_balance(db, user.id)
    except AccountNotFound:
        raise HTTPException(status_code=404, detail="Account not found")
    return CreditBalance(balance=balance)


@router.get("/packages", response_model=List[CreditPackage])
async def get_credit_packages():
    """Get available credit packages."""
    packages = []
    for tier in CREDIT_TIERS:
        price_cents, tokens = payment_service.tier_price(tier)
        packages.append(CreditPackage(
            id=tier,
            price_cents=price_cents,
            price_display=f"${price_cents / 100:,.2f}",
            tokens=tokens,
        ))
    return packages


@router.post("/purchase", response_model=PurchaseResponse)
async def purchase_credits(
    req: PurchaseRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Start a checkout for one credit tier."""
    try:
        payment, checkout_url = await payment_service.start_checkout(db, user.id, req.tier)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except CheckoutUnavailable as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    return PurchaseResponse(
        session_id=payment.stripe_session_id,
        checkout_url=checkout_url,
        status=payment.status,
    )


@router.post("/confirm", response_model=ConfirmResponse)
async def confirm_purchase(
    req: ConfirmRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Finalize a checkout from the success redirect. Safe to repeat."""
    try:
        result = await payment_service.confirm_checkout(db, user.id, req.session_id)
    except CheckoutUnavailable as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except AccountNotFound:
        raise HTTPException(status_code=404, detail="Account not found")

    if result is None:
        raise HTTPException(status_code=404, detail="Payment not found")

    if result.already_completed:
        balance = await ledger_service.get_balance(db, user.id)
        return ConfirmResponse(already_completed=True, balance=balance)

    payment = await payment_service.get_payment(db, req.session_id, account_id=user.id)
    return ConfirmResponse(
        already_completed=False,
        balance=result.new_balance,
        credited=payment.tokens if payment else 0,
    )


@router.post("/webhook/stripe")
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Stripe webhook to finalize credit purchases."""
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        event = payment_service.construct_webhook_event(payload, sig_header)
    except CheckoutUnavailable as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except InvalidWebhook as exc:
        raise HTTPException(status_code=400, detail=f"Invalid webhook: {exc}")

    try:
        return await payment_service.handle_webhook_event(db, event)
    except (AccountNotFound, ValueError) as exc:
        # Acknowledge so Stripe stops retrying an event that can never apply.
        logger.error("webhook %s not applied: %s", event.get("id"), exc)
        return {"received": True, "credited": False}


@router.get("/payments", response_model=List[PaymentResponse])
async def list_payments(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await payment_service.list_payments(db, user.id)
