# FILE: gradedesk/services/payment_service.py
"""Stripe checkout glue and payment records.

Crediting itself lives in ``ledger_service.reconcile_and_credit``; this module
only creates pending records, talks to Stripe and turns provider payloads into
reconciler calls.
"""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import stripe
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gradedesk.core.config import (
    CREDIT_TIERS,
    FRONTEND_URL,
    LOG_DIR,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
    TEST_MODE,
)
from gradedesk.core.errors import EventAlreadyProcessed
from gradedesk.models.payment import PAYMENT_FAILED, PAYMENT_PENDING, StripePayment
from gradedesk.services import event_service, ledger_service
from gradedesk.services.ledger_service import ReconcileResult
from gradedesk.services.resource_store import store_operation

logger = logging.getLogger("gradedesk.payments")

stripe_logger = logging.getLogger("gradedesk.stripe")
if not stripe_logger.handlers:
    os.makedirs(LOG_DIR, exist_ok=True)
    handler = logging.FileHandler(os.path.join(LOG_DIR, "stripe.log"))
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    stripe_logger.setLevel(logging.INFO)
    stripe_logger.addHandler(handler)

if STRIPE_SECRET_KEY:
    stripe.api_key = STRIPE_SECRET_KEY

MOCK_PROVIDER = "mock"
MOCK_SESSION_PREFIX = "cs_mock_"

COMPLETION_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
FAILURE_EVENTS = {"checkout.session.expired", "checkout.session.async_payment_failed"}


class CheckoutUnavailable(Exception):
    pass


class InvalidWebhook(Exception):
    pass


@dataclass(frozen=True)
class CheckoutCompletion:
    session_id: str
    account_id: Optional[int]
    tokens: int
    amount_total: Optional[int]
    paid: bool
    metadata: Dict[str, Any] = field(default_factory=dict)


# ─────────────────────────────────────────────
# STRIPE PAYLOADS
# ─────────────────────────────────────────────

def _as_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None) or getattr(obj, "to_dict_recursive", None)
    if callable(to_dict):
        return to_dict()
    return {}


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def tier_price(tier: str) -> Tuple[int, int]:
    """Return (charge in cents, credit units) for a tier key such as "10"."""
    tier = str(tier).strip()
    if tier not in CREDIT_TIERS:
        raise ValueError(f"Unknown credit tier: {tier}")
    return int(tier) * 100, CREDIT_TIERS[tier]


def completion_from_session(session_obj: Any) -> CheckoutCompletion:
    session = _as_dict(session_obj)
    metadata = _as_dict(session.get("metadata"))
    return CheckoutCompletion(
        session_id=str(session.get("id") or ""),
        account_id=_int_or_none(metadata.get("user_id")),
        tokens=_int_or_none(metadata.get("tokens")) or 0,
        amount_total=_int_or_none(session.get("amount_total")),
        paid=session.get("payment_status") in {"paid", "no_payment_required"},
        metadata={str(k): v for k, v in metadata.items()},
    )


def construct_webhook_event(payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
    if not STRIPE_WEBHOOK_SECRET:
        raise CheckoutUnavailable("Stripe webhook not configured")
    try:
        event = stripe.Webhook.construct_event(
            payload=payload, sig_header=sig_header, secret=STRIPE_WEBHOOK_SECRET
        )
    except (ValueError, stripe.SignatureVerificationError) as exc:
        stripe_logger.warning("Rejected webhook: %s", exc)
        raise InvalidWebhook(str(exc)) from exc
    return _as_dict(event)


def retrieve_checkout(session_id: str) -> CheckoutCompletion:
    if not STRIPE_SECRET_KEY:
        raise CheckoutUnavailable("Stripe is not configured")
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as exc:
        stripe_logger.error("Stripe session retrieval failed for %s", session_id, exc_info=exc)
        raise CheckoutUnavailable("Stripe session retrieval failed") from exc
    return completion_from_session(session)


# ─────────────────────────────────────────────
# PAYMENT RECORDS
# ─────────────────────────────────────────────

async def create_pending_payment(
    db: AsyncSession,
    account_id: int,
    stripe_session_id: str,
    amount: int,
    tokens: int,
    raw: Optional[Dict[str, Any]] = None,
) -> StripePayment:
    payment = StripePayment(
        user_id=account_id,
        stripe_session_id=stripe_session_id,
        amount=amount,
        tokens=tokens,
        status=PAYMENT_PENDING,
        raw=raw or {},
    )
    async with store_operation(db, "create payment"):
        db.add(payment)
        await db.commit()
    return payment


async def get_payment(
    db: AsyncSession, stripe_session_id: str, account_id: Optional[int] = None
) -> Optional[StripePayment]:
    conditions = [StripePayment.stripe_session_id == stripe_session_id]
    if account_id is not None:
        conditions.append(StripePayment.user_id == account_id)
    async with store_operation(db, "get payment"):
        return (
            await db.execute(
                select(StripePayment)
                .where(*conditions)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()


async def list_payments(db: AsyncSession, account_id: int) -> List[StripePayment]:
    async with store_operation(db, "list payments"):
        rows = (
            await db.execute(
                select(StripePayment)
                .where(StripePayment.user_id == account_id)
                .order_by(StripePayment.created_at.desc(), StripePayment.id.desc())
            )
        ).scalars().all()
    return list(rows)


async def update_payment_metadata(
    db: AsyncSession, stripe_session_id: str, metadata: Dict[str, Any]
) -> bool:
    payment = await get_payment(db, stripe_session_id)
    if not payment:
        return False
    merged = dict(payment.raw or {})
    merged.update(metadata or {})
    async with store_operation(db, "update payment metadata"):
        payment.raw = merged
        payment.updated_at = datetime.utcnow()
        await db.commit()
    return True


async def mark_failed(db: AsyncSession, stripe_session_id: str) -> bool:
    """pending -> failed; a completed payment is never touched."""
    async with store_operation(db, "mark payment failed"):
        res = await db.execute(
            update(StripePayment)
            .where(
                StripePayment.stripe_session_id == stripe_session_id,
                StripePayment.status == PAYMENT_PENDING,
            )
            .values(status=PAYMENT_FAILED, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    if res.rowcount:
        logger.info("payment %s marked failed", stripe_session_id)
    return res.rowcount > 0


# ─────────────────────────────────────────────
# CHECKOUT FLOW
# ─────────────────────────────────────────────

async def start_checkout(db: AsyncSession, account_id: int, tier: str) -> Tuple[StripePayment, Optional[str]]:
    """Create the provider checkout session and its pending record."""
    amount, tokens = tier_price(tier)

    # TEST MODE: no Stripe round trip, the session is confirmed through /confirm.
    if TEST_MODE:
        payment = await create_pending_payment(
            db,
            account_id,
            f"{MOCK_SESSION_PREFIX}{uuid.uuid4().hex}",
            amount,
            tokens,
            raw={"tier": tier, "provider": MOCK_PROVIDER},
        )
        return payment, None

    if not STRIPE_SECRET_KEY:
        raise CheckoutUnavailable("Stripe is not configured")

    try:
        session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            payment_method_types=["card"],
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": "usd",
                        "product_data": {"name": f"{tokens:,} credits"},
                        "unit_amount": amount,
                    },
                    "quantity": 1,
                }
            ],
            success_url=f"{FRONTEND_URL}/credits?success=1&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{FRONTEND_URL}/credits?canceled=1",
            metadata={
                "user_id": str(account_id),
                "tokens": str(tokens),
                "tier": tier,
            },
        )
    except stripe.StripeError as exc:
        stripe_logger.error("Stripe session creation failed", exc_info=exc)
        raise CheckoutUnavailable("Stripe session creation failed; see logs/stripe.log") from exc

    session = _as_dict(session)
    payment = await create_pending_payment(
        db,
        account_id,
        session["id"],
        amount,
        tokens,
        raw={"tier": tier, "provider": "stripe"},
    )
    stripe_logger.info("Checkout %s created for account %s (%s tokens)", session["id"], account_id, tokens)
    return payment, session.get("url")


async def confirm_checkout(
    db: AsyncSession, account_id: int, stripe_session_id: str
) -> Optional[ReconcileResult]:
    """Redirect path: finalize the caller's own checkout.

    Returns None when the session is not the caller's. Raises
    ``CheckoutUnavailable`` if the provider has not marked it paid.
    """
    payment = await get_payment(db, stripe_session_id, account_id=account_id)
    # End the read transaction; neither the provider call nor the reconciler
    # may run while this session holds the write lock.
    await db.commit()
    if not payment:
        return None

    if (payment.raw or {}).get("provider") == MOCK_PROVIDER:
        if not TEST_MODE:
            raise CheckoutUnavailable("Mock payments are only accepted in TEST_MODE")
        charge = payment.amount
    else:
        completion = await asyncio.to_thread(retrieve_checkout, stripe_session_id)
        if not completion.paid:
            raise CheckoutUnavailable("Payment has not been completed")
        if completion.account_id is not None and completion.account_id != account_id:
            stripe_logger.error(
                "Checkout %s metadata names account %s, caller is %s",
                stripe_session_id, completion.account_id, account_id,
            )
            return None
        charge = completion.amount_total if completion.amount_total is not None else payment.amount

    return await ledger_service.reconcile_and_credit(
        stripe_session_id,
        account_id,
        payment.tokens,
        charge_amount=charge,
        metadata={"confirmed_via": "redirect"},
    )


async def handle_webhook_event(db: AsyncSession, event: Dict[str, Any]) -> Dict[str, Any]:
    """Apply one verified Stripe event. Redelivered events are acknowledged untouched."""
    event_id = str(event.get("id") or "")
    event_type = str(event.get("type") or "")

    if event_id and await event_service.has_processed(db, event_id):
        stripe_logger.info("Duplicate event %s (%s) ignored", event_id, event_type)
        return {"received": True, "duplicate": True}

    outcome: Dict[str, Any] = {"received": True}
    session_obj = _as_dict(_as_dict(event.get("data")).get("object"))

    if event_type in COMPLETION_EVENTS:
        completion = completion_from_session(session_obj)
        outcome.update(await _credit_from_completion(db, completion, event_id))
    elif event_type in FAILURE_EVENTS:
        session_id = str(session_obj.get("id") or "")
        outcome["failed"] = bool(session_id) and await mark_failed(db, session_id)
        if outcome["failed"]:
            await update_payment_metadata(db, session_id, {"stripe_event_id": event_id, "failure": event_type})

    if event_id:
        try:
            await event_service.mark_processed(db, event_id, event_type)
        except EventAlreadyProcessed:
            stripe_logger.info("Event %s recorded by a concurrent delivery", event_id)
    return outcome


async def _credit_from_completion(
    db: AsyncSession, completion: CheckoutCompletion, event_id: str
) -> Dict[str, Any]:
    if not completion.session_id:
        stripe_logger.error("Event %s has no checkout session id", event_id)
        return {"credited": False}
    if not completion.paid:
        # Delayed payment methods complete later with async_payment_succeeded.
        stripe_logger.info("Checkout %s completed but unpaid", completion.session_id)
        return {"credited": False}

    account_id = completion.account_id
    tokens = completion.tokens
    if account_id is None or tokens <= 0:
        pending = await get_payment(db, completion.session_id)
        if pending:
            account_id = pending.user_id if account_id is None else account_id
            tokens = tokens if tokens > 0 else pending.tokens
    if account_id is None or tokens <= 0:
        stripe_logger.error(
            "Checkout %s carries no account or token amount; not credited", completion.session_id
        )
        return {"credited": False}

    await db.commit()
    result = await ledger_service.reconcile_and_credit(
        completion.session_id,
        account_id,
        tokens,
        charge_amount=completion.amount_total,
        metadata={"stripe_event_id": event_id, **completion.metadata},
    )
    stripe_logger.info(
        "Checkout %s via event %s: already_completed=%s",
        completion.session_id, event_id, result.already_completed,
    )
    return {"credited": not result.already_completed, "already_completed": result.already_completed}
