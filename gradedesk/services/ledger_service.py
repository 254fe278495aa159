# FILE: gradedesk/services/ledger_service.py
"""Account balances and the claim-then-credit payment reconciler.

The balance column is only ever written by ``reconcile_and_credit``: a payment
is first *claimed* (a conditional write that succeeds for exactly one caller)
and only the winner of the claim credits the account, in the same
transaction. Losers see ``already_completed``.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gradedesk.core.config import DEFAULT_CHARGE_AMOUNT_CENTS, RECONCILE_TIMEOUT_SECONDS
from gradedesk.core.database import SessionLocal, is_unique_violation
from gradedesk.core.errors import AccountNotFound, StoreError
from gradedesk.models.payment import PAYMENT_COMPLETED, StripePayment
from gradedesk.models.user import User

logger = logging.getLogger("gradedesk.ledger")


@dataclass(frozen=True)
class ReconcileResult:
    already_completed: bool
    new_balance: Optional[int] = None


class _ConflictLost(Exception):
    """A concurrent transaction claimed the payment first."""


async def get_balance(db: AsyncSession, account_id: int) -> int:
    try:
        balance = (
            await db.execute(select(User.token_balance).where(User.id == account_id))
        ).scalar_one_or_none()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StoreError("could not read balance", operation="get_balance", raw=str(exc)[:4000]) from exc
    if balance is None:
        raise AccountNotFound(account_id)
    return int(balance)


async def _credit(db: AsyncSession, account_id: int, amount: int) -> int:
    """Add ``amount`` to the balance inside the caller's transaction."""
    res = await db.execute(
        update(User)
        .where(User.id == account_id)
        .values(token_balance=User.token_balance + amount)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise AccountNotFound(account_id)
    return int(
        (await db.execute(select(User.token_balance).where(User.id == account_id))).scalar_one()
    )


async def _insert_completed(db: AsyncSession, values: Dict[str, Any]) -> bool:
    """Insert a completed payment; ``False`` when the session id already exists."""
    table = StripePayment.__table__
    dialect_name = db.get_bind().dialect.name

    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        stmt = _pg_insert(table).values(**values).on_conflict_do_nothing(
            index_elements=["stripe_session_id"]
        )
        return (await db.execute(stmt)).rowcount > 0

    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

        stmt = _sqlite_insert(table).values(**values).on_conflict_do_nothing(
            index_elements=["stripe_session_id"]
        )
        return (await db.execute(stmt)).rowcount > 0

    try:
        await db.execute(insert(table).values(**values))
    except IntegrityError as exc:
        if is_unique_violation(exc):
            raise _ConflictLost() from exc
        raise
    return True


async def _claim(
    db: AsyncSession,
    external_session_id: str,
    account_id: int,
    amount: int,
    charge_amount: Optional[int],
    metadata: Optional[Dict[str, Any]],
) -> bool:
    """Move the payment to ``completed``. Returns True only for the winner."""
    # Checked before any write so a missing account never surfaces as a
    # foreign-key failure on the payment insert.
    account = (
        await db.execute(select(User.id).where(User.id == account_id).with_for_update())
    ).scalar_one_or_none()
    if account is None:
        raise AccountNotFound(account_id)

    payment = (
        await db.execute(
            select(StripePayment).where(StripePayment.stripe_session_id == external_session_id)
        )
    ).scalar_one_or_none()

    now = datetime.utcnow()

    if payment is not None:
        if payment.status == PAYMENT_COMPLETED:
            return False
        if payment.user_id != account_id:
            raise ValueError(
                f"payment {external_session_id} belongs to account {payment.user_id}, not {account_id}"
            )

        raw = dict(payment.raw or {})
        raw.update(metadata or {})

        # Compare-and-swap on the status we just read.
        res = await db.execute(
            update(StripePayment)
            .where(
                StripePayment.stripe_session_id == external_session_id,
                StripePayment.status == payment.status,
            )
            .values(status=PAYMENT_COMPLETED, completed_at=now, updated_at=now, raw=raw)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount > 0

    raw = {"webhookCreated": True}
    raw.update(metadata or {})
    return await _insert_completed(
        db,
        {
            "user_id": account_id,
            "stripe_session_id": external_session_id,
            "amount": charge_amount if charge_amount is not None else DEFAULT_CHARGE_AMOUNT_CENTS,
            "tokens": amount,
            "status": PAYMENT_COMPLETED,
            "created_at": now,
            "updated_at": now,
            "completed_at": now,
            "raw": raw,
        },
    )


async def _reconcile(
    external_session_id: str,
    account_id: int,
    amount: int,
    charge_amount: Optional[int],
    metadata: Optional[Dict[str, Any]],
) -> ReconcileResult:
    async with SessionLocal() as db:
        try:
            claimed = await _claim(db, external_session_id, account_id, amount, charge_amount, metadata)
            if not claimed:
                await db.rollback()
                logger.info("payment %s already completed", external_session_id)
                return ReconcileResult(already_completed=True)

            new_balance = await _credit(db, account_id, amount)
            await db.commit()
        except _ConflictLost:
            await db.rollback()
            logger.info("payment %s claimed by a concurrent delivery", external_session_id)
            return ReconcileResult(already_completed=True)
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("reconcile %s failed: %s", external_session_id, exc)
            raise StoreError(
                "payment reconciliation failed",
                operation="reconcile_and_credit",
                raw=str(exc)[:4000],
            ) from exc
        except Exception:
            await db.rollback()
            raise

    logger.info(
        "credited %s tokens to account %s for payment %s (balance %s)",
        amount, account_id, external_session_id, new_balance,
    )
    return ReconcileResult(already_completed=False, new_balance=new_balance)


async def reconcile_and_credit(
    external_session_id: str,
    account_id: int,
    amount: int,
    charge_amount: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> ReconcileResult:
    """Complete the payment for ``external_session_id`` and credit ``amount`` once.

    Safe to call any number of times, concurrently, from the checkout redirect
    and the webhook alike. Raises ``AccountNotFound`` or ``StoreError`` with
    nothing written.
    """
    if not external_session_id:
        raise ValueError("external_session_id is required")
    if amount <= 0:
        raise ValueError("amount must be positive")

    try:
        return await asyncio.wait_for(
            _reconcile(external_session_id, account_id, amount, charge_amount, metadata),
            timeout=RECONCILE_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError as exc:
        logger.error("reconcile %s timed out after %ss", external_session_id, RECONCILE_TIMEOUT_SECONDS)
        raise StoreError("payment reconciliation timed out", operation="reconcile_and_credit") from exc
