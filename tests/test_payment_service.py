"""Webhook handling and checkout confirmation."""

import os
import sqlite3

import pytest
from sqlalchemy.engine import make_url

from gradedesk.core.database import SessionLocal
from gradedesk.models.payment import PAYMENT_COMPLETED, PAYMENT_FAILED
from gradedesk.services import event_service, payment_service

pytestmark = pytest.mark.usefixtures("database")


def _event(event_id, event_type="checkout.session.completed", session_id="cs_123", **session):
    obj = {"id": session_id, "payment_status": "paid", "amount_total": 1000}
    obj.update(session)
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


async def _handle(event):
    async with SessionLocal() as db:
        return await payment_service.handle_webhook_event(db, event)


async def test_tier_price():
    assert payment_service.tier_price("10") == (1000, 30000)
    assert payment_service.tier_price(" 1 ") == (100, 2000)
    with pytest.raises(ValueError):
        payment_service.tier_price("7")


async def test_completion_from_session_reads_metadata():
    completion = payment_service.completion_from_session(
        {
            "id": "cs_9",
            "payment_status": "paid",
            "amount_total": 10000,
            "metadata": {"user_id": "42", "tokens": "600000", "tier": "100"},
        }
    )
    assert completion.session_id == "cs_9"
    assert completion.account_id == 42
    assert completion.tokens == 600000
    assert completion.amount_total == 10000
    assert completion.paid is True


async def test_completed_event_credits_once(make_account, make_payment, balance_of, payment_of):
    account_id = await make_account()
    await make_payment(account_id, "cs_123", tokens=30000)
    metadata = {"user_id": str(account_id), "tokens": "30000"}

    first = await _handle(_event("evt_1", metadata=metadata))
    assert first == {"received": True, "credited": True, "already_completed": False}

    # Same event redelivered
    again = await _handle(_event("evt_1", metadata=metadata))
    assert again == {"received": True, "duplicate": True}

    # A different event for the same checkout
    other = await _handle(
        _event("evt_2", "checkout.session.async_payment_succeeded", metadata=metadata)
    )
    assert other["credited"] is False
    assert other["already_completed"] is True

    assert (await payment_of("cs_123")).raw["stripe_event_id"] == "evt_1"
    assert await balance_of(account_id) == 30000
    async with SessionLocal() as db:
        assert await event_service.has_processed(db, "evt_1")
        assert await event_service.has_processed(db, "evt_2")


async def test_missing_metadata_falls_back_to_pending_record(make_account, make_payment, balance_of):
    account_id = await make_account()
    await make_payment(account_id, "cs_meta", tokens=2000)

    outcome = await _handle(_event("evt_meta", session_id="cs_meta"))

    assert outcome["credited"] is True
    assert await balance_of(account_id) == 2000


async def test_unknown_checkout_without_metadata_is_not_credited(make_account, payment_of):
    await make_account()
    outcome = await _handle(_event("evt_orphan", session_id="cs_orphan"))
    assert outcome["credited"] is False
    assert await payment_of("cs_orphan") is None


async def test_unpaid_completion_waits(make_account, make_payment, balance_of, payment_of):
    account_id = await make_account()
    await make_payment(account_id, "cs_slow", tokens=2000)

    outcome = await _handle(_event("evt_slow", session_id="cs_slow", payment_status="unpaid"))

    assert outcome["credited"] is False
    assert await balance_of(account_id) == 0
    assert (await payment_of("cs_slow")).status == "pending"


async def test_expired_checkout_marks_pending_failed(make_account, make_payment, payment_of):
    account_id = await make_account()
    await make_payment(account_id, "cs_gone", tokens=2000)

    outcome = await _handle(_event("evt_exp", "checkout.session.expired", session_id="cs_gone"))

    assert outcome["failed"] is True
    payment = await payment_of("cs_gone")
    assert payment.status == PAYMENT_FAILED
    assert payment.raw["failure"] == "checkout.session.expired"
    assert payment.raw["tier"] == "10"


async def test_expiry_never_undoes_completion(make_account, make_payment, payment_of, balance_of):
    account_id = await make_account()
    await make_payment(account_id, "cs_done", tokens=2000)
    await _handle(_event("evt_ok", session_id="cs_done", metadata={"user_id": str(account_id)}))

    outcome = await _handle(_event("evt_late", "checkout.session.expired", session_id="cs_done"))

    assert outcome["failed"] is False
    assert (await payment_of("cs_done")).status == PAYMENT_COMPLETED
    assert await balance_of(account_id) == 2000


async def test_other_event_types_are_acknowledged():
    outcome = await _handle({"id": "evt_misc", "type": "customer.created", "data": {"object": {}}})
    assert outcome == {"received": True}
    async with SessionLocal() as db:
        assert await event_service.has_processed(db, "evt_misc")


async def test_mock_checkout_confirms_once(make_account, balance_of):
    account_id = await make_account()

    async with SessionLocal() as db:
        payment, url = await payment_service.start_checkout(db, account_id, "10")
    assert url is None
    assert payment.stripe_session_id.startswith(payment_service.MOCK_SESSION_PREFIX)

    async with SessionLocal() as db:
        first = await payment_service.confirm_checkout(db, account_id, payment.stripe_session_id)
    async with SessionLocal() as db:
        second = await payment_service.confirm_checkout(db, account_id, payment.stripe_session_id)

    assert first.already_completed is False
    assert first.new_balance == 30000
    assert second.already_completed is True
    assert await balance_of(account_id) == 30000


async def test_confirm_someone_elses_checkout(make_account):
    owner_id = await make_account("owner")
    other_id = await make_account("other")
    async with SessionLocal() as db:
        payment, _ = await payment_service.start_checkout(db, owner_id, "1")

    async with SessionLocal() as db:
        assert await payment_service.confirm_checkout(db, other_id, payment.stripe_session_id) is None


async def test_list_payments_newest_first(make_account):
    account_id = await make_account()
    async with SessionLocal() as db:
        await payment_service.start_checkout(db, account_id, "1")
    async with SessionLocal() as db:
        await payment_service.start_checkout(db, account_id, "10")

    async with SessionLocal() as db:
        payments = await payment_service.list_payments(db, account_id)
    assert [p.tokens for p in payments] == [30000, 2000]


async def test_provider_lookup_runs_without_the_write_lock(make_account, make_payment, balance_of, monkeypatch):
    account_id = await make_account()
    await make_payment(account_id, "cs_live", tokens=2000)
    db_path = make_url(os.environ["DATABASE_URL"]).database

    def fake_retrieve(session_id):
        # Another writer must get the lock immediately while Stripe is being asked.
        conn = sqlite3.connect(db_path, timeout=0, isolation_level=None)
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("ROLLBACK")
        finally:
            conn.close()
        return payment_service.CheckoutCompletion(
            session_id=session_id, account_id=account_id, tokens=2000, amount_total=1000, paid=True
        )

    monkeypatch.setattr(payment_service, "retrieve_checkout", fake_retrieve)

    async with SessionLocal() as db:
        result = await payment_service.confirm_checkout(db, account_id, "cs_live")

    assert result.already_completed is False
    assert await balance_of(account_id) == 2000
