"""Tenant-scoped CRUD: isolation between tenants and the empty-session refusal."""

import pytest

from gradedesk.core.database import SessionLocal
from gradedesk.core.errors import NoAuthority
from gradedesk.core.tenant import AccountOwner, SessionOwner
from gradedesk.models.assignment import Assignment
from gradedesk.services.resource_store import assignments, reference_documents

pytestmark = pytest.mark.usefixtures("database")

ALICE = SessionOwner(session_id="session-alice")
BOB = SessionOwner(session_id="session-bob")
NOBODY = SessionOwner(session_id="")


async def _create(owner, text="essay"):
    async with SessionLocal() as db:
        return await assignments.create(db, owner, {"input_type": "text", "input_text": text})


async def test_create_records_the_owner():
    row = await _create(ALICE)
    assert row.id is not None
    assert row.session_id == "session-alice"
    assert row.user_id is None


async def test_sessions_cannot_see_each_other():
    mine = await _create(ALICE, "alice's essay")
    await _create(BOB, "bob's essay")

    async with SessionLocal() as db:
        listed = await assignments.list(db, ALICE)
        assert [r.input_text for r in listed] == ["alice's essay"]
        assert await assignments.get(db, mine.id, BOB) is None
        assert await assignments.get(db, mine.id, ALICE) is not None


async def test_account_does_not_see_anonymous_rows(make_account):
    account_id = await make_account()
    await _create(ALICE)

    async with SessionLocal() as db:
        assert await assignments.list(db, AccountOwner(account_id=account_id)) == []


async def test_update_and_delete_by_other_tenant_are_misses():
    row = await _create(ALICE, "original")

    async with SessionLocal() as db:
        assert await assignments.update(db, row.id, BOB, {"input_text": "hijacked"}) is None
    async with SessionLocal() as db:
        assert await assignments.delete(db, row.id, BOB) is False
    async with SessionLocal() as db:
        kept = await assignments.get(db, row.id, ALICE)
        assert kept.input_text == "original"


async def test_update_returns_the_new_row():
    row = await _create(ALICE, "draft")

    async with SessionLocal() as db:
        updated = await assignments.update(db, row.id, ALICE, {"llm_response": "B+", "output_tokens": 12})
    assert updated.llm_response == "B+"
    assert updated.output_tokens == 12
    assert updated.input_text == "draft"


async def test_owner_columns_cannot_be_patched():
    row = await _create(ALICE)

    async with SessionLocal() as db:
        with pytest.raises(ValueError):
            await assignments.update(db, row.id, ALICE, {"session_id": "session-bob"})
        with pytest.raises(ValueError):
            await assignments.update(db, row.id, ALICE, {"user_id": 1})
        with pytest.raises(ValueError):
            await assignments.update(db, row.id, ALICE, {"no_such_column": 1})


async def test_delete_all_only_touches_own_rows():
    await _create(ALICE)
    await _create(ALICE)
    await _create(BOB)

    async with SessionLocal() as db:
        assert await assignments.delete_all(db, ALICE) == 2
    async with SessionLocal() as db:
        assert await assignments.list(db, ALICE) == []
        assert len(await assignments.list(db, BOB)) == 1


async def test_empty_session_cannot_create():
    async with SessionLocal() as db:
        with pytest.raises(NoAuthority):
            await assignments.create(db, NOBODY, {"input_text": "x"})
        with pytest.raises(NoAuthority):
            await reference_documents.create(db, NOBODY, {"file_name": "a.txt", "content": "x"})


async def test_empty_session_reads_nothing():
    # A row stored under an empty session id must still be invisible to it.
    async with SessionLocal() as db:
        db.add(Assignment(input_text="stray", session_id="", user_id=None))
        await db.commit()
    row = await _create(ALICE)

    async with SessionLocal() as db:
        assert await assignments.list(db, NOBODY) == []
        assert await assignments.get(db, row.id, NOBODY) is None
        assert await assignments.update(db, row.id, NOBODY, {"input_text": "x"}) is None
        assert await assignments.delete(db, row.id, NOBODY) is False
        assert await assignments.delete_all(db, NOBODY) == 0


async def test_reference_documents_are_isolated_too():
    async with SessionLocal() as db:
        doc = await reference_documents.create(
            db, ALICE, {"file_name": "rubric.txt", "content": "five point scale", "word_count": 3}
        )
    async with SessionLocal() as db:
        assert await reference_documents.get(db, doc.id, BOB) is None
        assert (await reference_documents.get(db, doc.id, ALICE)).word_count == 3


async def _assert_unreachable(row_id, owner, outsider):
    async with SessionLocal() as db:
        assert await assignments.get(db, row_id, outsider) is None
        assert await assignments.list(db, outsider) == []
    async with SessionLocal() as db:
        assert await assignments.update(db, row_id, outsider, {"input_text": "hijacked"}) is None
    async with SessionLocal() as db:
        assert await assignments.delete(db, row_id, outsider) is False
    async with SessionLocal() as db:
        assert await assignments.delete_all(db, outsider) == 0
    async with SessionLocal() as db:
        kept = await assignments.get(db, row_id, owner)
        assert kept is not None
        assert kept.input_text == "private"


async def test_accounts_cannot_touch_each_other(make_account):
    owner = AccountOwner(account_id=await make_account("owner"))
    outsider = AccountOwner(account_id=await make_account("outsider"))
    row = await _create(owner, "private")

    await _assert_unreachable(row.id, owner, outsider)


async def test_session_cannot_see_account_rows(make_account):
    owner = AccountOwner(account_id=await make_account())
    row = await _create(owner, "private")
    assert row.session_id is None

    await _assert_unreachable(row.id, owner, ALICE)
