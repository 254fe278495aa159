import pytest

from gradedesk.core.database import SessionLocal
from gradedesk.core.errors import EventAlreadyProcessed
from gradedesk.services import event_service

pytestmark = pytest.mark.usefixtures("database")


async def test_event_is_recorded_once():
    async with SessionLocal() as db:
        assert await event_service.has_processed(db, "evt_1") is False
        await db.commit()
        event = await event_service.mark_processed(db, "evt_1", "checkout.session.completed")
        assert event.event_type == "checkout.session.completed"

    async with SessionLocal() as db:
        assert await event_service.has_processed(db, "evt_1") is True


async def test_duplicate_event_is_rejected():
    async with SessionLocal() as db:
        await event_service.mark_processed(db, "evt_2")

    async with SessionLocal() as db:
        with pytest.raises(EventAlreadyProcessed) as info:
            await event_service.mark_processed(db, "evt_2")
    assert info.value.event_id == "evt_2"


async def test_missing_type_is_stored_as_unknown():
    async with SessionLocal() as db:
        event = await event_service.mark_processed(db, "evt_3")
    assert event.event_type == "unknown"
