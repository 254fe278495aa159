import os
import tempfile
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Use a throwaway SQLite file; config reads the environment at import time.
_TMP_DIR = tempfile.mkdtemp(prefix="gradedesk-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["LOG_DIR"] = os.path.join(_TMP_DIR, "logs")
os.environ["TEST_MODE"] = "true"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = ""
os.environ.setdefault("JWT_SECRET", "test-secret-key-min-32-characters-long")


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    import gradedesk.models  # noqa: F401
    from gradedesk.core.database import Base, engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest_asyncio.fixture
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    from gradedesk.server import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def make_account(database):
    """Insert an account directly and return its id."""
    from gradedesk.core.database import SessionLocal
    from gradedesk.models.user import User

    async def _make(username: str = "alice", balance: int = 0, account_id: Optional[int] = None) -> int:
        async with SessionLocal() as db:
            user = User(username=username, password_hash="!", token_balance=balance)
            if account_id is not None:
                user.id = account_id
            db.add(user)
            await db.commit()
            return user.id

    return _make


@pytest.fixture
def make_payment(database):
    """Insert a pending payment for an account."""
    from gradedesk.core.database import SessionLocal
    from gradedesk.services import payment_service

    async def _make(account_id: int, session_id: str, tokens: int = 30000, amount: int = 1000) -> None:
        async with SessionLocal() as db:
            await payment_service.create_pending_payment(
                db, account_id, session_id, amount, tokens, raw={"tier": "10", "provider": "stripe"}
            )

    return _make


@pytest.fixture
def balance_of(database):
    from gradedesk.core.database import SessionLocal
    from gradedesk.services.ledger_service import get_balance

    async def _read(account_id: int) -> int:
        async with SessionLocal() as db:
            return await get_balance(db, account_id)

    return _read


@pytest.fixture
def payment_of(database):
    from gradedesk.core.database import SessionLocal
    from gradedesk.services.payment_service import get_payment

    async def _read(session_id: str):
        async with SessionLocal() as db:
            return await get_payment(db, session_id)

    return _read
