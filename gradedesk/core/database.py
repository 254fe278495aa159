# gradedesk/core/database.py
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from gradedesk.core.config import get_database_url

db_url = get_database_url()

# Configure engine based on database type
if "sqlite" in db_url:
    engine = create_async_engine(
        db_url,
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    # pysqlite's implicit BEGIN is deferred, so two writers that both read first
    # deadlock on lock upgrade. Take the write lock when the transaction opens.
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
else:
    engine = create_async_engine(
        db_url,
        pool_pre_ping=True,
        pool_recycle=3600
    )

SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

class Base(DeclarativeBase):
    pass

async def get_db():
    async with SessionLocal() as session:
        yield session

async def init_models() -> None:
    # Import models so every table is registered on Base.metadata.
    import gradedesk.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

def supports_returning(session: AsyncSession) -> bool:
    return bool(getattr(session.get_bind().dialect, "update_returning", False))

def is_unique_violation(exc: Exception) -> bool:
    orig = getattr(exc, "orig", exc)
    if getattr(orig, "pgcode", None) == "23505" or getattr(orig, "sqlstate", None) == "23505":
        return True
    args = getattr(orig, "args", ())
    if args and args[0] == 1062:  # MySQL ER_DUP_ENTRY
        return True
    msg = str(orig).lower()
    return "unique" in msg or "duplicate" in msg
