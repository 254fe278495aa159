# FILE: gradedesk/services/migration_service.py
import logging
from typing import Any, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gradedesk.core.database import supports_returning
from gradedesk.core.tenant import SessionOwner, ownership_clause
from gradedesk.services.resource_store import TENANT_STORES, TenantStore, store_operation

logger = logging.getLogger("gradedesk.migration")


async def _reassign(db: AsyncSession, model: Any, session_id: str, account_id: int) -> List[Any]:
    """Move one table's anonymous rows for ``session_id`` onto ``account_id``.

    Runs inside the caller's transaction; does not commit.
    """
    anonymous = ownership_clause(model, SessionOwner(session_id=session_id))
    values = {"user_id": account_id, "session_id": None}

    if supports_returning(db):
        rows = (
            await db.execute(
                update(model)
                .where(anonymous)
                .values(**values)
                .returning(model)
                .execution_options(populate_existing=True)
            )
        ).scalars().all()
        return sorted(rows, key=lambda r: (r.created_at, r.id))

    # No UPDATE..RETURNING: lock the matching rows, then move them in one statement.
    ids = (
        await db.execute(select(model.id).where(anonymous).with_for_update())
    ).scalars().all()
    if not ids:
        return []
    await db.execute(
        update(model)
        .where(model.id.in_(ids), anonymous)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    rows = (
        await db.execute(
            select(model)
            .where(model.id.in_(ids), model.user_id == account_id)
            .order_by(model.created_at.asc(), model.id.asc())
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    return list(rows)


async def migrate_session(
    db: AsyncSession,
    session_id: Optional[str],
    account_id: int,
    stores: Sequence[TenantStore] = TENANT_STORES,
) -> List[Any]:
    """Reassign every resource of an anonymous session to an account.

    All tables move in one transaction. Returns the migrated rows; an empty or
    already-migrated session yields ``[]``.
    """
    session_id = (session_id or "").strip()
    if not session_id:
        return []

    migrated: List[Any] = []
    async with store_operation(db, "migrate session"):
        for store in stores:
            rows = await _reassign(db, store.model, session_id, account_id)
            if rows:
                logger.info(
                    "migrated %d %s from session %s to account %s",
                    len(rows), store.name, session_id[:8], account_id,
                )
            migrated.extend(rows)
        await db.commit()
    return migrated
