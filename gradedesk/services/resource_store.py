# FILE: gradedesk/services/resource_store.py
"""Tenant-scoped CRUD over assignments and reference documents.

Every statement filters on ``ownership_clause`` for the caller's tenant. A row
owned by someone else is indistinguishable from a row that does not exist:
both come back as ``None`` / ``False`` / ``[]``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gradedesk.core.database import supports_returning
from gradedesk.core.errors import NoAuthority, StoreError
from gradedesk.core.tenant import Owner, has_authority, owner_columns, ownership_clause
from gradedesk.models.assignment import Assignment
from gradedesk.models.reference_document import ReferenceDocument
from gradedesk.models.tenant_owned import PROTECTED_COLUMNS

logger = logging.getLogger("gradedesk.store")

M = TypeVar("M")


@asynccontextmanager
async def store_operation(db: AsyncSession, operation: str):
    """Roll back and re-raise driver failures as ``StoreError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("store failure during %s: %s", operation, exc)
        raise StoreError(
            message="database operation failed",
            operation=operation,
            raw=str(exc)[:4000],
        ) from exc


class TenantStore(Generic[M]):
    def __init__(self, model: Type[M]):
        self.model = model
        self.name = model.__tablename__

    def _conditions(self, owner: Owner, resource_id: Optional[int] = None) -> list:
        conditions = [ownership_clause(self.model, owner)]
        if resource_id is not None:
            conditions.insert(0, self.model.id == resource_id)
        return conditions

    def _payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        columns = set(self.model.__table__.columns.keys())
        protected = PROTECTED_COLUMNS.intersection(payload)
        if protected:
            raise ValueError(f"{self.name}: cannot set {', '.join(sorted(protected))}")
        unknown = set(payload) - columns
        if unknown:
            raise ValueError(f"{self.name}: unknown fields {', '.join(sorted(unknown))}")
        return dict(payload)

    async def create(self, db: AsyncSession, owner: Owner, payload: Dict[str, Any]) -> M:
        if not has_authority(owner):
            raise NoAuthority(f"cannot create {self.name} without a tenant")

        row = self.model(**self._payload(payload), **owner_columns(owner))
        async with store_operation(db, f"create {self.name}"):
            db.add(row)
            await db.commit()
        return row

    async def get(self, db: AsyncSession, resource_id: int, owner: Owner) -> Optional[M]:
        if not has_authority(owner):
            return None

        async with store_operation(db, f"get {self.name}"):
            return (
                await db.execute(
                    select(self.model).where(*self._conditions(owner, resource_id))
                )
            ).scalar_one_or_none()

    async def list(self, db: AsyncSession, owner: Owner) -> List[M]:
        if not has_authority(owner):
            return []

        async with store_operation(db, f"list {self.name}"):
            rows = (
                await db.execute(
                    select(self.model)
                    .where(*self._conditions(owner))
                    .order_by(self.model.created_at.asc(), self.model.id.asc())
                )
            ).scalars().all()
        return list(rows)

    async def update(
        self,
        db: AsyncSession,
        resource_id: int,
        owner: Owner,
        patch: Dict[str, Any],
    ) -> Optional[M]:
        if not has_authority(owner):
            return None

        values = self._payload(patch)
        if not values:
            return await self.get(db, resource_id, owner)

        stmt = (
            update(self.model)
            .where(*self._conditions(owner, resource_id))
            .values(**values)
        )
        async with store_operation(db, f"update {self.name}"):
            if supports_returning(db):
                row = (
                    await db.execute(
                        stmt.returning(self.model).execution_options(populate_existing=True)
                    )
                ).scalar_one_or_none()
                await db.commit()
                return row

            res = await db.execute(stmt.execution_options(synchronize_session=False))
            await db.commit()
        if res.rowcount == 0:
            return None
        return await self.get(db, resource_id, owner)

    async def delete(self, db: AsyncSession, resource_id: int, owner: Owner) -> bool:
        if not has_authority(owner):
            return False

        async with store_operation(db, f"delete {self.name}"):
            res = await db.execute(
                delete(self.model)
                .where(*self._conditions(owner, resource_id))
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        return res.rowcount > 0

    async def delete_all(self, db: AsyncSession, owner: Owner) -> int:
        if not has_authority(owner):
            return 0

        async with store_operation(db, f"delete all {self.name}"):
            res = await db.execute(
                delete(self.model)
                .where(*self._conditions(owner))
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        logger.info("deleted %s %s for %s", res.rowcount, self.name, owner.label)
        return int(res.rowcount or 0)


assignments: TenantStore[Assignment] = TenantStore(Assignment)
reference_documents: TenantStore[ReferenceDocument] = TenantStore(ReferenceDocument)

TENANT_STORES = (assignments, reference_documents)
