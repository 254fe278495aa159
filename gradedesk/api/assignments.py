# FILE: gradedesk/api/assignments.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from gradedesk.api.deps import get_tenant
from gradedesk.core.database import get_db
from gradedesk.core.errors import NoAuthority
from gradedesk.core.tenant import Owner
from gradedesk.schemas.assignments import AssignmentCreate, AssignmentResponse, AssignmentUpdate
from gradedesk.services.resource_store import assignments

router = APIRouter(prefix="/api/assignments", tags=["assignments"])


@router.post("", response_model=AssignmentResponse, status_code=201)
async def create_assignment(
    data: AssignmentCreate,
    owner: Owner = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await assignments.create(db, owner, data.model_dump())
    except NoAuthority:
        raise HTTPException(status_code=401, detail="Start a session or log in first")


@router.get("", response_model=List[AssignmentResponse])
async def list_assignments(owner: Owner = Depends(get_tenant), db: AsyncSession = Depends(get_db)):
    return await assignments.list(db, owner)


@router.get("/{assignment_id}", response_model=AssignmentResponse)
async def get_assignment(
    assignment_id: int,
    owner: Owner = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
):
    row = await assignments.get(db, assignment_id, owner)
    if not row:
        raise HTTPException(status_code=404, detail="Assignment not found")
    return row


@router.patch("/{assignment_id}", response_model=AssignmentResponse)
async def update_assignment(
    assignment_id: int,
    data: AssignmentUpdate,
    owner: Owner = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
):
    row = await assignments.update(db, assignment_id, owner, data.model_dump(exclude_unset=True))
    if not row:
        raise HTTPException(status_code=404, detail="Assignment not found")
    return row


@router.delete("/{assignment_id}")
async def delete_assignment(
    assignment_id: int,
    owner: Owner = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
):
    if not await assignments.delete(db, assignment_id, owner):
        raise HTTPException(status_code=404, detail="Assignment not found")
    return {"deleted": True}


@router.delete("")
async def delete_all_assignments(owner: Owner = Depends(get_tenant), db: AsyncSession = Depends(get_db)):
    return {"deleted": await assignments.delete_all(db, owner)}
