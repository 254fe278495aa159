# FILE: gradedesk/api/reference_documents.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from gradedesk.api.deps import get_tenant
from gradedesk.core.database import get_db
from gradedesk.core.errors import NoAuthority
from gradedesk.core.tenant import Owner
from gradedesk.schemas.reference_documents import ReferenceDocumentCreate, ReferenceDocumentResponse
from gradedesk.services.resource_store import reference_documents

router = APIRouter(prefix="/api/reference-documents", tags=["reference-documents"])


@router.post("", response_model=ReferenceDocumentResponse, status_code=201)
async def create_reference_document(
    data: ReferenceDocumentCreate,
    owner: Owner = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
):
    payload = data.model_dump()
    payload["word_count"] = len(data.content.split())
    try:
        return await reference_documents.create(db, owner, payload)
    except NoAuthority:
        raise HTTPException(status_code=401, detail="Start a session or log in first")


@router.get("", response_model=List[ReferenceDocumentResponse])
async def list_reference_documents(owner: Owner = Depends(get_tenant), db: AsyncSession = Depends(get_db)):
    return await reference_documents.list(db, owner)


@router.get("/{document_id}", response_model=ReferenceDocumentResponse)
async def get_reference_document(
    document_id: int,
    owner: Owner = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
):
    row = await reference_documents.get(db, document_id, owner)
    if not row:
        raise HTTPException(status_code=404, detail="Reference document not found")
    return row


@router.delete("/{document_id}")
async def delete_reference_document(
    document_id: int,
    owner: Owner = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
):
    if not await reference_documents.delete(db, document_id, owner):
        raise HTTPException(status_code=404, detail="Reference document not found")
    return {"deleted": True}
