# FILE: gradedesk/api/auth.py
import logging
from datetime import timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gradedesk.core.config import SESSION_COOKIE
from gradedesk.core.database import get_db
from gradedesk.models.user import User
from gradedesk.schemas.auth import SessionResponse, UserCreate, UserLogin, TokenResponse, UserResponse
from gradedesk.services.auth_service import hash_password, verify_password, create_token, new_session_id
from gradedesk.services.migration_service import migrate_session
from gradedesk.api.deps import get_current_user, request_session_id

logger = logging.getLogger("gradedesk.auth")

router = APIRouter(prefix="/api", tags=["auth"])


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        token_balance=user.token_balance or 0,
        created_at=user.created_at.replace(tzinfo=timezone.utc).isoformat(),
    )


async def _claim_session(db: AsyncSession, session_id: Optional[str], user: User) -> int:
    if not session_id:
        return 0
    migrated = await migrate_session(db, session_id, user.id)
    if migrated:
        logger.info("account %s picked up %d anonymous resources", user.id, len(migrated))
    return len(migrated)


@router.post("/session", response_model=SessionResponse)
async def start_session(response: Response):
    session_id = new_session_id()
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    return SessionResponse(session_id=session_id)


@router.post("/auth/register", response_model=TokenResponse)
async def register(data: UserCreate, request: Request, db: AsyncSession = Depends(get_db)):
    session_id = request_session_id(request)

    existing = (await db.execute(select(User).where(User.username == data.username))).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="Username already registered")

    user = User(
        username=data.username,
        password_hash=hash_password(data.password),
        token_balance=0,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Username already registered")

    migrated = await _claim_session(db, session_id, user)
    return TokenResponse(
        token=create_token(user.id, user.username),
        user=_user_response(user),
        migrated=migrated,
    )


@router.post("/auth/login", response_model=TokenResponse)
async def login(data: UserLogin, request: Request, db: AsyncSession = Depends(get_db)):
    session_id = request_session_id(request)

    user = (await db.execute(select(User).where(User.username == data.username))).scalar_one_or_none()
    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    await db.commit()

    migrated = await _claim_session(db, session_id, user)
    return TokenResponse(
        token=create_token(user.id, user.username),
        user=_user_response(user),
        migrated=migrated,
    )


@router.get("/auth/me", response_model=UserResponse)
async def auth_me(user: User = Depends(get_current_user)):
    return _user_response(user)
