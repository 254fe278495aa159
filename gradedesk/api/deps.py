# FILE: gradedesk/api/deps.py

import jwt
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gradedesk.core.database import get_db
from gradedesk.core.config import SESSION_COOKIE, SESSION_HEADER, SESSION_ID_MAX_LENGTH
from gradedesk.core.tenant import AccountOwner, Owner, resolve_owner
from gradedesk.models.user import User
from gradedesk.services.auth_service import decode_account_id

security = HTTPBearer(auto_error=False)


async def _load_user(credentials: HTTPAuthorizationCredentials, db: AsyncSession) -> User:
    try:
        account_id = decode_account_id(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if account_id is None:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = (await db.execute(select(User).where(User.id == account_id))).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def request_session_id(request: Request) -> Optional[str]:
    """Anonymous session id from the header, falling back to the cookie."""
    session_id = (request.headers.get(SESSION_HEADER) or request.cookies.get(SESSION_COOKIE) or "").strip()
    if not session_id:
        return None
    if len(session_id) > SESSION_ID_MAX_LENGTH:
        raise HTTPException(status_code=400, detail="Invalid session id")
    return session_id


async def get_current_user(
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: AsyncSession = Depends(get_db),
) -> User:
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = await _load_user(credentials, db)
    await db.commit()
    return user


async def get_tenant(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: AsyncSession = Depends(get_db),
) -> Owner:
    # A bad bearer token is rejected, not downgraded to the anonymous session.
    if credentials and credentials.credentials:
        user = await _load_user(credentials, db)
        # Release the read so later writes on other connections are not blocked.
        await db.commit()
        return AccountOwner(account_id=user.id)
    return resolve_owner(None, request_session_id(request))
