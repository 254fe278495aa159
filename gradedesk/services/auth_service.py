# FILE: gradedesk/services/auth_service.py
import secrets
from datetime import datetime, timezone, timedelta
from typing import Optional

import bcrypt
import jwt

from gradedesk.core.config import JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRATION_HOURS, SESSION_ID_MAX_LENGTH


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def create_token(account_id: int, username: str) -> str:
    payload = {
        "user_id": account_id,
        "sub": username,
        "exp": datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRATION_HOURS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_account_id(token: str) -> Optional[int]:
    """Account id carried by a valid token; raises ``jwt.InvalidTokenError`` otherwise."""
    payload = jwt.decode(token.strip(), JWT_SECRET, algorithms=[JWT_ALGORITHM])
    user_id = payload.get("user_id")
    if isinstance(user_id, bool) or not isinstance(user_id, (int, str)):
        return None
    try:
        return int(user_id)
    except ValueError:
        return None


def new_session_id() -> str:
    """Opaque token for an anonymous tenant."""
    return secrets.token_urlsafe(32)[:SESSION_ID_MAX_LENGTH]
