# =========================================================
# FILE: /gradedesk/schemas/auth.py
# =========================================================

from pydantic import BaseModel, Field, field_validator


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=120)
    password: str = Field(min_length=8, max_length=128)

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str):
        v = (v or "").strip().lower()
        if not v:
            raise ValueError("username must not be empty")
        return v


class UserLogin(BaseModel):
    username: str
    password: str

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str):
        return (v or "").strip().lower()


class UserResponse(BaseModel):
    id: int
    username: str
    token_balance: int
    created_at: str


class TokenResponse(BaseModel):
    token: str
    user: UserResponse
    # Anonymous resources moved onto the account by this login
    migrated: int = 0


class SessionResponse(BaseModel):
    session_id: str
