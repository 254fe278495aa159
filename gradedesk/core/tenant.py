# gradedesk/core/tenant.py
"""Tenant identity and the ownership predicate.

A tenant is either an authenticated account or an anonymous session. Every
tenant-scoped query in the codebase gets its ownership filter from
``ownership_clause``; nothing else is allowed to build one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from sqlalchemy import and_, false
from sqlalchemy.sql.elements import ColumnElement


@dataclass(frozen=True)
class AccountOwner:
    account_id: int

    @property
    def label(self) -> str:
        return f"account:{self.account_id}"


@dataclass(frozen=True)
class SessionOwner:
    session_id: str

    @property
    def label(self) -> str:
        return f"session:{self.session_id[:8]}" if self.session_id else "session:<none>"


Owner = Union[AccountOwner, SessionOwner]


def resolve_owner(account_id: Optional[int], session_id: Optional[str]) -> Owner:
    """Account wins whenever present; the session id is then ignored."""
    if account_id is not None:
        return AccountOwner(account_id=int(account_id))
    return SessionOwner(session_id=(session_id or "").strip())


def has_authority(owner: Owner) -> bool:
    if isinstance(owner, AccountOwner):
        return True
    return bool(owner.session_id)


def ownership_clause(model: Any, owner: Owner) -> ColumnElement:
    """Filter selecting rows of ``model`` owned by ``owner``.

    An anonymous owner without a session id yields a predicate that matches
    nothing, never an absent one.
    """
    if isinstance(owner, AccountOwner):
        return model.user_id == owner.account_id
    if not owner.session_id:
        return false()
    return and_(model.user_id.is_(None), model.session_id == owner.session_id)


def owner_columns(owner: Owner) -> Dict[str, Any]:
    """Column values recording ``owner`` on a new row; exactly one is set."""
    if isinstance(owner, AccountOwner):
        return {"user_id": owner.account_id, "session_id": None}
    return {"user_id": None, "session_id": owner.session_id}
