# gradedesk/core/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

# Services raise these; routers translate them to HTTP responses.


@dataclass
class StoreError(Exception):
    """Transactional failure in the persistence layer (already rolled back)."""
    message: str
    operation: str = ""
    raw: Optional[str] = None  # underlying driver error, for logs only

    def __str__(self) -> str:
        return f"{self.operation}: {self.message}" if self.operation else self.message

    def to_http_detail(self) -> Dict[str, Any]:
        return {
            "code": "STORE_ERROR",
            "message": "Storage is temporarily unavailable. Try again.",
            "retryable": True,
        }


class NoAuthority(Exception):
    """The request carries no usable tenant identity (e.g. an empty anonymous session)."""


class AccountNotFound(Exception):
    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class EventAlreadyProcessed(Exception):
    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event {event_id} was already processed")
