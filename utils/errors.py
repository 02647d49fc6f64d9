"""
Application error taxonomy.

Every failure raised by the auth core is an AppError carrying:
- kind: machine readable ErrorKind
- message_id / message: stable id (usable as a translation key) and the
  end user message
- status_code: HTTP status the API layer responds with
- details: optional structured payload (e.g. field validation errors)
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    CONFLICT = "Conflict"
    INTERNAL = "Internal"
    BAD_REQUEST = "Bad Request"
    INVALID = "Invalid"
    NOT_FOUND = "Not Found"
    UNAUTHORIZED = "Unauthorized"
    UNAUTHENTICATED = "Unauthenticated"


@dataclass(frozen=True)
class Message:
    id: str
    default: str


class AppError(Exception):
    def __init__(
        self,
        op: str,
        kind: ErrorKind,
        message: Message,
        status_code: int,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.op = op
        self.kind = kind
        self.message_id = message.id
        self.message = message.default
        self.status_code = status_code
        self.details = details
        super().__init__(f"{kind.value}, {op}: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "id": self.message_id,
            "op": self.op,
            "code": self.kind.value,
            "status_code": self.status_code,
            "message": self.message,
        }
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class FieldError:
    field: str
    message: str


class ValidationErrors(list):
    """List of FieldError collected before failing."""

    def add(self, field: str, message: Message) -> None:
        self.append(FieldError(field=field, message=message.default))

    def is_zero(self) -> bool:
        return len(self) == 0

    def to_list(self) -> List[dict]:
        return [asdict(e) for e in self]


def new_validation_error(name: str, message: Message, errs: ValidationErrors, user_id=None) -> AppError:
    details: Dict[str, Any] = {}
    if user_id is not None:
        details["userID"] = user_id
    if not errs.is_zero():
        details["validation"] = {"errors": errs.to_list()}
    return AppError(f"{name}.Validate", ErrorKind.INVALID, message, 422, details or None)
