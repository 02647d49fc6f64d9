"""
One-time account tokens (email verification, password recovery).

A token is a random 64 character string bound to a user and a purpose. It is
deleted when consumed and refused once expires_at has passed.
"""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from models.base_model import Base, BaseModel, utcnow

TOKEN_SIZE = 64
DEFAULT_EXPIRY_HOURS = 24

TYPE_EMAIL_VERIFICATION = "verify_email"
TYPE_PASSWORD_RECOVERY = "password_recovery"


def secure_token() -> str:
    # 48 random bytes encode to exactly 64 url-safe characters
    return secrets.token_urlsafe(48)


class Token(BaseModel, Base):
    __tablename__ = "tokens"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(TOKEN_SIZE), nullable=False, unique=True, index=True)
    type = Column(String(32), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    @classmethod
    def new(cls, token_type: str, user_id: int, expiry_hours: int = DEFAULT_EXPIRY_HOURS) -> "Token":
        return cls(
            user_id=user_id,
            token=secure_token(),
            type=token_type,
            expires_at=utcnow() + timedelta(hours=expiry_hours or DEFAULT_EXPIRY_HOURS),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        expires_at = self.expires_at
        # SQLite hands back naive datetimes
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return (now or utcnow()) >= expires_at
