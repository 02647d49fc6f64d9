import models
from models.base_model import Base, BaseModel
from sqlalchemy import Boolean, Column, DateTime, String


class User(BaseModel, Base):
    __tablename__ = "users"
    first_name = Column(String(64), nullable=True)
    last_name = Column(String(64), nullable=True)
    username = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String(128), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    gender = Column(String(1), nullable=True)
    role = Column(String(16), nullable=False, default="user")
    locale = Column(String(5), nullable=False, default="en")
    active = Column(Boolean, nullable=False, default=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")


def active_role(user_id: int):
    """Role of an active user, None when the account is gone or disabled."""
    user = models.storage.get(User, user_id)
    if user is None or not user.active:
        return None
    return user.role
