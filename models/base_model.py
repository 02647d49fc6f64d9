#!/usr/bin/env python3
"""
Shared SQLAlchemy base and mixins for the shop API.

- Integer autoincrement primary key (user ids travel inside tokens as decimal strings)
- created_at / updated_at timestamps
- save() and delete() that use DBStorage
- SoftDeleteMixin that overrides delete() for soft-deletable models

SoftDelete: put the mixin FIRST in the inheritance list to override BaseModel.delete via MRO.
  Example:
    class Category(SoftDeleteMixin, BaseModel, Base): ...
"""

from __future__ import annotations

from datetime import datetime, timezone

import models

from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

# Declarative base for all models
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseModel:
    """
    Base mixin for all persistent models: id, created_at, updated_at and
    save()/delete() wired to DBStorage.
    """

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __init__(self, *args, **kwargs):
        for key, value in kwargs.items():
            if key != "__class__":
                setattr(self, key, value)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.id}>"

    def save(self):
        """Update updated_at and persist the instance."""
        self.updated_at = utcnow()
        models.storage.new(self)
        models.storage.save()

    def delete(self):
        """Hard delete; the caller decides when to commit."""
        models.storage.delete(self)


class SoftDeleteMixin:
    """
    Adds a deleted_at timestamp and overrides delete() to perform a soft delete.
    Place this mixin BEFORE BaseModel in the class bases.
    """

    deleted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def restore(self):
        self.deleted_at = None
        self.save()

    def soft_delete(self):
        self.deleted_at = utcnow()
        self.save()

    def delete(self):  # type: ignore[override]
        self.soft_delete()
