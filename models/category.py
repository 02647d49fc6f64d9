from sqlalchemy import JSON, Boolean, Column, Index, String, Text

from models.base_model import BaseModel, Base, SoftDeleteMixin


class Category(SoftDeleteMixin, BaseModel, Base):
    __tablename__ = "categories"

    name = Column(String(64), nullable=False)
    slug = Column(String(64), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    properties = Column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_categories_name", "name"),
    )
