"""Declarative base, column types and mixins shared by the models"""

from sqlalchemy import Column, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, declared_attr

from notifyq.utils.helpers import utcnow

# JSONB on PostgreSQL, plain JSON everywhere else
JSONType = JSON().with_variant(JSONB(), "postgresql")

class Base(DeclarativeBase):
    def __repr__(self):
        keys = ", ".join(
            f"{column.name}={getattr(self, column.name)!r}"
            for column in self.__table__.primary_key.columns
        )
        return f"<{self.__class__.__name__}({keys})>"

class TimestampedModel:
    """Mixin for a naive UTC created_at column"""

    @declared_attr
    def created_at(cls):
        return Column(
            DateTime,
            nullable=False,
            default=utcnow,
            index=True
        )

__all__ = [
    'Base',
    'JSONType',
    'TimestampedModel',
]
