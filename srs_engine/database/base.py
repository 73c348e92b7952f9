"""
Declarative base for the review storage tables.

Rows are exchanged with the repository as plain dictionaries of column
values: ``from_dict`` and ``update`` accept the output of
``state_to_row``, which also carries keys that are not columns.
"""

from typing import Any, Dict

from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

# Index, unique and primary key names for memory_states and review_sessions
metadata = MetaData(naming_convention={
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s"
})

Base = declarative_base(metadata=metadata)


class ModelBase(Base):
    """Abstract record with dictionary conversion."""

    __abstract__ = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Any:
        """Build a record from the column values in ``data``; other keys are ignored."""
        return cls(**{
            k: v for k, v in data.items()
            if k in cls.__table__.columns
        })

    def update(self, data: Dict[str, Any]) -> None:
        """
        Overwrite column values from ``data``.

        Keys that are not columns are ignored, as are primary key columns:
        a record never changes identity.
        """
        columns = self.__table__.columns
        for key, value in data.items():
            if key in columns and not columns[key].primary_key:
                setattr(self, key, value)
