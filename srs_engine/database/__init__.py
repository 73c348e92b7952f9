"""
Database Module

This module provides the declarative base, ORM models and connection helpers
backing the SQLAlchemy review repository.
"""

from srs_engine.database.base import Base, ModelBase, metadata
from srs_engine.database.models import MemoryStateRecord, ReviewSessionRecord
from srs_engine.database.init_db import (
    initialize_database, create_tables, get_session_factory, close_database
)

__all__ = [
    'Base', 'ModelBase', 'metadata',
    'MemoryStateRecord', 'ReviewSessionRecord',
    'initialize_database', 'create_tables', 'get_session_factory', 'close_database'
]
