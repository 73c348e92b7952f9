"""
Database initialization and connection management.

This module provides functions for:
1. Creating the engine for a database URL
2. Creating the schema
3. Building session factories
"""

import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from srs_engine.common.logger import app_logger
from srs_engine.database.base import metadata
# Registers the tables on the shared metadata
from srs_engine.database import models  # noqa: F401

# Setup module logger
logger = app_logger.getChild("database.init_db")


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in database_url


def initialize_database(database_url: str, echo: bool = False, create_schema: bool = True) -> Engine:
    """
    Initialize the database engine.

    In-memory SQLite shares one connection across threads so every session
    sees the same database.

    Args:
        database_url: Database connection URL
        echo: Whether to echo SQL statements
        create_schema: Whether to create missing tables

    Returns:
        Engine instance
    """
    kwargs = {}
    if _is_memory_sqlite(database_url):
        kwargs = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}

    logger.info(f"Initializing database with URL: {database_url[:10]}...")
    engine = create_engine(database_url, echo=echo, **kwargs)

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))

    if create_schema:
        create_tables(engine)
    return engine


def create_tables(engine: Engine) -> None:
    """Create all engine tables that do not exist yet."""
    metadata.create_all(engine)
    logger.debug("Database schema created")


def get_session_factory(engine: Engine, expire_on_commit: bool = False) -> sessionmaker:
    """
    Build a session factory bound to an engine.

    Args:
        engine: Database engine
        expire_on_commit: Whether loaded rows expire after commit

    Returns:
        Session factory
    """
    return sessionmaker(bind=engine, expire_on_commit=expire_on_commit)


def close_database(engine: Optional[Engine]) -> None:
    """Dispose of the engine and all pooled connections."""
    if engine is not None:
        engine.dispose()
        logger.info("Database engine closed successfully")
