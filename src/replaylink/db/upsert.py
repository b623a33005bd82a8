# src/replaylink/db/upsert.py

"""Dialect-aware ``INSERT ... ON CONFLICT`` helpers."""

from typing import Any

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_name(db: AsyncSession) -> str:
    return db.get_bind().dialect.name


def insert_for(db: AsyncSession, table: Any) -> Any:
    """An insert construct supporting ``on_conflict_do_update`` for this backend."""
    if dialect_name(db) == "postgresql":
        return postgresql.insert(table)
    return sqlite.insert(table)


def greatest(db: AsyncSession, left: Any, right: Any) -> Any:
    """Larger of two values; SQLite spells it as the two-argument MAX()."""
    if dialect_name(db) == "postgresql":
        return func.greatest(left, right)
    return func.max(left, right)
