"""
Database Utility Functions.

Naive-UTC clock shared by models and services, retries for idempotent reads
and conflict-safe inserts.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

T = TypeVar("T")


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def retry_read(func: Callable[[], T], attempts: int = 3, base_delay: float = 0.05) -> T:
    """
    Run an idempotent read, retrying transient OperationalErrors.

    Args:
        func: Zero-argument callable performing the read
        attempts: Maximum number of attempts
        base_delay: First backoff delay in seconds (doubles each retry)

    Raises:
        OperationalError: When every attempt fails
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as e:
            if attempt == attempts - 1:
                raise
            wait_time = base_delay * (2**attempt)
            logger.warning(
                f"Transient read failure on attempt {attempt + 1}/{attempts}: {e}. "
                f"Retrying in {wait_time:.2f}s..."
            )
            time.sleep(wait_time)
    raise RuntimeError("unreachable")


def insert_if_absent(
    session: Session,
    model: type,
    values: dict[str, Any],
    conflict_columns: list[str],
) -> bool:
    """
    Insert a row unless it collides with a unique constraint.

    Uses ``INSERT .. ON CONFLICT DO NOTHING`` on PostgreSQL and SQLite and an
    IntegrityError-guarded savepoint elsewhere.

    Returns:
        True if this call inserted the row, False if it already existed
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        try:
            with session.begin_nested():
                session.add(model(**values))
            return True
        except IntegrityError:
            return False

    stmt = insert(model).values(**values).on_conflict_do_nothing(index_elements=conflict_columns)
    result = session.execute(stmt)
    return result.rowcount == 1
