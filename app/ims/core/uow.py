"""
Unit-of-work wrapper shared by all mutating core operations.

Each operation runs in exactly one transaction on the caller's session: it is
committed when the operation returns a success, rolled back when it returns a
failure or raises. Lock and serialisation errors from the database surface as
``ConflictRetryable`` so the caller can retry the whole operation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from functools import wraps
from typing import Any

from sqlalchemy import select, text, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.ims.core.family import EntityFamily
from app.ims.core.notify import notify_all
from app.ims.core.result import CONFLICT_RETRYABLE, Result, fail

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_PGCODES = frozenset({"40001", "40P01", "55P03"})
RETRYABLE_MESSAGES = ("database is locked", "database table is locked")


def utcnow() -> datetime:
    return datetime.utcnow()


def is_lock_conflict(e: DBAPIError) -> bool:
    """True for lock and serialisation errors worth retrying; anything else is a real failure."""
    if getattr(e.orig, "pgcode", None) in RETRYABLE_PGCODES:
        return True
    message = str(e.orig).lower()
    return any(m in message for m in RETRYABLE_MESSAGES)


def atomic(fn: Callable[..., Result]) -> Callable[..., Result]:
    """
    Decorate ``fn(s, family, actor, ...)`` so it commits or rolls back as one unit.
    """

    @wraps(fn)
    def wrapped(s: Session, family: EntityFamily, *args: Any, **kwargs: Any) -> Result:
        try:
            result = fn(s, family, *args, **kwargs)
            if result.ok:
                s.commit()
            else:
                s.rollback()
                return result
        except DBAPIError as e:
            s.rollback()
            if not is_lock_conflict(e):
                raise
            logger.warning("%s.%s rolled back on lock conflict: %s", family.key, fn.__name__, e.orig)
            return fail(CONFLICT_RETRYABLE, "Concurrent update detected; retry the operation.")
        except StaleDataError as e:
            s.rollback()
            logger.warning("%s.%s rolled back on concurrent update: %s", family.key, fn.__name__, e)
            return fail(CONFLICT_RETRYABLE, "Concurrent update detected; retry the operation.")
        except Exception:
            s.rollback()
            raise
        notify_all(family.key, result.changed)
        return result

    return wrapped


def lock_category(s: Session, family: EntityFamily, category_id: Any):
    """
    Load a category row after taking its write lock for the rest of the
    transaction. Order assignment inside one category is serialised on this
    lock: the row is touched with an UPDATE (row lock on Postgres, database
    write lock on SQLite) before any sibling order is read.

    Returns None when the category does not exist.
    """
    Category = family.category_model
    touched = s.execute(
        update(Category)
        .where(Category.id == category_id)
        .values(updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if not touched.rowcount:
        return None
    return s.execute(select(Category).where(Category.id == category_id)).scalar_one()


def lock_category_set(s: Session, family: EntityFamily) -> None:
    """
    Serialise writers of the category ordering itself (categories have no parent row to lock).
    """
    Category = family.category_model
    dialect = s.get_bind().dialect.name
    if dialect == "postgresql":
        s.execute(text("SELECT pg_advisory_xact_lock(hashtext(:scope))"), {"scope": Category.__tablename__})
    else:
        # A write statement takes SQLite's database lock even when it matches no rows.
        s.execute(
            update(Category)
            .where(Category.id.is_(None))
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
