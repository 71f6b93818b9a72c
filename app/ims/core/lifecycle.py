"""
Archived / highlighted / approved flags on records.

The three flags are independent. Every transition is idempotent: asking for
the state a record is already in succeeds and still counts the record. Flag
writes are single UPDATE statements so concurrent writers serialise in the
database rather than in a read-modify-write cycle here.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.ims.audit import record_event
from app.ims.core.family import EntityFamily
from app.ims.core.notify import RECORD
from app.ims.core.ordering import resolve_collisions
from app.ims.core.result import INVALID_ACTION, Result, fail, not_found, ok, unauthorized
from app.ims.core.uow import atomic, utcnow
from app.ims.models import User

FLAG_ACTIONS: dict[str, tuple[str, bool]] = {
    "archive": ("archived", True),
    "unarchive": ("archived", False),
    "approve": ("approved", True),
    "unapprove": ("approved", False),
    "highlight": ("highlighted", True),
    "unhighlight": ("highlighted", False),
}


def stamp_values(family: EntityFamily, actor: User, action: str) -> dict[str, Any]:
    values: dict[str, Any] = {"updated_at": utcnow()}
    if family.stamps_actor(action):
        values["updated_by_user_id"] = actor.id
    return values


def apply_flag(s: Session, family: EntityFamily, actor: User, ids: Sequence[Any], action: str) -> int:
    """
    Set one flag on every record in ``ids`` with a single UPDATE. Returns the
    number of records matched; ids that do not exist are skipped.
    """
    Record = family.record_model
    field, value = FLAG_ACTIONS[action]
    ids = list(ids)

    touched_categories: list[Any] = []
    if action == "unarchive":
        touched_categories = list(
            s.execute(select(Record.category_id).where(Record.id.in_(ids)).distinct()).scalars()
        )

    values = stamp_values(family, actor, action)
    values[field] = value
    res = s.execute(
        update(Record).where(Record.id.in_(ids)).values(**values).execution_options(synchronize_session="fetch")
    )

    # Returning records may land on an order an active sibling took meanwhile.
    for category_id in touched_categories:
        resolve_collisions(s, family, category_id, ids)
    return res.rowcount or 0


@atomic
def set_flag(s: Session, family: EntityFamily, actor: User | None, record_id: Any, action: str) -> Result:
    """Apply one lifecycle transition to one record."""
    if actor is None:
        return unauthorized()
    if action not in FLAG_ACTIONS:
        return fail(INVALID_ACTION, f"Unknown lifecycle action: {action!r}")
    Record = family.record_model
    if apply_flag(s, family, actor, [record_id], action) == 0:
        return not_found(family.label, record_id)
    record_event(
        s,
        actor=actor,
        action=family.audit_action(action),
        entity_type=Record.__name__,
        entity_id=str(record_id),
    )
    s.flush()
    result = ok(s.get(Record, record_id, populate_existing=True))
    result.changed.append((RECORD, record_id))
    return result


def archive(s: Session, family: EntityFamily, actor: User | None, record_id: Any) -> Result:
    return set_flag(s, family, actor, record_id, "archive")


def unarchive(s: Session, family: EntityFamily, actor: User | None, record_id: Any) -> Result:
    return set_flag(s, family, actor, record_id, "unarchive")


def approve(s: Session, family: EntityFamily, actor: User | None, record_id: Any) -> Result:
    return set_flag(s, family, actor, record_id, "approve")


def unapprove(s: Session, family: EntityFamily, actor: User | None, record_id: Any) -> Result:
    return set_flag(s, family, actor, record_id, "unapprove")


def highlight(s: Session, family: EntityFamily, actor: User | None, record_id: Any) -> Result:
    return set_flag(s, family, actor, record_id, "highlight")


def unhighlight(s: Session, family: EntityFamily, actor: User | None, record_id: Any) -> Result:
    return set_flag(s, family, actor, record_id, "unhighlight")


@atomic
def toggle_highlight(s: Session, family: EntityFamily, actor: User | None, record_id: Any) -> Result:
    """
    Flip ``highlighted`` in the database (``SET highlighted = NOT highlighted``)
    so N concurrent toggles always leave ``initial XOR (N mod 2)``.
    """
    if actor is None:
        return unauthorized()
    Record = family.record_model
    values = stamp_values(family, actor, "toggle_highlight")
    values["highlighted"] = ~Record.highlighted
    res = s.execute(
        update(Record).where(Record.id == record_id).values(**values).execution_options(synchronize_session=False)
    )
    if not res.rowcount:
        return not_found(family.label, record_id)
    record = s.get(Record, record_id, populate_existing=True)
    record_event(
        s,
        actor=actor,
        action=family.audit_action("toggle_highlight"),
        entity_type=Record.__name__,
        entity_id=str(record_id),
        metadata={"highlighted": record.highlighted},
    )
    result = ok(record)
    result.changed.append((RECORD, record_id))
    return result
