"""
Dense ordering of siblings (records within a category, or categories among themselves).

Positions passed in by callers are 0-based indexes into the active siblings
sorted by ``order``; stored ``order`` values are 1-based. Gaps in stored orders
are tolerated, duplicates among active siblings are not.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.ims.audit import record_event
from app.ims.core.family import EntityFamily
from app.ims.core.notify import CATEGORY, RECORD
from app.ims.core.result import INVALID_ARGUMENT, INVALID_POSITION, Result, fail, not_found, ok, unauthorized
from app.ims.core.uow import atomic, lock_category, utcnow
from app.ims.models import User


def active_siblings(s: Session, model: Any, *criteria: Any) -> list[Any]:
    stmt = select(model).where(model.archived.is_(False), *criteria).order_by(model.order.asc(), model.id.asc())
    return list(s.execute(stmt).scalars())


def max_order(s: Session, model: Any, *criteria: Any, include_archived: bool = False) -> int:
    stmt = select(func.max(model.order)).where(*criteria)
    if not include_archived:
        stmt = stmt.where(model.archived.is_(False))
    return s.execute(stmt).scalar() or 0


def renumber(items: Sequence[Any]) -> int:
    """Assign order 1..N in list order. Returns how many rows actually changed."""
    changed = 0
    for index, item in enumerate(items, start=1):
        if item.order != index:
            item.order = index
            changed += 1
    return changed


def check_position(new_position: Any, count: int) -> Result | None:
    if isinstance(new_position, bool) or not isinstance(new_position, int):
        return fail(INVALID_POSITION, f"Position must be an integer, got {new_position!r}.")
    if new_position < 0 or new_position > count:
        return fail(INVALID_POSITION, f"Position {new_position} is out of range 0..{count}.")
    return None


def splice(items: list[Any], item: Any, new_position: int) -> list[Any] | None:
    """
    Move ``item`` to ``new_position`` (clamped to the last index). Returns the
    reordered list, or None when the item is already there.
    """
    current = items.index(item)
    target = min(new_position, len(items) - 1)
    if target == current:
        return None
    reordered = list(items)
    reordered.pop(current)
    reordered.insert(target, item)
    return reordered


def next_record_order(s: Session, family: EntityFamily, category_id: Any) -> int:
    """Caller must hold the category lock (see ``lock_category``)."""
    Record = family.record_model
    return max_order(s, Record, Record.category_id == category_id) + 1


def insert_at_end(s: Session, family: EntityFamily, category_id: Any) -> int | None:
    """
    Lock the category and return the order a new active record should take,
    or None when the category does not exist. Runs inside the caller's unit of work.
    """
    if lock_category(s, family, category_id) is None:
        return None
    return next_record_order(s, family, category_id)


def resolve_collisions(s: Session, family: EntityFamily, category_id: Any, arriving_ids: Sequence[Any]) -> int:
    """
    Re-append records in ``arriving_ids`` whose order clashes with an active
    sibling (e.g. after unarchive). Existing siblings keep their orders.
    """
    Record = family.record_model
    s.flush()
    return reappend_colliding(active_siblings(s, Record, Record.category_id == category_id), arriving_ids)


def reappend_colliding(siblings: Sequence[Any], arriving_ids: Sequence[Any]) -> int:
    arriving = set(arriving_ids)
    taken = {item.order for item in siblings if item.id not in arriving}
    nxt = max((item.order for item in siblings), default=0) + 1
    moved = 0
    for item in siblings:
        if item.id not in arriving:
            continue
        if item.order in taken:
            item.order = nxt
            nxt += 1
            moved += 1
        taken.add(item.order)
    return moved


@atomic
def move_to_position(s: Session, family: EntityFamily, actor: User | None, record_id: Any, new_position: Any) -> Result:
    if actor is None:
        return unauthorized()
    Record = family.record_model
    record = s.get(Record, record_id)
    if record is None:
        return not_found(family.label, record_id)
    lock_category(s, family, record.category_id)

    siblings = active_siblings(s, Record, Record.category_id == record.category_id)
    bad = check_position(new_position, len(siblings))
    if bad is not None:
        return bad
    if record not in siblings:
        # Archived records have no position among active siblings.
        return ok(0)
    reordered = splice(siblings, record, new_position)
    if reordered is None:
        return ok(0)

    from_position = siblings.index(record)
    changed = renumber(reordered)
    record.updated_at = utcnow()
    record.updated_by_user_id = actor.id
    record_event(
        s,
        actor=actor,
        action=family.audit_action("reorder"),
        entity_type=Record.__name__,
        entity_id=str(record.id),
        metadata={"category_id": record.category_id, "from": from_position, "to": new_position, "changed": changed},
    )
    result = ok(changed)
    result.changed.append((CATEGORY, record.category_id))
    return result


def repack_category(s: Session, family: EntityFamily, category_id: Any) -> tuple[int, int] | None:
    """
    Lock the category and renumber its active records 1..N. Returns
    (sibling count, rows changed), or None when the category does not exist.
    """
    Record = family.record_model
    if lock_category(s, family, category_id) is None:
        return None
    siblings = active_siblings(s, Record, Record.category_id == category_id)
    return len(siblings), renumber(siblings)


@atomic
def repack(s: Session, family: EntityFamily, actor: User | None, category_id: Any) -> Result:
    """Renumber the active records of a category 1..N, keeping their relative order."""
    if actor is None:
        return unauthorized()
    packed = repack_category(s, family, category_id)
    if packed is None:
        return not_found(f"{family.label} category", category_id)
    count, changed = packed
    record_event(
        s,
        actor=actor,
        action=family.audit_action("category_repack"),
        entity_type=family.category_model.__name__,
        entity_id=str(category_id),
        metadata={"count": count, "changed": changed},
    )
    result = ok(count)
    result.changed.append((CATEGORY, category_id))
    return result


def reorder_records(siblings: Sequence[Any], record_ids: Sequence[Any]) -> list[Any]:
    """Listed records first in the given order, then the rest in their current order."""
    by_id = {r.id: r for r in siblings}
    listed = [by_id[i] for i in record_ids]
    chosen = set(record_ids)
    return listed + [r for r in siblings if r.id not in chosen]


@atomic
def reorder(s: Session, family: EntityFamily, actor: User | None, category_id: Any, record_ids: Sequence[Any]) -> Result:
    """
    Reorder the active records of a category to follow ``record_ids`` and
    renumber them 1..N. Ids may be a prefix of the category; unlisted records
    keep their relative order after the listed ones. Returns rows changed.
    """
    if actor is None:
        return unauthorized()
    if not record_ids or isinstance(record_ids, (str, bytes)):
        return fail(INVALID_ARGUMENT, f"{family.label} ids are required.")
    ids = list(record_ids)
    if len(set(ids)) != len(ids):
        return fail(INVALID_ARGUMENT, "Record ids must not repeat.")
    Record = family.record_model
    if lock_category(s, family, category_id) is None:
        return not_found(f"{family.label} category", category_id)

    siblings = active_siblings(s, Record, Record.category_id == category_id)
    active_ids = {r.id for r in siblings}
    foreign = [i for i in ids if i not in active_ids]
    if foreign:
        return fail(
            INVALID_ARGUMENT,
            f"Not active records of category {category_id}: {', '.join(str(i) for i in foreign)}.",
        )

    reordered = reorder_records(siblings, ids)
    moved = [r for index, r in enumerate(reordered, start=1) if r.order != index]
    changed = renumber(reordered)
    now = utcnow()
    for r in moved:
        r.updated_at = now
        r.updated_by_user_id = actor.id
    record_event(
        s,
        actor=actor,
        action=family.audit_action("reorder_records"),
        entity_type=family.category_model.__name__,
        entity_id=str(category_id),
        metadata={"ids": ids, "count": len(reordered), "changed": changed},
    )
    result = ok(changed)
    result.changed.append((CATEGORY, category_id))
    return result


def transfer_records(s: Session, family: EntityFamily, actor: User, records: list[Any], target_category_id: Any) -> int:
    """
    Append ``records`` to the (already locked) target category, preserving
    their relative order. Returns how many records moved.
    """
    Record = family.record_model
    moving = sorted(
        (r for r in records if r.category_id != target_category_id),
        key=lambda r: (r.order, r.id),
    )
    if not moving:
        return 0
    start = max_order(s, Record, Record.category_id == target_category_id) + 1
    now = utcnow()
    for offset, r in enumerate(moving):
        r.category_id = target_category_id
        r.order = start + offset
        r.updated_at = now
        r.updated_by_user_id = actor.id
    return len(moving)


@atomic
def transfer(s: Session, family: EntityFamily, actor: User | None, record_ids: Sequence[Any], target_category_id: Any) -> Result:
    if actor is None:
        return unauthorized()
    if not record_ids:
        return fail(INVALID_ARGUMENT, "At least one record id is required.")
    Record = family.record_model
    if lock_category(s, family, target_category_id) is None:
        return not_found(f"{family.label} category", target_category_id)

    records = list(s.execute(select(Record).where(Record.id.in_(list(record_ids)))).scalars())
    missing = set(record_ids) - {r.id for r in records}
    if missing:
        return not_found(family.label, ", ".join(str(i) for i in sorted(missing, key=str)))

    sources = {r.category_id for r in records}
    moved = transfer_records(s, family, actor, records, target_category_id)
    record_event(
        s,
        actor=actor,
        action=family.audit_action("transfer"),
        entity_type=Record.__name__,
        entity_id=None,
        metadata={"ids": [r.id for r in records], "target_category_id": target_category_id, "moved": moved},
    )
    result = ok(moved)
    result.changed.extend((CATEGORY, c) for c in sources | {target_category_id})
    result.changed.extend((RECORD, r.id) for r in records)
    return result
