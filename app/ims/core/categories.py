"""
Categories: ordered, archivable containers of records.

Archive and delete cascade to every child record inside the same
transaction, so a cascade either fully applies or not at all.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.ims.audit import record_event
from app.ims.core.family import EntityFamily
from app.ims.core.lifecycle import stamp_values
from app.ims.core.notify import CATEGORY, RECORD
from app.ims.core.ordering import (
    active_siblings,
    check_position,
    max_order,
    reappend_colliding,
    renumber,
    resolve_collisions,
    splice,
)
from app.ims.core.records import purge_records
from app.ims.core.result import INVALID_ARGUMENT, Result, fail, not_found, ok, unauthorized
from app.ims.core.uow import atomic, lock_category, lock_category_set, utcnow
from app.ims.core.validation import clean_str
from app.ims.models import User


def _category_label(family: EntityFamily) -> str:
    return f"{family.label} category"


@atomic
def create_category(s: Session, family: EntityFamily, actor: User | None, title: str) -> Result:
    if actor is None:
        return unauthorized()
    title = clean_str(title)
    if not title:
        return fail(INVALID_ARGUMENT, "Category title is required.")
    Category = family.category_model
    lock_category_set(s, family)
    now = utcnow()
    category = Category(
        title=title,
        order=max_order(s, Category, include_archived=True) + 1,
        archived=False,
        highlighted=False,
        created_at=now,
        updated_at=now,
    )
    s.add(category)
    s.flush()
    record_event(
        s,
        actor=actor,
        action=family.audit_action("category_create"),
        entity_type=Category.__name__,
        entity_id=str(category.id),
        metadata={"title": title, "order": category.order},
    )
    result = ok(category)
    result.changed.append((CATEGORY, category.id))
    return result


@atomic
def rename_category(s: Session, family: EntityFamily, actor: User | None, category_id: Any, title: str) -> Result:
    if actor is None:
        return unauthorized()
    title = clean_str(title)
    if not title:
        return fail(INVALID_ARGUMENT, "Category title is required.")
    Category = family.category_model
    category = s.get(Category, category_id)
    if category is None:
        return not_found(_category_label(family), category_id)
    old = category.title
    category.title = title
    category.updated_at = utcnow()
    record_event(
        s,
        actor=actor,
        action=family.audit_action("category_rename"),
        entity_type=Category.__name__,
        entity_id=str(category.id),
        metadata={"old": old, "new": title},
    )
    result = ok(category)
    result.changed.append((CATEGORY, category.id))
    return result


def _cascade_archive(s: Session, family: EntityFamily, actor: User, category_id: Any, archived: bool) -> Result:
    Category = family.category_model
    Record = family.record_model
    category = lock_category(s, family, category_id)
    if category is None:
        return not_found(_category_label(family), category_id)

    returning: list[Any] = []
    if not archived:
        returning = list(
            s.execute(select(Record.id).where(Record.category_id == category_id, Record.archived.is_(True))).scalars()
        )

    action = "archive" if archived else "unarchive"
    category.archived = archived
    category.updated_at = utcnow()
    values = stamp_values(family, actor, action)
    values["archived"] = archived
    res = s.execute(
        update(Record)
        .where(Record.category_id == category_id)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    count = res.rowcount or 0

    if not archived:
        s.flush()
        reappend_colliding(active_siblings(s, Category), [category_id])
        resolve_collisions(s, family, category_id, returning)

    record_event(
        s,
        actor=actor,
        action=family.audit_action(f"category_{action}"),
        entity_type=Category.__name__,
        entity_id=str(category_id),
        metadata={"records": count},
    )
    result = ok({"category": category, "records": count})
    result.changed.append((CATEGORY, category_id))
    return result


@atomic
def archive_category(s: Session, family: EntityFamily, actor: User | None, category_id: Any) -> Result:
    """Archive the category and every record in it."""
    if actor is None:
        return unauthorized()
    return _cascade_archive(s, family, actor, category_id, True)


@atomic
def unarchive_category(s: Session, family: EntityFamily, actor: User | None, category_id: Any) -> Result:
    """Exact inverse of ``archive_category``: every record in the category becomes active."""
    if actor is None:
        return unauthorized()
    return _cascade_archive(s, family, actor, category_id, False)


@atomic
def delete_category(s: Session, family: EntityFamily, actor: User | None, category_id: Any) -> Result:
    """Delete ledger/review rows of every child record, the records, then the category."""
    if actor is None:
        return unauthorized()
    Category = family.category_model
    Record = family.record_model
    category = lock_category(s, family, category_id)
    if category is None:
        return not_found(_category_label(family), category_id)
    child_ids = list(s.execute(select(Record.id).where(Record.category_id == category_id)).scalars())
    deleted = purge_records(s, family, child_ids)
    record_event(
        s,
        actor=actor,
        action=family.audit_action("category_delete"),
        entity_type=Category.__name__,
        entity_id=str(category_id),
        metadata={"title": category.title, "records": deleted},
    )
    s.delete(category)
    result = ok(deleted)
    result.changed.append((CATEGORY, category_id))
    result.changed.extend((RECORD, i) for i in child_ids)
    return result


@atomic
def toggle_category_highlight(s: Session, family: EntityFamily, actor: User | None, category_id: Any) -> Result:
    if actor is None:
        return unauthorized()
    Category = family.category_model
    res = s.execute(
        update(Category)
        .where(Category.id == category_id)
        .values(highlighted=~Category.highlighted, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if not res.rowcount:
        return not_found(_category_label(family), category_id)
    category = s.get(Category, category_id, populate_existing=True)
    record_event(
        s,
        actor=actor,
        action=family.audit_action("category_toggle_highlight"),
        entity_type=Category.__name__,
        entity_id=str(category_id),
        metadata={"highlighted": category.highlighted},
    )
    result = ok(category)
    result.changed.append((CATEGORY, category_id))
    return result


@atomic
def move_category_to_position(s: Session, family: EntityFamily, actor: User | None, category_id: Any, new_position: Any) -> Result:
    if actor is None:
        return unauthorized()
    Category = family.category_model
    lock_category_set(s, family)
    category = s.get(Category, category_id)
    if category is None:
        return not_found(_category_label(family), category_id)
    siblings = active_siblings(s, Category)
    bad = check_position(new_position, len(siblings))
    if bad is not None:
        return bad
    if category not in siblings:
        return ok(0)
    reordered = splice(siblings, category, new_position)
    if reordered is None:
        return ok(0)
    changed = renumber(reordered)
    category.updated_at = utcnow()
    record_event(
        s,
        actor=actor,
        action=family.audit_action("category_reorder"),
        entity_type=Category.__name__,
        entity_id=str(category_id),
        metadata={"to": new_position, "changed": changed},
    )
    result = ok(changed)
    result.changed.append((CATEGORY, category_id))
    return result


def get_category(s: Session, family: EntityFamily, category_id: Any) -> Result:
    category = s.get(family.category_model, category_id)
    if category is None:
        return not_found(_category_label(family), category_id)
    return ok(category)


def list_categories(s: Session, family: EntityFamily, *, include_archived: bool = False) -> Result:
    Category = family.category_model
    stmt = select(Category).order_by(Category.order.asc(), Category.id.asc())
    if not include_archived:
        stmt = stmt.where(Category.archived.is_(False))
    return ok(list(s.execute(stmt).scalars()))
