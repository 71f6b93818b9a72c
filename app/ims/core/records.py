"""
Record create/update/list/delete for any entity family.

New records are appended to the end of their category under the category
lock. Updates to a snapshot family's ``version`` label write the superseded
label to the ledger first. Permanent deletes remove ledger and review rows
along with the record; otherwise records are archived.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from app.ims.audit import record_event
from app.ims.core.family import SNAPSHOT, EntityFamily
from app.ims.core.lifecycle import apply_flag
from app.ims.core.notify import CATEGORY, RECORD
from app.ims.core.ordering import insert_at_end
from app.ims.core.result import INVALID_ARGUMENT, Result, fail, not_found, ok, unauthorized
from app.ims.core.uow import atomic, utcnow
from app.ims.core.validation import clean_str, parse_date_fields
from app.ims.core.versions import snapshot_on_supersede
from app.ims.models import User
from app.ims.storage import Storage

# Keys accepted alongside field values; they never land on the record itself.
META_KEYS = frozenset({"notes"})


def clean_update_values(family: EntityFamily, data: Mapping[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Validate an update payload against the family's editable fields. Returns (values, errors)."""
    errors: list[str] = []
    allowed = set(family.updatable_fields)
    unknown = sorted(k for k in data if k not in allowed and k not in META_KEYS)
    if unknown:
        errors.append(f"Fields not editable for {family.label}: {', '.join(unknown)}.")

    values: dict[str, Any] = {}
    dates, date_errors = parse_date_fields(data, [f for f in family.date_fields if f in allowed])
    errors.extend(date_errors)
    values.update(dates)
    for f in allowed:
        if f not in data or f in dates:
            continue
        raw = data[f]
        if f in ("title", "version"):
            values[f] = clean_str(raw)
        elif isinstance(raw, str):
            values[f] = raw.strip()
        else:
            values[f] = raw

    if "title" in values and not values["title"]:
        errors.append("Title cannot be empty.")
    if "version" in values and not values["version"]:
        errors.append("Version cannot be empty.")
    return values, errors


def purge_records(s: Session, family: EntityFamily, record_ids: Sequence[Any]) -> int:
    """
    Hard-delete records with their ledger and review rows, children first.
    Returns how many records were deleted.
    """
    ids = list(record_ids)
    if not ids:
        return 0
    Record = family.record_model
    s.execute(delete(family.version_model).where(family.version_model.record_id.in_(ids)))
    s.execute(delete(family.review_model).where(family.review_model.record_id.in_(ids)))
    res = s.execute(delete(Record).where(Record.id.in_(ids)).execution_options(synchronize_session="fetch"))
    return res.rowcount or 0


@atomic
def create_record(
    s: Session,
    family: EntityFamily,
    actor: User | None,
    category_id: Any,
    payload: Mapping[str, Any],
    *,
    document: tuple[str, bytes, str | None] | None = None,
    blob_store: Storage | None = None,
) -> Result:
    """Create a record at the end of its category."""
    if actor is None:
        return unauthorized()
    if document is not None and blob_store is None:
        raise ValueError("blob_store is required to attach a document")
    data = {k: v for k, v in payload.items() if k not in ("highlighted", "approved")}
    values, errors = clean_update_values(family, data)
    if "title" not in values:
        errors.append("Title is required.")
    if errors:
        return fail(INVALID_ARGUMENT, " ".join(errors))

    order = insert_at_end(s, family, category_id)
    if order is None:
        return not_found(f"{family.label} category", category_id)

    Record = family.record_model
    now = utcnow()
    values.setdefault("version", "1")
    record = Record(
        category_id=category_id,
        order=order,
        highlighted=bool(payload.get("highlighted", False)),
        approved=bool(payload.get("approved", False)),
        archived=False,
        created_by_user_id=actor.id,
        created_at=now,
        updated_at=now,
        **values,
    )
    s.add(record)
    s.flush()
    if document is not None:
        filename, blob, content_type = document
        record.document_key = blob_store.attach(f"{family.key}/{record.id}", filename, blob, content_type)

    record_event(
        s,
        actor=actor,
        action=family.audit_action("create"),
        entity_type=Record.__name__,
        entity_id=str(record.id),
        metadata={"title": record.title, "category_id": category_id, "order": order},
    )
    result = ok(record)
    result.changed.append((CATEGORY, category_id))
    return result


@atomic
def update_record(s: Session, family: EntityFamily, actor: User | None, record_id: Any, payload: Mapping[str, Any]) -> Result:
    """
    Apply an edit. For snapshot-numbered families a changed ``version`` label
    first writes the superseded label to the ledger.
    """
    if actor is None:
        return unauthorized()
    values, errors = clean_update_values(family, payload)
    if errors:
        return fail(INVALID_ARGUMENT, " ".join(errors))

    Record = family.record_model
    now = utcnow()
    touched = s.execute(
        update(Record).where(Record.id == record_id).values(updated_at=now).execution_options(synchronize_session=False)
    )
    if not touched.rowcount:
        return not_found(family.label, record_id)
    record = s.get(Record, record_id, populate_existing=True)

    entry = None
    if family.version_strategy == SNAPSHOT:
        entry = snapshot_on_supersede(s, family, actor, record, values.get("version"), notes=clean_str(payload.get("notes")) or None)

    changes: dict[str, dict[str, str]] = {}
    for f, new in values.items():
        old = getattr(record, f)
        if old != new:
            changes[f] = {"old": str(old), "new": str(new)}
            setattr(record, f, new)
    record.updated_at = now
    if family.stamps_actor("update"):
        record.updated_by_user_id = actor.id
    s.flush()

    record_event(
        s,
        actor=actor,
        action=family.audit_action("edit"),
        entity_type=Record.__name__,
        entity_id=str(record.id),
        metadata={"changes": changes, "ledger_entry_id": entry.id if entry is not None else None},
    )
    result = ok(record)
    result.changed.append((RECORD, record.id))
    return result


def get_record(s: Session, family: EntityFamily, record_id: Any) -> Result:
    record = s.get(family.record_model, record_id)
    if record is None:
        return not_found(family.label, record_id)
    return ok(record)


def list_records(s: Session, family: EntityFamily, *, archived: bool = False, category_id: Any = None) -> Result:
    """Records ordered by category order, then record order, then title."""
    Record = family.record_model
    Category = family.category_model
    stmt = (
        select(Record)
        .join(Category, Record.category_id == Category.id)
        .where(Record.archived.is_(archived))
        .order_by(Category.order.asc(), Record.order.asc(), Record.title.asc())
    )
    if category_id is not None:
        stmt = stmt.where(Record.category_id == category_id)
    return ok(list(s.execute(stmt).scalars()))


@atomic
def delete_records(
    s: Session,
    family: EntityFamily,
    actor: User | None,
    record_ids: Sequence[Any],
    *,
    permanent: bool = False,
) -> Result:
    """
    Permanently delete (with ledger/review cascade) or, when ``permanent`` is
    false, archive instead. Unknown ids are skipped; the count of affected
    records is returned.
    """
    if actor is None:
        return unauthorized()
    if not record_ids:
        return fail(INVALID_ARGUMENT, f"{family.label} ids are required.")
    Record = family.record_model
    ids = list(record_ids)
    categories = list(s.execute(select(Record.category_id).where(Record.id.in_(ids)).distinct()).scalars())
    if permanent:
        count = purge_records(s, family, ids)
    else:
        count = apply_flag(s, family, actor, ids, "archive")
    record_event(
        s,
        actor=actor,
        action=family.audit_action("delete" if permanent else "archive"),
        entity_type=Record.__name__,
        entity_id=None,
        metadata={"ids": ids, "requested": len(ids), "count": count, "permanent": permanent},
    )
    result = ok(count)
    result.changed.extend((RECORD, i) for i in ids)
    result.changed.extend((CATEGORY, c) for c in categories)
    return result


@atomic
def attach_document(
    s: Session,
    family: EntityFamily,
    actor: User | None,
    record_id: Any,
    filename: str,
    data: bytes,
    content_type: str | None,
    *,
    blob_store: Storage,
) -> Result:
    if actor is None:
        return unauthorized()
    Record = family.record_model
    record = s.get(Record, record_id)
    if record is None:
        return not_found(family.label, record_id)
    if not data:
        return fail(INVALID_ARGUMENT, "Document is empty.")
    record.document_key = blob_store.attach(f"{family.key}/{record.id}", filename, data, content_type)
    record.updated_at = utcnow()
    record.updated_by_user_id = actor.id
    record_event(
        s,
        actor=actor,
        action=family.audit_action("document_attach"),
        entity_type=Record.__name__,
        entity_id=str(record.id),
        metadata={"document_key": record.document_key, "size_bytes": len(data)},
    )
    result = ok(record)
    result.changed.append((RECORD, record.id))
    return result
