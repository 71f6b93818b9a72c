"""
Append-only version ledger.

Two numbering strategies coexist across families:

- ``snapshot``: whenever a record's ``version`` label changes, the *previous*
  label is written to the ledger together with a snapshot of the tracked
  fields (see ``snapshot_on_supersede``). A label can also be issued
  explicitly with ``add_version``, which needs the new label and its issue date.
- ``increment``: entries are added on demand; each one is numbered previous
  numeric version + 1, starting at "1", and becomes the record's live label
  (see ``add_version``).

Ledger rows are never updated. They disappear only through ``delete_version``
or when their record is deleted.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.ims.audit import record_event
from app.ims.core.family import INCREMENT, EntityFamily
from app.ims.core.notify import RECORD
from app.ims.core.result import INVALID_ARGUMENT, Result, fail, not_found, ok, unauthorized
from app.ims.core.uow import atomic, utcnow
from app.ims.core.validation import clean_str, parse_date_fields
from app.ims.models import User
from app.ims.storage import Storage

logger = logging.getLogger(__name__)

# Width of the version_number and version columns
LABEL_MAX_LENGTH = 32


def _ledger_columns(family: EntityFamily) -> set[str]:
    return {c.key for c in family.version_model.__table__.columns}


def snapshot_fields(family: EntityFamily, record: Any) -> dict[str, Any]:
    return {f: getattr(record, f, None) for f in family.tracked_fields}


def snapshot_on_supersede(
    s: Session,
    family: EntityFamily,
    actor: User,
    record: Any,
    new_label: str | None,
    notes: str | None = None,
) -> Any | None:
    """
    Write a ledger entry for the label ``record`` is about to lose. Must run
    before the new values are applied. Returns the entry, or None when the
    label does not change.
    """
    if new_label is None or new_label == record.version:
        return None
    Version = family.version_model
    ledger_cols = _ledger_columns(family)
    entry = Version(
        record_id=record.id,
        version_number=record.version,
        snapshot_json=json.dumps(snapshot_fields(family, record), sort_keys=True, default=str),
        notes=notes,
        document_key=record.document_key,
        created_by_user_id=actor.id,
        created_at=utcnow(),
    )
    # Domain columns shared with the record (e.g. issue_date) keep their superseded values.
    for f in family.tracked_fields:
        if f in ledger_cols and f not in ("id", "record_id", "version_number", "notes", "document_key"):
            setattr(entry, f, getattr(record, f, None))
    s.add(entry)
    return entry


def next_version_number(s: Session, family: EntityFamily, record_id: Any) -> str:
    """Previous highest numeric version + 1, or "1" for an empty ledger."""
    Version = family.version_model
    numbers = s.execute(select(Version.version_number).where(Version.record_id == record_id)).scalars()
    highest: int | None = None
    for raw in numbers:
        raw = (raw or "").strip()
        if not raw.isdecimal():
            continue
        n = int(raw)
        if highest is None or n > highest:
            highest = n
    return "1" if highest is None else str(highest + 1)


@atomic
def add_version(
    s: Session,
    family: EntityFamily,
    actor: User | None,
    record_id: Any,
    payload: Mapping[str, Any] | None = None,
    *,
    document: tuple[str, bytes, str | None] | None = None,
    blob_store: Storage | None = None,
) -> Result:
    """
    Explicit "add version": write a ledger entry and make it the record's live label.

    Increment families number the entry themselves (previous + 1). Snapshot
    families take the label from ``payload["version"]`` and, when the ledger
    is listed by a date field, require that date too.

    ``document`` is ``(filename, data, content_type)`` and needs ``blob_store``.
    """
    if actor is None:
        return unauthorized()
    if document is not None and blob_store is None:
        raise ValueError("blob_store is required to attach a document")
    payload = dict(payload or {})
    Record = family.record_model
    Version = family.version_model

    # Touch the record first: concurrent add_version calls on it serialise here.
    now = utcnow()
    touched = s.execute(
        update(Record)
        .where(Record.id == record_id)
        .values(updated_at=now, updated_by_user_id=actor.id)
        .execution_options(synchronize_session=False)
    )
    if not touched.rowcount:
        return not_found(family.label, record_id)

    ledger_cols = _ledger_columns(family)
    dates, errors = parse_date_fields(payload, [f for f in family.date_fields if f in ledger_cols])
    if family.version_strategy == INCREMENT:
        number = next_version_number(s, family, record_id)
    else:
        number = clean_str(payload.get("version"))
        if not number:
            errors.append("Version is required.")
        elif len(number) > LABEL_MAX_LENGTH:
            errors.append(f"Version must be at most {LABEL_MAX_LENGTH} characters.")
        order_by = family.version_order_by
        if order_by in family.date_fields and order_by in ledger_cols and dates.get(order_by) is None:
            errors.append(f"{order_by} is required.")
    if errors:
        return fail(INVALID_ARGUMENT, " ".join(errors))

    entry = Version(
        record_id=record_id,
        version_number=number,
        notes=(payload.get("notes") or "").strip() or f"Version {number}",
        created_by_user_id=actor.id,
        created_at=now,
        **dates,
    )
    s.add(entry)
    s.flush()

    if document is not None:
        filename, data, content_type = document
        entry.document_key = blob_store.attach(f"{family.key}/{record_id}/v{number}", filename, data, content_type)

    record = s.get(Record, record_id, populate_existing=True)
    record.version = number
    if entry.document_key:
        record.document_key = entry.document_key
    for f, value in dates.items():
        if hasattr(record, f):
            setattr(record, f, value)
    entry.snapshot_json = json.dumps(snapshot_fields(family, record), sort_keys=True, default=str)

    record_event(
        s,
        actor=actor,
        action=family.audit_action("version_add"),
        entity_type=Version.__name__,
        entity_id=str(entry.id),
        metadata={"record_id": record_id, "version_number": number, "document_key": entry.document_key},
    )
    result = ok(entry)
    result.changed.append((RECORD, record_id))
    return result


def list_versions(s: Session, family: EntityFamily, record_id: Any) -> Result:
    """Ledger entries for a record, newest first by the family's ordering column."""
    Record = family.record_model
    Version = family.version_model
    if s.get(Record, record_id) is None:
        return not_found(family.label, record_id)
    key = getattr(Version, family.version_order_by)
    stmt = (
        select(Version)
        .where(Version.record_id == record_id)
        .order_by(key.desc().nulls_last(), Version.created_at.desc(), Version.id.desc())
    )
    return ok(list(s.execute(stmt).scalars()))


@atomic
def delete_version(s: Session, family: EntityFamily, actor: User | None, version_id: Any) -> Result:
    """Administrative removal of one ledger entry."""
    if actor is None:
        return unauthorized()
    Version = family.version_model
    entry = s.get(Version, version_id)
    if entry is None:
        return not_found(f"{family.label} version", version_id)
    record_event(
        s,
        actor=actor,
        action=family.audit_action("version_delete"),
        entity_type=Version.__name__,
        entity_id=str(entry.id),
        metadata={"record_id": entry.record_id, "version_number": entry.version_number},
    )
    s.delete(entry)
    result = ok(version_id)
    result.changed.append((RECORD, entry.record_id))
    return result
