"""
Batch lifecycle actions and category-scoped ordering actions.

Bulk record actions are deliberately lenient: ids that do not exist are
skipped and only the number of records actually matched is reported.
Callers that need strict semantics must validate ids beforehand.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.ims.audit import record_event
from app.ims.core.family import SNAPSHOT, EntityFamily
from app.ims.core.lifecycle import FLAG_ACTIONS, apply_flag, stamp_values
from app.ims.core.notify import CATEGORY, RECORD
from app.ims.core.ordering import repack_category, transfer_records
from app.ims.core.records import clean_update_values
from app.ims.core.result import INVALID_ACTION, INVALID_ARGUMENT, Result, fail, not_found, ok, unauthorized
from app.ims.core.uow import atomic, lock_category
from app.ims.core.versions import snapshot_on_supersede
from app.ims.models import User

logger = logging.getLogger(__name__)

BULK_ACTIONS = tuple(FLAG_ACTIONS) + ("update",)

REORDER_CATEGORY = "reorder-category"
MOVE_TO_CATEGORY = "move-to-category"
CATEGORY_ACTIONS = (REORDER_CATEGORY, MOVE_TO_CATEGORY)
# Older clients send "move-category".
CATEGORY_ACTION_ALIASES = {"move-category": MOVE_TO_CATEGORY}


def _bulk_update(s: Session, family: EntityFamily, actor: User, ids: list[Any], data: Mapping[str, Any]) -> Result:
    values, errors = clean_update_values(family, data)
    if errors:
        return fail(INVALID_ARGUMENT, " ".join(errors))
    if not values:
        return fail(INVALID_ARGUMENT, "Update data is required.")
    Record = family.record_model

    if family.version_strategy == SNAPSHOT and "version" in values:
        records = s.execute(select(Record).where(Record.id.in_(ids))).scalars()
        for record in records:
            snapshot_on_supersede(s, family, actor, record, values["version"], notes=data.get("notes"))
        s.flush()

    values.update(stamp_values(family, actor, "update"))
    res = s.execute(update(Record).where(Record.id.in_(ids)).values(**values).execution_options(synchronize_session="fetch"))
    return ok(res.rowcount or 0)


@atomic
def apply_bulk_action(
    s: Session,
    family: EntityFamily,
    actor: User | None,
    ids: Sequence[Any] | None,
    action: str | None,
    data: Mapping[str, Any] | None = None,
) -> Result:
    """
    Apply one action to every record in ``ids`` as one batch. ``data`` is only
    read for ``update``. Returns the count of records matched.
    """
    if actor is None:
        return unauthorized()
    if not action or action not in BULK_ACTIONS:
        return fail(INVALID_ACTION, f"Invalid action: {action!r}")
    if not ids or isinstance(ids, (str, bytes)):
        return fail(INVALID_ARGUMENT, f"{family.label} ids are required.")
    ids = list(dict.fromkeys(ids))

    if action == "update":
        if not data:
            return fail(INVALID_ARGUMENT, "Update data is required.")
        result = _bulk_update(s, family, actor, ids, data)
        if not result.ok:
            return result
        count = result.value
    else:
        count = apply_flag(s, family, actor, ids, action)

    logger.info("%s bulk %s: %s requested, %s matched", family.key, action, len(ids), count)
    record_event(
        s,
        actor=actor,
        action=family.audit_action(f"bulk_{action}"),
        entity_type=family.record_model.__name__,
        entity_id=None,
        metadata={"ids": ids, "requested": len(ids), "count": count, "fields": sorted(data) if action == "update" else None},
    )
    result = ok(count)
    result.changed.extend((RECORD, i) for i in ids)
    return result


@atomic
def apply_category_action(
    s: Session,
    family: EntityFamily,
    actor: User | None,
    action: str | None,
    category_id: Any = None,
    new_category_id: Any = None,
) -> Result:
    """
    ``reorder-category`` repacks the active records of ``category_id``;
    ``move-to-category`` moves every record of ``category_id`` to the end of
    ``new_category_id`` keeping their relative order. Returns a record count.
    """
    if actor is None:
        return unauthorized()
    action = CATEGORY_ACTION_ALIASES.get(action or "", action)
    if not action or action not in CATEGORY_ACTIONS:
        return fail(INVALID_ACTION, f"Invalid action: {action!r}")
    if category_id is None:
        return fail(INVALID_ARGUMENT, "Category ID is required.")
    Record = family.record_model
    Category = family.category_model

    if action == REORDER_CATEGORY:
        packed = repack_category(s, family, category_id)
        if packed is None:
            return not_found(f"{family.label} category", category_id)
        count, changed = packed
        metadata: dict[str, Any] = {"count": count, "changed": changed}
        touched = [category_id]
    else:
        if new_category_id is None:
            return fail(INVALID_ARGUMENT, "Both category ID and new category ID are required for moving.")
        if new_category_id == category_id:
            return fail(INVALID_ARGUMENT, "Source and target category must differ.")
        # Lock in id order so two opposite moves cannot deadlock.
        for cid in sorted((category_id, new_category_id), key=str):
            if lock_category(s, family, cid) is None:
                return not_found(f"{family.label} category", cid)
        records = list(s.execute(select(Record).where(Record.category_id == category_id)).scalars())
        count = transfer_records(s, family, actor, records, new_category_id)
        metadata = {"count": count, "new_category_id": new_category_id}
        touched = [category_id, new_category_id]

    record_event(
        s,
        actor=actor,
        action=family.audit_action(action.replace("-", "_")),
        entity_type=Category.__name__,
        entity_id=str(category_id),
        metadata=metadata,
    )
    result = ok(count)
    result.changed.extend((CATEGORY, c) for c in touched)
    return result
