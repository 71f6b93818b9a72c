"""
JSON API over the lifecycle engine, mounted once per entity family:
``/api/<family_key>/...`` (e.g. ``/api/policies/records``).

Capability checks (read/write/delete) happen here; the core trusts its caller
and only insists on an actor.
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, abort, current_app, g, jsonify, request, send_file

from app.ims.api.responses import (
    arg,
    as_bool,
    bad_request,
    request_body,
    result_response,
    to_dict,
)
from app.ims.auth import current_actor
from app.ims.core import bulk, categories, lifecycle, ordering, records, reviews, versions
from app.ims.core.family import EntityFamily, get_family
from app.ims.db import db_session
from app.ims.rbac import require_capability
from app.ims.storage import StorageError, storage_from_config
from app.ims.utils import file_digest_and_bytes, to_download_fileobj

bp = Blueprint("api", __name__)

LIFECYCLE_ACTIONS = ("archive", "unarchive", "approve", "unapprove", "highlight", "unhighlight")


@bp.url_value_preprocessor
def _resolve_family(endpoint: str | None, values: dict[str, Any] | None) -> None:
    family = get_family((values or {}).get("family_key", ""))
    if family is None:
        abort(404)
    g.family = family


def _family() -> EntityFamily:
    return g.family


def _int_ids(raw: Any) -> list[int] | None:
    """Ids from a JSON body; non-numeric ids can never match a row and are dropped."""
    if not isinstance(raw, list):
        return None
    ids: list[int] = []
    for v in raw:
        if isinstance(v, bool):
            continue
        if isinstance(v, int):
            ids.append(v)
        elif isinstance(v, str) and v.strip().isdecimal():
            ids.append(int(v.strip()))
    return ids


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value is not None and value != "" else None
    except (TypeError, ValueError):
        return None


def _position(value: Any) -> Any:
    """Numeric strings become ints; anything else reaches the core untouched and fails there."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdecimal() and stripped.count("-") <= 1:
            return int(stripped)
    return value


def _uploaded_document() -> tuple[str, bytes, str | None] | None:
    f = request.files.get("file")
    if not f or not f.filename:
        return None
    return (f.filename, f.read(), (f.mimetype or "application/octet-stream").strip())


# ---------- Records ----------
@bp.get("/<family_key>/records")
@require_capability("read")
def list_records(family_key: str):
    s = db_session()
    archived = as_bool(request.args.get("archived"))
    category_id = _int_or_none(request.args.get("categoryId") or request.args.get("category_id"))
    return result_response(records.list_records(s, _family(), archived=archived, category_id=category_id))


@bp.post("/<family_key>/records")
@require_capability("write")
def create_record(family_key: str):
    s = db_session()
    body = request_body()
    category_id = _int_or_none(arg(body, "category_id", "categoryId"))
    if category_id is None:
        return bad_request("Category ID is required.")
    payload = {k: v for k, v in body.items() if k not in ("category_id", "categoryId", "csrf_token")}
    if "highlighted" in payload:
        payload["highlighted"] = as_bool(payload["highlighted"])
    if "approved" in payload:
        payload["approved"] = as_bool(payload["approved"])
    document = _uploaded_document()
    res = records.create_record(
        s,
        _family(),
        current_actor(),
        category_id,
        payload,
        document=document,
        blob_store=storage_from_config(current_app.config) if document else None,
    )
    return result_response(res, status=201)


@bp.get("/<family_key>/records/<int:record_id>")
@require_capability("read")
def get_record(family_key: str, record_id: int):
    return result_response(records.get_record(db_session(), _family(), record_id))


@bp.put("/<family_key>/records/<int:record_id>")
@require_capability("write")
def update_record(family_key: str, record_id: int):
    body = {k: v for k, v in request_body().items() if k != "csrf_token"}
    return result_response(records.update_record(db_session(), _family(), current_actor(), record_id, body))


@bp.put("/<family_key>/records")
@require_capability("write")
def bulk_action(family_key: str):
    body = request_body()
    raw_ids = arg(body, "ids")
    ids = _int_ids(raw_ids)
    if ids is None or not raw_ids:
        return bad_request(f"{_family().label} IDs are required.")
    action = arg(body, "action")
    if not ids and action in bulk.BULK_ACTIONS:
        return jsonify({"message": f"No matching {_family().key}", "count": 0}), 200
    res = bulk.apply_bulk_action(db_session(), _family(), current_actor(), ids, action, arg(body, "data"))
    return result_response(res, render=lambda count: {"message": f"{action}: {count} {_family().key}", "count": count})


@bp.delete("/<family_key>/records")
@require_capability("delete")
def delete_records(family_key: str):
    body = request_body()
    raw_ids = arg(body, "ids")
    ids = _int_ids(raw_ids)
    if ids is None or not raw_ids:
        return bad_request(f"{_family().label} IDs are required.")
    permanent = as_bool(arg(body, "permanent"))
    if not ids:
        return jsonify({"count": 0, "permanent": permanent}), 200
    res = records.delete_records(db_session(), _family(), current_actor(), ids, permanent=permanent)
    return result_response(res, render=lambda count: {"count": count, "permanent": permanent})


@bp.patch("/<family_key>/records")
@require_capability("write")
def category_action(family_key: str):
    body = request_body()
    res = bulk.apply_category_action(
        db_session(),
        _family(),
        current_actor(),
        arg(body, "action"),
        _int_or_none(arg(body, "category_id", "categoryId")),
        _int_or_none(arg(body, "new_category_id", "newCategoryId")),
    )
    return result_response(res, render=lambda count: {"count": count})


@bp.post("/<family_key>/records/transfer")
@require_capability("write")
def transfer_records(family_key: str):
    body = request_body()
    ids = _int_ids(arg(body, "ids"))
    target = _int_or_none(arg(body, "target_category_id", "targetCategoryId"))
    if not ids or target is None:
        return bad_request("ids and targetCategoryId are required.")
    res = ordering.transfer(db_session(), _family(), current_actor(), ids, target)
    return result_response(res, render=lambda moved: {"moved": moved})


@bp.post("/<family_key>/records/<int:record_id>/position")
@require_capability("write")
def move_record(family_key: str, record_id: int):
    position = _position(arg(request_body(), "position", "newPosition"))
    res = ordering.move_to_position(db_session(), _family(), current_actor(), record_id, position)
    return result_response(res, render=lambda changed: {"changed": changed})


@bp.post("/<family_key>/records/<int:record_id>/toggle-highlight")
@require_capability("write")
def toggle_highlight(family_key: str, record_id: int):
    return result_response(lifecycle.toggle_highlight(db_session(), _family(), current_actor(), record_id))


@bp.post("/<family_key>/records/<int:record_id>/<action>")
@require_capability("write")
def lifecycle_action(family_key: str, record_id: int, action: str):
    if action not in LIFECYCLE_ACTIONS:
        abort(404)
    return result_response(lifecycle.set_flag(db_session(), _family(), current_actor(), record_id, action))


# ---------- Documents ----------
@bp.post("/<family_key>/records/<int:record_id>/document")
@require_capability("write")
def upload_document(family_key: str, record_id: int):
    document = _uploaded_document()
    if document is None:
        return bad_request("Choose a file to upload.")
    filename, data, content_type = document
    res = records.attach_document(
        db_session(),
        _family(),
        current_actor(),
        record_id,
        filename,
        data,
        content_type,
        blob_store=storage_from_config(current_app.config),
    )
    if res.ok:
        sha256, size_bytes = file_digest_and_bytes(data)
        current_app.logger.info(
            "Attached document to %s %s (sha256=%s size=%s)", family_key, record_id, sha256, size_bytes
        )
    return result_response(res, status=201)


@bp.get("/<family_key>/records/<int:record_id>/document")
@require_capability("read")
def download_document(family_key: str, record_id: int):
    res = records.get_record(db_session(), _family(), record_id)
    if not res.ok:
        return result_response(res)
    key = res.value.document_key
    if not key:
        abort(404)
    try:
        data = storage_from_config(current_app.config).resolve(key)
    except StorageError:
        current_app.logger.warning("Document blob missing for %s %s: %s", family_key, record_id, key)
        abort(404)
    return send_file(
        to_download_fileobj(data),
        mimetype="application/octet-stream",
        as_attachment=True,
        download_name=key.rsplit("/", 1)[-1],
        max_age=0,
    )


# ---------- Versions ----------
@bp.get("/<family_key>/records/<int:record_id>/versions")
@require_capability("read")
def list_versions(family_key: str, record_id: int):
    return result_response(versions.list_versions(db_session(), _family(), record_id))


@bp.post("/<family_key>/records/<int:record_id>/versions")
@require_capability("write")
def add_version(family_key: str, record_id: int):
    document = _uploaded_document()
    res = versions.add_version(
        db_session(),
        _family(),
        current_actor(),
        record_id,
        request_body(),
        document=document,
        blob_store=storage_from_config(current_app.config) if document else None,
    )
    return result_response(res, status=201)


@bp.delete("/<family_key>/versions/<int:version_id>")
@require_capability("delete")
def delete_version(family_key: str, version_id: int):
    res = versions.delete_version(db_session(), _family(), current_actor(), version_id)
    return result_response(res, render=lambda vid: {"deleted": vid})


# ---------- Reviews ----------
@bp.get("/<family_key>/records/<int:record_id>/reviews")
@require_capability("read")
def list_reviews(family_key: str, record_id: int):
    return result_response(reviews.list_reviews(db_session(), _family(), record_id))


@bp.post("/<family_key>/records/<int:record_id>/reviews")
@require_capability("write")
def add_review(family_key: str, record_id: int):
    res = reviews.add_review(db_session(), _family(), current_actor(), record_id, request_body())
    return result_response(res, status=201)


@bp.delete("/<family_key>/reviews/<int:review_id>")
@require_capability("delete")
def delete_review(family_key: str, review_id: int):
    res = reviews.delete_review(db_session(), _family(), current_actor(), review_id)
    return result_response(res, render=lambda rid: {"deleted": rid})


# ---------- Categories ----------
@bp.get("/<family_key>/categories")
@require_capability("read")
def list_categories(family_key: str):
    include_archived = as_bool(request.args.get("archived"))
    return result_response(categories.list_categories(db_session(), _family(), include_archived=include_archived))


@bp.post("/<family_key>/categories")
@require_capability("write")
def create_category(family_key: str):
    res = categories.create_category(db_session(), _family(), current_actor(), arg(request_body(), "title"))
    return result_response(res, status=201)


@bp.put("/<family_key>/categories/<int:category_id>")
@require_capability("write")
def rename_category(family_key: str, category_id: int):
    res = categories.rename_category(db_session(), _family(), current_actor(), category_id, arg(request_body(), "title"))
    return result_response(res)


def _render_cascade(value: dict[str, Any]) -> dict[str, Any]:
    return {"category": to_dict(value["category"]), "records": value["records"]}


@bp.post("/<family_key>/categories/<int:category_id>/archive")
@require_capability("write")
def archive_category(family_key: str, category_id: int):
    res = categories.archive_category(db_session(), _family(), current_actor(), category_id)
    return result_response(res, render=_render_cascade)


@bp.post("/<family_key>/categories/<int:category_id>/unarchive")
@require_capability("write")
def unarchive_category(family_key: str, category_id: int):
    res = categories.unarchive_category(db_session(), _family(), current_actor(), category_id)
    return result_response(res, render=_render_cascade)


@bp.post("/<family_key>/categories/<int:category_id>/toggle-highlight")
@require_capability("write")
def toggle_category_highlight(family_key: str, category_id: int):
    return result_response(categories.toggle_category_highlight(db_session(), _family(), current_actor(), category_id))


@bp.post("/<family_key>/categories/<int:category_id>/position")
@require_capability("write")
def move_category(family_key: str, category_id: int):
    position = _position(arg(request_body(), "position", "newPosition"))
    res = categories.move_category_to_position(db_session(), _family(), current_actor(), category_id, position)
    return result_response(res, render=lambda changed: {"changed": changed})


@bp.post("/<family_key>/categories/<int:category_id>/repack")
@require_capability("write")
def repack_category(family_key: str, category_id: int):
    res = ordering.repack(db_session(), _family(), current_actor(), category_id)
    return result_response(res, render=lambda count: {"count": count})


@bp.post("/<family_key>/categories/<int:category_id>/reorder")
@require_capability("write")
def reorder_records(family_key: str, category_id: int):
    raw = arg(request_body(), "ids")
    ids = _int_ids(raw)
    if not ids or len(ids) != len(raw):
        return bad_request("ids must be a non-empty list of record ids.")
    res = ordering.reorder(db_session(), _family(), current_actor(), category_id, ids)
    return result_response(res, render=lambda changed: {"changed": changed})


@bp.delete("/<family_key>/categories/<int:category_id>")
@require_capability("delete")
def delete_category(family_key: str, category_id: int):
    res = categories.delete_category(db_session(), _family(), current_actor(), category_id)
    return result_response(res, render=lambda deleted: {"records": deleted})
