from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from flask import jsonify, request

from app.ims.core.result import INVALID_ARGUMENT, Failure, Result


def to_dict(obj: Any) -> dict[str, Any]:
    """Column values of an ORM row, with dates as ISO strings."""
    out: dict[str, Any] = {}
    for col in obj.__table__.columns:
        value = getattr(obj, col.key)
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        out[col.key] = value
    return out


def failure_response(failure: Failure):
    body = failure.to_dict()
    if failure.retryable:
        body["retry"] = True
    return jsonify(body), failure.http_status


def bad_request(message: str):
    return failure_response(Failure(INVALID_ARGUMENT, message))


def result_response(result: Result, *, status: int = 200, render=None):
    if not result.ok:
        return failure_response(result.failure)  # type: ignore[arg-type]
    value = result.value
    if render is not None:
        body = render(value)
    elif isinstance(value, list):
        body = [to_dict(v) for v in value]
    elif hasattr(value, "__table__"):
        body = to_dict(value)
    else:
        body = value
    return jsonify(body), status


def request_body() -> dict[str, Any]:
    """JSON body, or form fields for multipart requests."""
    if request.is_json:
        body = request.get_json(silent=True)
        return body if isinstance(body, dict) else {}
    return {k: v for k, v in request.form.items()}


def arg(body: Mapping[str, Any], snake: str, camel: str | None = None, default: Any = None) -> Any:
    """Read a key in snake_case or its camelCase spelling."""
    if snake in body:
        return body[snake]
    if camel and camel in body:
        return body[camel]
    return default


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")
