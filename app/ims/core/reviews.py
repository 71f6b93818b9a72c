"""
Dated, attributed review entries. Independent of the version ledger: a
review never changes a record's version. Entries are inserted or hard
deleted, never edited.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.ims.audit import record_event
from app.ims.core.family import EntityFamily
from app.ims.core.notify import RECORD
from app.ims.core.result import INVALID_ARGUMENT, Result, fail, not_found, ok, unauthorized
from app.ims.core.uow import atomic, utcnow
from app.ims.core.validation import clean_str, parse_date_fields
from app.ims.models import User


def validate_review_payload(payload: Mapping[str, Any]) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    reviewer_name = clean_str(payload.get("reviewer_name"))
    if not reviewer_name:
        errors.append("Reviewer name is required.")
    dates, date_errors = parse_date_fields(payload, ("review_date", "next_review_date"))
    errors.extend(date_errors)
    if not date_errors and dates.get("review_date") is None:
        errors.append("Review date is required.")
    values = {
        "reviewer_name": reviewer_name,
        "review_date": dates.get("review_date"),
        "next_review_date": dates.get("next_review_date"),
        "details": clean_str(payload.get("details")),
    }
    return values, errors


@atomic
def add_review(s: Session, family: EntityFamily, actor: User | None, record_id: Any, payload: Mapping[str, Any]) -> Result:
    if actor is None:
        return unauthorized()
    Record = family.record_model
    Review = family.review_model
    if s.get(Record, record_id) is None:
        return not_found(family.label, record_id)
    values, errors = validate_review_payload(payload)
    if errors:
        return fail(INVALID_ARGUMENT, " ".join(errors))

    review = Review(record_id=record_id, reviewed_by_user_id=actor.id, created_at=utcnow(), **values)
    s.add(review)
    s.flush()
    record_event(
        s,
        actor=actor,
        action=family.audit_action("review_add"),
        entity_type=Review.__name__,
        entity_id=str(review.id),
        metadata={
            "record_id": record_id,
            "review_date": values["review_date"],
            "next_review_date": values["next_review_date"],
        },
    )
    result = ok(review)
    result.changed.append((RECORD, record_id))
    return result


def list_reviews(s: Session, family: EntityFamily, record_id: Any) -> Result:
    Record = family.record_model
    Review = family.review_model
    if s.get(Record, record_id) is None:
        return not_found(family.label, record_id)
    stmt = (
        select(Review)
        .where(Review.record_id == record_id)
        .order_by(Review.review_date.desc(), Review.id.desc())
    )
    return ok(list(s.execute(stmt).scalars()))


@atomic
def delete_review(s: Session, family: EntityFamily, actor: User | None, review_id: Any) -> Result:
    if actor is None:
        return unauthorized()
    Review = family.review_model
    review = s.get(Review, review_id)
    if review is None:
        return not_found(f"{family.label} review", review_id)
    record_event(
        s,
        actor=actor,
        action=family.audit_action("review_delete"),
        entity_type=Review.__name__,
        entity_id=str(review.id),
        metadata={"record_id": review.record_id, "review_date": review.review_date},
    )
    s.delete(review)
    result = ok(review_id)
    result.changed.append((RECORD, review.record_id))
    return result
