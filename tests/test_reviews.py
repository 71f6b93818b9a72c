from datetime import date

from app.ims.core import records, reviews
from app.ims.core.result import INVALID_ARGUMENT, NOT_FOUND, UNAUTHORIZED


def test_reviews_list_newest_first_and_allow_same_day(s, actor, procedures, make_category, make_record):
    cat = make_category(procedures, "Operations")
    rec = make_record(procedures, cat.id, "Lockout tagout", version="4")

    for day, name in (("2025-03-01", "J. Smith"), ("2025-06-01", "A. Jones"), ("2025-06-01", "A. Jones")):
        res = reviews.add_review(
            s,
            procedures,
            actor,
            rec.id,
            {"reviewer_name": name, "review_date": day, "next_review_date": "2026-06-01", "details": "No changes"},
        )
        assert res.ok
        assert res.value.reviewed_by_user_id == actor.id

    listed = reviews.list_reviews(s, procedures, rec.id).value
    assert [r.review_date for r in listed] == [date(2025, 6, 1), date(2025, 6, 1), date(2025, 3, 1)]
    assert listed[0].next_review_date == date(2026, 6, 1)

    # Reviews never touch the version label
    assert records.get_record(s, procedures, rec.id).value.version == "4"


def test_add_review_validation(s, actor, procedures, make_category, make_record):
    cat = make_category(procedures)
    rec = make_record(procedures, cat.id, "Permit to work")

    assert reviews.add_review(s, procedures, None, rec.id, {}).failure.kind == UNAUTHORIZED
    assert reviews.add_review(s, procedures, actor, 9999, {"reviewer_name": "x", "review_date": "2025-01-01"}).failure.kind == NOT_FOUND

    missing_name = reviews.add_review(s, procedures, actor, rec.id, {"review_date": "2025-01-01"})
    assert missing_name.failure.kind == INVALID_ARGUMENT
    missing_date = reviews.add_review(s, procedures, actor, rec.id, {"reviewer_name": "Kim"})
    assert missing_date.failure.kind == INVALID_ARGUMENT
    bad_date = reviews.add_review(s, procedures, actor, rec.id, {"reviewer_name": "Kim", "review_date": "soon"})
    assert bad_date.failure.kind == INVALID_ARGUMENT
    assert reviews.list_reviews(s, procedures, rec.id).value == []


def test_delete_review_is_hard_delete(s, actor, procedures, make_category, make_record):
    cat = make_category(procedures)
    rec = make_record(procedures, cat.id, "Confined space")
    review = reviews.add_review(s, procedures, actor, rec.id, {"reviewer_name": "Kim", "review_date": "2025-01-01"}).unwrap()

    assert reviews.delete_review(s, procedures, None, review.id).failure.kind == UNAUTHORIZED
    assert reviews.delete_review(s, procedures, actor, review.id).ok
    assert reviews.delete_review(s, procedures, actor, review.id).failure.kind == NOT_FOUND
    assert reviews.list_reviews(s, procedures, rec.id).value == []
