import json
from datetime import date

from sqlalchemy import func, select

from app.ims.core import records, versions
from app.ims.core.result import INVALID_ARGUMENT, NOT_FOUND
from app.ims.storage import LocalStorage


def test_changing_label_logs_previous_label(s, actor, policies, make_category, make_record):
    cat = make_category(policies)
    rec = make_record(policies, cat.id, "Quality Policy", version="2")

    res = records.update_record(s, policies, actor, rec.id, {"version": "3", "notes": "Annual refresh"})
    assert res.ok
    assert res.value.version == "3"

    entries = versions.list_versions(s, policies, rec.id).value
    assert [e.version_number for e in entries] == ["2"]
    assert entries[0].notes == "Annual refresh"
    assert json.loads(entries[0].snapshot_json)["version"] == "2"


def test_edit_without_label_change_keeps_ledger_empty(s, actor, policies, make_category, make_record):
    cat = make_category(policies)
    rec = make_record(policies, cat.id, "Quality Policy", version="2")

    assert records.update_record(s, policies, actor, rec.id, {"title": "Quality Policy (rev)", "version": "2"}).ok
    assert versions.list_versions(s, policies, rec.id).value == []


def test_snapshot_ledger_lists_by_issue_date(s, actor, policies, make_category, make_record):
    cat = make_category(policies)
    rec = make_record(policies, cat.id, "Privacy", version="1", issue_date="2024-01-01")

    records.update_record(s, policies, actor, rec.id, {"version": "2", "issue_date": "2025-01-01"}).unwrap()
    records.update_record(s, policies, actor, rec.id, {"version": "3", "issue_date": "2026-01-01"}).unwrap()

    entries = versions.list_versions(s, policies, rec.id).value
    assert [(e.version_number, e.issue_date) for e in entries] == [
        ("2", date(2025, 1, 1)),
        ("1", date(2024, 1, 1)),
    ]


def test_snapshot_add_version_needs_label_and_issue_date(s, actor, procedures, make_category, make_record):
    cat = make_category(procedures)
    rec = make_record(procedures, cat.id, "Lockout tagout", version="1", issue_date="2024-01-01")

    assert versions.add_version(s, procedures, actor, rec.id, {}).failure.kind == INVALID_ARGUMENT
    assert versions.add_version(s, procedures, actor, rec.id, {"version": "2"}).failure.kind == INVALID_ARGUMENT
    assert versions.add_version(s, procedures, actor, rec.id, {"issue_date": "2025-01-01"}).failure.kind == INVALID_ARGUMENT
    too_long = {"version": "x" * 40, "issue_date": "2025-01-01"}
    assert versions.add_version(s, procedures, actor, rec.id, too_long).failure.kind == INVALID_ARGUMENT
    assert versions.list_versions(s, procedures, rec.id).value == []

    entry = versions.add_version(
        s, procedures, actor, rec.id, {"version": "2.0", "issue_date": "2025-03-01", "notes": "Reissued"}
    ).unwrap()
    assert (entry.version_number, entry.issue_date, entry.notes) == ("2.0", date(2025, 3, 1), "Reissued")
    assert json.loads(entry.snapshot_json)["version"] == "2.0"

    record = records.get_record(s, procedures, rec.id).value
    assert (record.version, record.issue_date) == ("2.0", date(2025, 3, 1))
    assert record.updated_by_user_id == actor.id
    assert [e.version_number for e in versions.list_versions(s, procedures, rec.id).value] == ["2.0"]


def test_increment_numbers_are_monotonic(s, actor, risk_assessments, make_category, make_record):
    cat = make_category(risk_assessments, "Workshop")
    rec = make_record(risk_assessments, cat.id, "Lathe")

    numbers = [versions.add_version(s, risk_assessments, actor, rec.id, {}).value.version_number for _ in range(3)]
    assert numbers == ["1", "2", "3"]

    Version = risk_assessments.version_model
    by_creation = s.execute(
        select(Version.version_number).where(Version.record_id == rec.id).order_by(Version.id.asc())
    ).scalars().all()
    as_ints = [int(n) for n in by_creation]
    assert as_ints == sorted(set(as_ints))

    assert [e.version_number for e in versions.list_versions(s, risk_assessments, rec.id).value] == ["3", "2", "1"]
    assert records.get_record(s, risk_assessments, rec.id).value.version == "3"


def test_increment_skips_non_numeric_labels(s, actor, risk_assessments, make_category, make_record):
    cat = make_category(risk_assessments)
    rec = make_record(risk_assessments, cat.id, "Ladder")
    s.add(risk_assessments.version_model(record_id=rec.id, version_number="draft"))
    s.commit()

    assert versions.add_version(s, risk_assessments, actor, rec.id, {}).value.version_number == "1"


def test_add_version_validates_and_carries_dates(s, actor, risk_assessments, make_category, make_record):
    cat = make_category(risk_assessments)
    rec = make_record(risk_assessments, cat.id, "Forklift")

    bad = versions.add_version(s, risk_assessments, actor, rec.id, {"review_date": "31/12/2025"})
    assert bad.failure.kind == INVALID_ARGUMENT
    assert versions.add_version(s, risk_assessments, actor, 9999, {}).failure.kind == NOT_FOUND

    entry = versions.add_version(s, risk_assessments, actor, rec.id, {"review_date": "2025-12-31"}).unwrap()
    assert entry.review_date == date(2025, 12, 31)
    assert entry.notes == "Version 1"
    assert records.get_record(s, risk_assessments, rec.id).value.review_date == date(2025, 12, 31)


def test_add_version_with_document(tmp_path, s, actor, risk_assessments, make_category, make_record):
    store = LocalStorage(root=tmp_path / "blobs")
    cat = make_category(risk_assessments)
    rec = make_record(risk_assessments, cat.id, "Scaffold")

    entry = versions.add_version(
        s,
        risk_assessments,
        actor,
        rec.id,
        {"notes": "Signed copy"},
        document=("scaffold assessment.pdf", b"%PDF-1.4", "application/pdf"),
        blob_store=store,
    ).unwrap()

    assert entry.document_key.startswith(f"risk_assessments/{rec.id}/v1/")
    assert entry.document_key.endswith("scaffold_assessment.pdf")
    assert store.resolve(entry.document_key) == b"%PDF-1.4"
    assert records.get_record(s, risk_assessments, rec.id).value.document_key == entry.document_key


def test_delete_version(s, actor, risk_assessments, make_category, make_record):
    cat = make_category(risk_assessments)
    rec = make_record(risk_assessments, cat.id, "Hot work")
    entry = versions.add_version(s, risk_assessments, actor, rec.id, {}).unwrap()

    assert versions.delete_version(s, risk_assessments, actor, entry.id).ok
    assert versions.delete_version(s, risk_assessments, actor, entry.id).failure.kind == NOT_FOUND
    Version = risk_assessments.version_model
    assert s.execute(select(func.count()).select_from(Version)).scalar() == 0


def test_list_versions_of_missing_record(s, policies):
    assert versions.list_versions(s, policies, 9999).failure.kind == NOT_FOUND
