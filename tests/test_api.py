import io

from sqlalchemy import select

from app.ims.db import session_scope
from app.ims.models import AuditEvent


def _category(client, family="policies", title="Safety"):
    r = client.post(f"/api/{family}/categories", json={"title": title})
    assert r.status_code == 201
    return r.json["id"]


def _record(client, category_id, title, family="policies", **fields):
    r = client.post(f"/api/{family}/records", json={"categoryId": category_id, "title": title, **fields})
    assert r.status_code == 201, r.json
    return r.json["id"]


def test_requires_session_user(app):
    anon = app.test_client()
    r = anon.get("/api/policies/records")
    assert r.status_code == 401
    assert r.json["kind"] == "Unauthorized"


def test_capabilities_gate_writes(viewer_client):
    assert viewer_client.get("/api/policies/records").status_code == 200
    r = viewer_client.post("/api/policies/categories", json={"title": "Nope"})
    assert r.status_code == 403
    assert r.json["missing_permission"] == "policies.write"


def test_unknown_family_is_404(client):
    r = client.get("/api/widgets/records")
    assert r.status_code == 404
    assert r.json["kind"] == "NotFound"


def test_mutations_require_csrf_token(client):
    del client.environ_base["HTTP_X_CSRF_TOKEN"]
    r = client.post("/api/policies/categories", json={"title": "Safety"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]

    r = client.post("/api/policies/categories", json={"title": "Safety", "csrf_token": "test-csrf"})
    assert r.status_code == 201


def test_create_list_and_filter(client):
    safety = _category(client, title="Safety")
    quality = _category(client, title="Quality")
    a = _record(client, safety, "A", issue_date="2025-01-15", location="Site 2")
    _record(client, safety, "B")
    _record(client, quality, "Q")

    r = client.get(f"/api/policies/records?categoryId={safety}")
    assert r.status_code == 200
    assert [(x["title"], x["order"]) for x in r.json] == [("A", 1), ("B", 2)]

    r = client.get(f"/api/policies/records/{a}")
    assert r.json["issue_date"] == "2025-01-15"
    assert r.json["location"] == "Site 2"

    r = client.post("/api/policies/records", json={"categoryId": safety})
    assert r.status_code == 400
    assert r.json["kind"] == "InvalidArgument"
    r = client.post("/api/policies/records", json={"categoryId": 9999, "title": "Lost"})
    assert r.status_code == 404
    r = client.post("/api/policies/records", json={"categoryId": safety, "title": "Bad", "issue_date": "tomorrow"})
    assert r.status_code == 400


def test_bulk_put_counts_only_matched(client):
    cat = _category(client)
    x = _record(client, cat, "x")
    y = _record(client, cat, "y")

    r = client.put("/api/policies/records", json={"ids": [x, y, 99999], "action": "archive"})
    assert r.status_code == 200
    assert r.json["count"] == 2

    r = client.get("/api/policies/records?archived=true")
    assert sorted(rec["title"] for rec in r.json) == ["x", "y"]

    r = client.put("/api/policies/records", json={"ids": [x], "action": "obliterate"})
    assert r.status_code == 400
    assert r.json["kind"] == "InvalidAction"
    r = client.put("/api/policies/records", json={"ids": [], "action": "archive"})
    assert r.status_code == 400
    r = client.put("/api/policies/records", json={"ids": ["not-a-number"], "action": "archive"})
    assert r.status_code == 200
    assert r.json["count"] == 0


def test_bulk_update_via_put(client):
    cat = _category(client)
    x = _record(client, cat, "x", version="1")
    r = client.put("/api/policies/records", json={"ids": [x], "action": "update", "data": {"version": "2"}})
    assert r.status_code == 200 and r.json["count"] == 1

    r = client.get(f"/api/policies/records/{x}/versions")
    assert [v["version_number"] for v in r.json] == ["1"]


def test_delete_archives_unless_permanent(client):
    cat = _category(client)
    x = _record(client, cat, "x")
    y = _record(client, cat, "y")

    r = client.delete("/api/policies/records", json={"ids": [x]})
    assert r.status_code == 200
    assert r.json == {"count": 1, "permanent": False}
    assert client.get(f"/api/policies/records/{x}").json["archived"] is True

    r = client.delete("/api/policies/records", json={"ids": [y], "permanent": True})
    assert r.json == {"count": 1, "permanent": True}
    assert client.get(f"/api/policies/records/{y}").status_code == 404


def test_delete_needs_delete_capability(viewer_client):
    r = viewer_client.delete("/api/policies/records", json={"ids": [1]})
    assert r.status_code == 403


def test_patch_category_actions(client):
    source = _category(client, title="Source")
    target = _category(client, title="Target")
    _record(client, target, "T")
    _record(client, source, "A")
    _record(client, source, "B")

    r = client.patch(
        "/api/policies/records",
        json={"action": "move-to-category", "categoryId": source, "newCategoryId": target},
    )
    assert r.status_code == 200
    assert r.json["count"] == 2
    listed = client.get(f"/api/policies/records?categoryId={target}").json
    assert [(x["title"], x["order"]) for x in listed] == [("T", 1), ("A", 2), ("B", 3)]

    r = client.patch("/api/policies/records", json={"action": "reorder-category", "categoryId": target})
    assert r.status_code == 200 and r.json["count"] == 3

    r = client.patch("/api/policies/records", json={"action": "sideways", "categoryId": target})
    assert r.status_code == 400
    assert r.json["kind"] == "InvalidAction"


def test_position_transfer_and_toggle(client):
    cat = _category(client, title="Main")
    other = _category(client, title="Other")
    a = _record(client, cat, "A")
    b = _record(client, cat, "B")

    r = client.post(f"/api/policies/records/{b}/position", json={"position": 0})
    assert r.status_code == 200 and r.json["changed"] == 2
    r = client.post(f"/api/policies/records/{b}/position", json={"position": 7})
    assert r.status_code == 400
    assert r.json["kind"] == "InvalidPosition"

    r = client.post("/api/policies/records/transfer", json={"ids": [a], "targetCategoryId": other})
    assert r.status_code == 200 and r.json["moved"] == 1

    r = client.post(f"/api/policies/records/{a}/toggle-highlight")
    assert r.status_code == 200 and r.json["highlighted"] is True
    r = client.post(f"/api/policies/records/{a}/approve")
    assert r.status_code == 200 and r.json["approved"] is True
    assert client.post(f"/api/policies/records/{a}/frobnicate").status_code == 404


def test_versions_and_reviews_endpoints(client):
    cat = _category(client, family="risk_assessments", title="Workshop")
    rec = _record(client, cat, "Lathe", family="risk_assessments")

    r = client.post(f"/api/risk_assessments/records/{rec}/versions", json={"notes": "First issue"})
    assert r.status_code == 201
    assert r.json["version_number"] == "1"
    r = client.post(f"/api/risk_assessments/records/{rec}/versions", json={})
    assert r.json["version_number"] == "2"
    version_id = r.json["id"]

    listed = client.get(f"/api/risk_assessments/records/{rec}/versions").json
    assert [v["version_number"] for v in listed] == ["2", "1"]
    assert client.delete(f"/api/risk_assessments/versions/{version_id}").json == {"deleted": version_id}

    r = client.post(
        f"/api/risk_assessments/records/{rec}/reviews",
        json={"reviewer_name": "Kim", "review_date": "2025-02-01"},
    )
    assert r.status_code == 201
    review_id = r.json["id"]
    assert client.get(f"/api/risk_assessments/records/{rec}/reviews").json[0]["reviewer_name"] == "Kim"
    assert client.delete(f"/api/risk_assessments/reviews/{review_id}").status_code == 200

    # Snapshot families take the label and issue date from the caller
    pcat = _category(client, family="procedures")
    prec = _record(client, pcat, "Isolation", family="procedures")
    r = client.post(f"/api/procedures/records/{prec}/versions", json={})
    assert r.status_code == 400
    assert r.json["kind"] == "InvalidArgument"
    r = client.post(f"/api/procedures/records/{prec}/versions", json={"version": "B", "issue_date": "2025-04-01"})
    assert r.status_code == 201
    assert r.json["version_number"] == "B"
    record = client.get(f"/api/procedures/records/{prec}").json
    assert (record["version"], record["issue_date"]) == ("B", "2025-04-01")


def test_document_upload_and_download(client):
    cat = _category(client)
    rec = _record(client, cat, "Quality Manual")

    r = client.post(
        f"/api/policies/records/{rec}/document",
        data={"file": (io.BytesIO(b"hello world"), "manual.pdf")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201
    assert r.json["document_key"].startswith(f"policies/{rec}/")

    r = client.get(f"/api/policies/records/{rec}/document")
    assert r.status_code == 200
    assert r.data == b"hello world"

    other = _record(client, cat, "No document")
    assert client.get(f"/api/policies/records/{other}/document").status_code == 404


def test_category_endpoints_and_audit(client):
    cat = _category(client, title="Doomed")
    _record(client, cat, "A")
    _record(client, cat, "B")

    r = client.post(f"/api/policies/categories/{cat}/archive")
    assert r.status_code == 200
    assert r.json["records"] == 2 and r.json["category"]["archived"] is True
    assert client.get("/api/policies/categories").json == []
    assert len(client.get("/api/policies/categories?archived=1").json) == 1

    r = client.post(f"/api/policies/categories/{cat}/unarchive")
    assert r.json["category"]["archived"] is False

    r = client.put(f"/api/policies/categories/{cat}", json={"title": "Renamed"})
    assert r.json["title"] == "Renamed"

    r = client.delete(f"/api/policies/categories/{cat}")
    assert r.status_code == 200 and r.json == {"records": 2}
    assert client.delete(f"/api/policies/categories/{cat}").status_code == 404

    with session_scope(client.application) as s:
        actions = s.execute(select(AuditEvent.action).order_by(AuditEvent.id.asc())).scalars().all()
        request_ids = s.execute(select(AuditEvent.request_id)).scalars().all()
    assert "policies.category_archive" in actions
    assert "policies.category_unarchive" in actions
    assert actions[-1] == "policies.category_delete"
    assert all(request_ids)


def test_position_routes_accept_numeric_strings(client):
    cat = _category(client, title="Main")
    a = _record(client, cat, "A")
    b = _record(client, cat, "B")

    r = client.post(f"/api/policies/records/{b}/position", json={"position": "0"})
    assert r.status_code == 200 and r.json["changed"] == 2
    r = client.post(f"/api/policies/records/{a}/position", json={"newPosition": " 1 "})
    assert r.status_code == 200
    listed = client.get(f"/api/policies/records?categoryId={cat}").json
    assert [x["title"] for x in listed] == ["B", "A"]

    for bad in ("first", "1.5", "-1", None):
        r = client.post(f"/api/policies/records/{a}/position", json={"position": bad})
        assert r.status_code == 400, bad
        assert r.json["kind"] == "InvalidPosition"

    other = _category(client, title="Other")
    r = client.post(f"/api/policies/categories/{other}/position", json={"position": "0"})
    assert r.status_code == 200
    assert [c["title"] for c in client.get("/api/policies/categories").json] == ["Other", "Main"]


def test_reorder_records_in_category(client):
    cat = _category(client, family="risk_assessments", title="Workshop")
    other = _category(client, family="risk_assessments", title="Yard")
    a = _record(client, cat, "A", family="risk_assessments")
    b = _record(client, cat, "B", family="risk_assessments")
    c = _record(client, cat, "C", family="risk_assessments")
    stray = _record(client, other, "Stray", family="risk_assessments")

    r = client.post(f"/api/risk_assessments/categories/{cat}/reorder", json={"ids": [c, a, b]})
    assert r.status_code == 200 and r.json["changed"] == 3
    listed = client.get(f"/api/risk_assessments/records?categoryId={cat}").json
    assert [(x["title"], x["order"]) for x in listed] == [("C", 1), ("A", 2), ("B", 3)]

    r = client.post(f"/api/risk_assessments/categories/{cat}/reorder", json={"ids": [a, stray]})
    assert r.status_code == 400
    assert r.json["kind"] == "InvalidArgument"
    r = client.post(f"/api/risk_assessments/categories/{cat}/reorder", json={"ids": [a, "x"]})
    assert r.status_code == 400
    assert client.post("/api/risk_assessments/categories/9999/reorder", json={"ids": [a]}).status_code == 404
