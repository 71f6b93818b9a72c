import pytest

from app.ims import create_app
from app.ims.config import check_production_config


def test_health_ok(app):
    client = app.test_client()
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert set(r.json["families"]) == {"policies", "procedures", "risk_assessments"}

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_session_endpoint_issues_csrf_token(app, client):
    anon = app.test_client().get("/api/session")
    assert anon.status_code == 200
    assert anon.json["user"] is None
    assert anon.json["csrf_token"]

    r = client.get("/api/session")
    assert r.json["user"]["email"] == "admin@example.com"
    assert r.json["csrf_token"] == "test-csrf"


def test_stale_session_user_is_dropped(app):
    client = app.test_client()
    with client.session_transaction() as sess:
        sess["user_id"] = 424242
    r = client.get("/api/policies/records")
    assert r.status_code == 401
    with client.session_transaction() as sess:
        assert "user_id" not in sess


def test_production_guardrails(tmp_path, monkeypatch):
    with pytest.raises(RuntimeError):
        check_production_config({"ENV": "production", "DATABASE_URL": "", "SECRET_KEY": "x"})
    with pytest.raises(RuntimeError):
        check_production_config({"ENV": "prod", "DATABASE_URL": "postgresql://db/ims", "SECRET_KEY": "change-me"})
    check_production_config({"ENV": "production", "DATABASE_URL": "postgresql://db/ims", "SECRET_KEY": "s3cr3t"})
    check_production_config({"ENV": "development", "DATABASE_URL": "sqlite:///x.db", "SECRET_KEY": "change-me"})

    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "s3cr3t")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()
