import pytest
from sqlalchemy import select

from app.ims import create_app
from app.ims.core import categories, records
from app.ims.core.family import all_families, get_family
from app.ims.db import session_scope
from app.ims.models import Base, Permission, Role, User
from app.ims.rbac import CAPABILITIES, permission_key

CSRF_TOKEN = "test-csrf"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app({"TESTING": True})
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        perms = [
            Permission(key=permission_key(f.key, action), name=f"{f.label}: {action}")
            for f in all_families()
            for action in CAPABILITIES
        ]
        admin = Role(key="admin", name="Administrator")
        admin.permissions.extend(perms)
        reader = Role(key="reader", name="Read only")
        reader.permissions.extend(p for p in perms if p.key.endswith(".read"))
        u = User(email="admin@example.com", name="Admin", is_active=True)
        u.roles.append(admin)
        v = User(email="viewer@example.com", name="Viewer", is_active=True)
        v.roles.append(reader)
        s.add_all(perms + [admin, reader, u, v])

    yield app
    engine.dispose()


@pytest.fixture()
def s(app):
    session = app.extensions["sqlalchemy_sessionmaker"]()
    yield session
    session.close()


@pytest.fixture()
def actor(s):
    return s.execute(select(User).where(User.email == "admin@example.com")).scalar_one()


@pytest.fixture()
def policies(app):
    return get_family("policies")


@pytest.fixture()
def procedures(app):
    return get_family("procedures")


@pytest.fixture()
def risk_assessments(app):
    return get_family("risk_assessments")


@pytest.fixture()
def make_category(s, actor):
    def _make(family, title="Safety"):
        return categories.create_category(s, family, actor, title).unwrap()

    return _make


@pytest.fixture()
def make_record(s, actor):
    def _make(family, category_id, title, **fields):
        return records.create_record(s, family, actor, category_id, {"title": title, **fields}).unwrap()

    return _make


@pytest.fixture()
def active_orders(s):
    """{title: order} of the active records in a category, read straight from the database."""

    def _orders(family, category_id):
        Record = family.record_model
        rows = s.execute(
            select(Record.title, Record.order).where(Record.category_id == category_id, Record.archived.is_(False))
        ).all()
        return {title: order for title, order in rows}

    return _orders


def login(app, email):
    client = app.test_client()
    with session_scope(app) as s:
        user_id = s.execute(select(User.id).where(User.email == email)).scalar_one()
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["csrf_token"] = CSRF_TOKEN
    client.environ_base["HTTP_X_CSRF_TOKEN"] = CSRF_TOKEN
    return client


@pytest.fixture()
def client(app):
    return login(app, "admin@example.com")


@pytest.fixture()
def viewer_client(app):
    return login(app, "viewer@example.com")
