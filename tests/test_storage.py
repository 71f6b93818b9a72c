import pytest

from app.ims.core.validation import parse_date, parse_date_fields
from app.ims.storage import LocalStorage, S3Storage, StorageError, storage_from_config


def test_local_attach_and_resolve(tmp_path):
    store = LocalStorage(root=tmp_path)
    key = store.attach("policies/7", "../../etc/passwd", b"data", "text/plain")
    assert key.startswith("policies/7/")
    assert ".." not in key
    assert store.resolve(key) == b"data"


def test_local_rejects_missing_and_escaping_keys(tmp_path):
    store = LocalStorage(root=tmp_path / "root")
    with pytest.raises(StorageError):
        store.resolve("policies/1/missing.pdf")
    with pytest.raises(StorageError):
        store.resolve("")
    with pytest.raises(StorageError):
        store.put_bytes("../outside.txt", b"x")


def test_storage_from_config(tmp_path):
    local = storage_from_config({"STORAGE_BACKEND": "local", "STORAGE_ROOT": str(tmp_path)})
    assert isinstance(local, LocalStorage)
    assert local.root == tmp_path

    s3 = storage_from_config(
        {"STORAGE_BACKEND": "S3", "S3_BUCKET": "ims-docs", "S3_ENDPOINT": "nyc3.example.com"}
    )
    assert isinstance(s3, S3Storage)
    assert s3.bucket == "ims-docs"
    assert s3.region == "nyc3"


def test_date_parsing():
    assert parse_date("2025-03-04").isoformat() == "2025-03-04"
    assert parse_date("2025-03-04T10:00:00Z").isoformat() == "2025-03-04"
    assert parse_date("") is None
    with pytest.raises(ValueError):
        parse_date("04/03/2025")

    values, errors = parse_date_fields({"review_date": "bad", "other": "x"}, ("review_date", "next_review_date"))
    assert values == {}
    assert errors == ["Invalid date for review_date: 'bad'."]
