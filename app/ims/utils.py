from __future__ import annotations

import hashlib
import io


def file_digest_and_bytes(file_bytes: bytes) -> tuple[str, int]:
    h = hashlib.sha256()
    h.update(file_bytes)
    return (h.hexdigest(), len(file_bytes))


def to_download_fileobj(file_bytes: bytes) -> io.BytesIO:
    bio = io.BytesIO(file_bytes)
    bio.seek(0)
    return bio
