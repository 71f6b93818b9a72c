from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.ims.db import build_engine, build_sessionmaker


@contextmanager
def script_session(db_url: str) -> Generator[Session, None, None]:
    """
    Session for one-off scripts that run without the Flask app (release, seeding).
    Commits on success; the engine is disposed either way.
    """
    engine = build_engine(db_url)
    s: Session = build_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
