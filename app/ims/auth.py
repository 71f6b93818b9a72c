from __future__ import annotations

import uuid

from flask import current_app, g, request, session

from app.ims.db import db_session
from app.ims.models import User

# Authentication itself is handled upstream (SSO / reverse proxy / login app);
# this app only trusts the user id it finds in the signed session cookie.
SESSION_USER_KEY = "user_id"


def load_current_user() -> None:
    """
    Resolves g.current_user once per request from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get(SESSION_USER_KEY)
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except (TypeError, ValueError):
        user = None
    if not user or not user.is_active:
        session.pop(SESSION_USER_KEY, None)
        g.current_user = None
        current_app.logger.info("Dropped stale session user_id=%s request_id=%s", user_id, g.request_id)
        return
    g.current_user = user


def current_actor() -> User | None:
    """The acting user for this request, or None."""
    return getattr(g, "current_user", None)
