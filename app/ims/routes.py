from flask import Blueprint, jsonify

from app.ims.auth import current_actor
from app.ims.core.family import all_families
from app.ims.security import ensure_csrf_token

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True, "families": [f.key for f in all_families()]}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/api/session")
def session_info():
    """Who am I, plus the CSRF token API clients echo back in X-CSRF-Token."""
    user = current_actor()
    return jsonify(
        {
            "user": {"id": user.id, "email": user.email, "name": user.name} if user else None,
            "csrf_token": ensure_csrf_token(),
        }
    )
