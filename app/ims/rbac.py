from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, jsonify

from app.ims.models import User

CAPABILITIES = ("read", "write", "delete")


def permission_key(family_key: str, action: str) -> str:
    return f"{family_key}.{action}"


def user_has_permission(user: User | None, key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == key:
                return True
    return False


def has_capability(actor: User | None, family_key: str, action: str) -> bool:
    """Does ``actor`` hold ``<family>.<read|write|delete>``?"""
    if action not in CAPABILITIES:
        raise ValueError(f"Unknown capability: {action!r}")
    return user_has_permission(actor, permission_key(family_key, action))


def require_capability(action: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Guard a family-scoped API view. The view must take ``family_key`` as a keyword argument.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return jsonify({"error": "Authentication required.", "kind": "Unauthorized"}), 401
            family_key = kwargs.get("family_key", "")
            if not has_capability(user, family_key, action):
                g.missing_permission = permission_key(family_key, action)
                return jsonify({"error": "Forbidden.", "missing_permission": g.missing_permission}), 403
            return fn(*args, **kwargs)

        return wrapped

    return decorator
