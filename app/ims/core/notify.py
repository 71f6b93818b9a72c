"""
Best-effort change notifications (cache invalidation hooks).

Listeners run after the owning transaction commits. A failing listener is
logged and skipped; it never fails the core operation that triggered it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

logger = logging.getLogger(__name__)

RECORD = "record"
CATEGORY = "category"

Listener = Callable[[str, str, Any], None]

_listeners: list[Listener] = []


def subscribe(listener: Listener) -> Listener:
    """Register ``listener(family_key, scope, id)``. Usable as a decorator."""
    if listener not in _listeners:
        _listeners.append(listener)
    return listener


def unsubscribe(listener: Listener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def notify_changed(family_key: str, scope: str, ident: Any) -> None:
    for listener in list(_listeners):
        try:
            listener(family_key, scope, ident)
        except Exception:
            logger.exception("Change listener %r failed (family=%s scope=%s id=%s)", listener, family_key, scope, ident)


def notify_all(family_key: str, changes: Iterable[tuple[str, Any]]) -> None:
    seen: set[tuple[str, Any]] = set()
    for scope, ident in changes:
        if (scope, ident) in seen:
            continue
        seen.add((scope, ident))
        notify_changed(family_key, scope, ident)
