"""
Entity-family descriptors.

Every document family (policies, procedures, risk assessments, ...) shares the
same lifecycle engine. A family only declares its four tables and the handful
of behaviours that genuinely differ between families.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SNAPSHOT = "snapshot"  # ledger logs the previous label whenever `version` changes
INCREMENT = "increment"  # ledger entries are added on demand as previous + 1

VERSION_STRATEGIES = (SNAPSHOT, INCREMENT)

# Fields the core owns; never accepted from an "update" payload.
PROTECTED_FIELDS = frozenset(
    {
        "id",
        "category_id",
        "order",
        "archived",
        "highlighted",
        "approved",
        "document_key",
        "created_by_user_id",
        "updated_by_user_id",
        "created_at",
        "updated_at",
    }
)


@dataclass(frozen=True)
class EntityFamily:
    key: str  # url/permission prefix, e.g. "policies"
    label: str  # human singular, e.g. "Policy"
    record_model: Any
    category_model: Any
    version_model: Any
    review_model: Any

    version_strategy: str = SNAPSHOT
    # Ledger listing key (always descending)
    version_order_by: str = "created_at"
    # Fields copied into a ledger snapshot
    tracked_fields: tuple[str, ...] = ("title", "version")
    # Fields an update payload may set, besides title/version
    editable_fields: tuple[str, ...] = ()
    date_fields: tuple[str, ...] = ()
    # Lifecycle actions that also stamp updated_by_user_id
    stamp_actor_on: frozenset[str] = field(
        default_factory=lambda: frozenset({"approve", "unapprove", "update"})
    )

    def __post_init__(self) -> None:
        if self.version_strategy not in VERSION_STRATEGIES:
            raise ValueError(f"Unknown version strategy: {self.version_strategy!r}")
        bad = PROTECTED_FIELDS.intersection(self.editable_fields)
        if bad:
            raise ValueError(f"{self.key}: fields {sorted(bad)} cannot be editable")

    @property
    def updatable_fields(self) -> tuple[str, ...]:
        return ("title", "version") + tuple(f for f in self.editable_fields if f not in ("title", "version"))

    def stamps_actor(self, action: str) -> bool:
        return action in self.stamp_actor_on

    def audit_action(self, verb: str) -> str:
        return f"{self.key}.{verb}"


_REGISTRY: dict[str, EntityFamily] = {}


def register(family: EntityFamily) -> EntityFamily:
    existing = _REGISTRY.get(family.key)
    if existing is not None and existing is not family:
        raise ValueError(f"Entity family {family.key!r} already registered")
    _REGISTRY[family.key] = family
    return family


def get_family(key: str) -> EntityFamily | None:
    return _REGISTRY.get(key)


def all_families() -> list[EntityFamily]:
    return list(_REGISTRY.values())
