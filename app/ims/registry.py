"""
Loads every entity family so its descriptor registers with the core.
"""

from __future__ import annotations

import importlib

from app.ims.core.family import EntityFamily, all_families

FAMILY_MODULES = (
    "app.ims.modules.policies.family",
    "app.ims.modules.procedures.family",
    "app.ims.modules.risk_assessments.family",
)


def load_families() -> list[EntityFamily]:
    for name in FAMILY_MODULES:
        importlib.import_module(name)
    return all_families()
