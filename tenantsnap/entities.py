# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tenant-scoped entity kinds and the foreign keys between them.

The restore apply order is derived from these foreign keys rather than
hard-coded, so adding a kind only means declaring what it references.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class EntityKind:
    """A collection of tenant-owned records stored in one table."""

    name: str  # collection key in the export envelope
    table: str  # table in the live store
    foreign_keys: Dict[str, str] = field(default_factory=dict)  # column -> referenced kind


ENTITY_KINDS: Tuple[EntityKind, ...] = (
    EntityKind("patients", "patients"),
    EntityKind("templates", "clinical_templates"),
    EntityKind(
        "consultations",
        "consultations",
        {"patientId": "patients", "templateId": "templates"},
    ),
    EntityKind("prescriptions", "prescriptions", {"consultationId": "consultations"}),
    EntityKind("appointments", "appointments", {"patientId": "patients"}),
)

_BY_NAME: Dict[str, EntityKind] = {kind.name: kind for kind in ENTITY_KINDS}


def get_entity_kind(name: str) -> EntityKind:
    try:
        return _BY_NAME[name]
    except KeyError:
        raise KeyError(f"Unknown entity kind: {name}") from None


def dependency_order(kinds: Tuple[EntityKind, ...] = ENTITY_KINDS) -> List[str]:
    """
    Order entity kinds so every kind comes after the kinds it references.

    Kahn's algorithm; among kinds that are ready at the same time the
    alphabetically first wins, so the order is stable across runs.

    Raises:
        ValueError: On a reference to an undeclared kind or a cycle
    """
    names = {kind.name for kind in kinds}
    depends_on: Dict[str, set] = {}
    for kind in kinds:
        targets = {t for t in kind.foreign_keys.values() if t != kind.name}
        unknown = targets - names
        if unknown:
            raise ValueError(f"{kind.name} references undeclared kinds: {sorted(unknown)}")
        depends_on[kind.name] = targets

    order: List[str] = []
    ready = sorted(name for name, deps in depends_on.items() if not deps)
    while ready:
        current = ready.pop(0)
        order.append(current)
        for name, deps in depends_on.items():
            if current in deps:
                deps.discard(current)
                if not deps and name not in order and name not in ready:
                    ready.append(name)
        ready.sort()

    if len(order) != len(depends_on):
        cyclic = sorted(set(depends_on) - set(order))
        raise ValueError(f"Foreign keys form a cycle between: {cyclic}")
    return order


APPLY_ORDER: List[str] = dependency_order()
