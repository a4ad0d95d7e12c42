"""Mutations domain — invariant checks and the mutation coordinator.

Exports are loaded lazily: the store imports the invariant checker, and
the coordinator imports the store.
"""

from __future__ import annotations

from importlib import import_module

__all__ = [
    "MutationCoordinator",
    "MutationRecord",
    "MutationState",
    "Violation",
    "ViolationCode",
    "check_store_consistency",
]


_EXPORT_TO_MODULE = {
    "MutationCoordinator": "holograph.mutations.coordinator",
    "MutationRecord": "holograph.mutations.coordinator",
    "MutationState": "holograph.mutations.coordinator",
    "Violation": "holograph.mutations.invariants",
    "ViolationCode": "holograph.mutations.invariants",
    "check_store_consistency": "holograph.mutations.invariants",
}


def __getattr__(name: str):
    module_name = _EXPORT_TO_MODULE.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(module_name)
    return getattr(module, name)
