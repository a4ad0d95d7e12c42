"""Graph domain — batch loading, relationship resolution and query execution.

Exports are loaded lazily so importing the loader does not pull in the
mutation coordinator the executor depends on.
"""

from __future__ import annotations

from importlib import import_module

__all__ = [
    "BatchLoader",
    "ExecutionResult",
    "FieldError",
    "QueryExecutor",
    "RELATIONSHIPS",
    "Relationship",
    "RelationshipKind",
    "RelationshipResolver",
    "RequestContext",
]


_EXPORT_TO_MODULE = {
    "BatchLoader": "holograph.graph.loader",
    "RequestContext": "holograph.graph.context",
    "RELATIONSHIPS": "holograph.graph.resolver",
    "Relationship": "holograph.graph.resolver",
    "RelationshipKind": "holograph.graph.resolver",
    "RelationshipResolver": "holograph.graph.resolver",
    "ExecutionResult": "holograph.graph.executor",
    "FieldError": "holograph.graph.executor",
    "QueryExecutor": "holograph.graph.executor",
}


def __getattr__(name: str):
    module_name = _EXPORT_TO_MODULE.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(module_name)
    return getattr(module, name)
