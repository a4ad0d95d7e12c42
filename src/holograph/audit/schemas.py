"""Audit event types and data models."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field


class AuditEventType(str, Enum):
    """Terminal outcomes of a mutation."""

    MUTATION_COMMITTED = "MUTATION_COMMITTED"
    MUTATION_REJECTED = "MUTATION_REJECTED"
    MUTATION_ROLLED_BACK = "MUTATION_ROLLED_BACK"


class AuditEvent(BaseModel):
    """A single immutable audit log entry."""

    model_config = {"frozen": True}

    timestamp: float = Field(
        default_factory=time.time,
        description="Unix epoch when the mutation finished.",
    )
    event_type: AuditEventType = Field(
        description="How the mutation ended.",
    )
    mutation_id: str = Field(
        description="Identifier of the mutation run.",
    )
    mutation: str = Field(
        description="Operation name, e.g. 'assign_pilot'.",
    )
    store_version: int | None = Field(
        default=None,
        description="Store version produced by the commit; orders commits "
        "even when lines are appended out of order.",
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Arguments, affected ids or error code.",
    )
