"""Error types raised by the resolution and mutation layers.

Every error carries a stable machine-readable ``code``, a human-readable
``message`` and a ``details`` dict:

- ``NotFound``: a referenced id is absent (field-scoped on reads)
- ``ValidationFailed``: an invariant would be violated; carries the
  violation code and the full violation list
- ``ConflictRetryable``: a concurrent mutation holds the store; retry
- ``StoreUnavailable``: the backend cannot serve requests; fatal
- ``RollbackVerificationError``: the state restored by a rollback
  failed the invariant re-check
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from typing import Any

if TYPE_CHECKING:
    from holograph.mutations.invariants import Violation


class HolographError(Exception):
    """Base exception for all holograph errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    default_code = "HOLOGRAPH_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}


class NotFound(HolographError):
    """A referenced entity does not exist."""

    default_code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(
            f"{entity_type} {entity_id!r} not found",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationFailed(HolographError):
    """A mutation was rejected before touching the store."""

    default_code = "VALIDATION_FAILED"

    def __init__(self, violations: list[Violation]) -> None:
        if not violations:
            raise ValueError("ValidationFailed requires at least one violation")
        first = violations[0]
        super().__init__(
            "; ".join(v.message for v in violations),
            details={
                "violation_code": first.code.value,
                "violations": [v.as_dict() for v in violations],
            },
        )
        self.violations = list(violations)
        self.violation_code = first.code


class ConflictRetryable(HolographError):
    """Another mutation is applying to the store; the caller may retry."""

    default_code = "CONFLICT_RETRYABLE"


class StoreUnavailable(HolographError):
    """The storage backend cannot serve the request."""

    default_code = "STORE_UNAVAILABLE"


class RollbackVerificationError(HolographError):
    """The invariant re-check after a rollback reported violations."""

    default_code = "ROLLBACK_INCONSISTENT"

    def __init__(self, violations: list[Violation]) -> None:
        super().__init__(
            f"store inconsistent after rollback: {len(violations)} violation(s)",
            details={"violations": [v.as_dict() for v in violations]},
        )
        self.violations = list(violations)
