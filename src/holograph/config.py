"""Settings for batch loading, mutation coordination and the audit log.

Each subsystem takes one frozen dataclass at construction.  Values are
checked when the dataclass is built, so a bad lock timeout or batch size
fails at startup rather than on the first request.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LoaderConfig:
    """Batching limits for request-scoped batch loaders."""

    # None means one batch per tick regardless of key count
    max_batch_size: int | None = None

    def __post_init__(self) -> None:
        if self.max_batch_size is not None and self.max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")


@dataclass(frozen=True)
class MutationConfig:
    """Store write lock and rollback checking for the mutation coordinator."""

    # a writer waiting longer than this gets ConflictRetryable
    lock_timeout_seconds: float = 5.0
    verify_after_rollback: bool = True
    history_size: int = 100

    def __post_init__(self) -> None:
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be > 0")
        if self.history_size < 1:
            raise ValueError("history_size must be >= 1")


@dataclass(frozen=True)
class AuditConfig:
    """Location of the JSONL mutation audit log."""

    file_path: str = "holograph_audit.jsonl"
    enabled: bool = True
