"""Async JSONL audit log of mutation outcomes."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from pathlib import Path

from pydantic import ValidationError

from holograph.audit.schemas import AuditEvent
from holograph.audit.schemas import AuditEventType
from holograph.config import AuditConfig

logger = logging.getLogger(__name__)


class AuditLogger:
    """Append-only JSONL audit log.

    File I/O runs in ``asyncio.to_thread`` so the event loop never blocks;
    an ``asyncio.Lock`` keeps lines from interleaving.  Events are written
    after the store lock is released, so concurrent commits may land out of
    order in the file; committed events carry ``store_version`` to restore it.
    """

    def __init__(self, config: AuditConfig) -> None:
        self.config = config
        self._lock = asyncio.Lock()

    async def log(self, event: AuditEvent) -> None:
        """Append *event* as one JSON line."""
        if not self.config.enabled:
            return
        line = event.model_dump_json() + "\n"
        async with self._lock:
            await asyncio.to_thread(partial(self._append, self.config.file_path, line))

    @staticmethod
    def _append(path: str, line: str) -> None:
        with open(path, "a", encoding="utf-8") as fh:
            fh.write(line)

    async def read_events(
        self,
        *,
        event_type: AuditEventType | None = None,
        mutation: str | None = None,
        mutation_id: str | None = None,
    ) -> list[AuditEvent]:
        """Read events back, optionally filtered by outcome, operation or run.

        Committed events come back in commit order (``store_version``);
        other events keep their position in the file.
        """
        path = Path(self.config.file_path)
        if not path.exists():
            return []

        async with self._lock:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        events: list[AuditEvent] = []
        for line_no, line in enumerate(raw.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                evt = AuditEvent.model_validate_json(line)
            except ValidationError:
                logger.warning("Skipping malformed audit line %d in %s", line_no, path)
                continue
            if event_type is not None and evt.event_type != event_type:
                continue
            if mutation is not None and evt.mutation != mutation:
                continue
            if mutation_id is not None and evt.mutation_id != mutation_id:
                continue
            events.append(evt)
        return _in_commit_order(events)


def _in_commit_order(events: list[AuditEvent]) -> list[AuditEvent]:
    """Reorder versioned events among their own slots; leave the rest in place."""
    slots = [i for i, evt in enumerate(events) if evt.store_version is not None]
    ordered = sorted((events[i] for i in slots), key=lambda evt: evt.store_version)
    result = list(events)
    for slot, evt in zip(slots, ordered):
        result[slot] = evt
    return result
