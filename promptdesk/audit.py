"""Append-only execution log for generation attempts.

Every generation attempt leaves exactly one LogEntry behind. Entries are
never rewritten or removed: the JSONL store appends the entry once, and a
later soft delete appends a lifecycle event that readers fold into the
entry's state.

Each entry carries a ``hash`` computed over the attempt's inputs (tenant,
model, prompt, variables) so repeated identical attempts can be
recognized downstream.
"""

import asyncio
import hashlib
import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from promptdesk.entities import LifecycleState, LogEntry

_logger = logging.getLogger("promptdesk")


def hash_content(content: str) -> str:
    """Hash content using SHA-256.

    Args:
        content: The raw text to hash.

    Returns:
        A hex-encoded SHA-256 digest.
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def attempt_hash(
    *,
    organization_id: str,
    model_id: Optional[str],
    prompt_id: Optional[str],
    variables: Dict[str, Any],
) -> str:
    """Compute the dedup key for a generation attempt."""
    canonical = json.dumps(
        {
            "organization_id": organization_id,
            "model_id": model_id,
            "prompt_id": prompt_id,
            "variables": variables,
        },
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hash_content(canonical)


class LogNotFound(Exception):
    """Raised when a log entry does not exist in the caller's tenant."""

    def __init__(self, entry_id: str) -> None:
        self.entry_id = entry_id
        super().__init__("Log entry '{}' not found.".format(entry_id))


class InMemoryLogStore:
    """Log sink that keeps entries in process memory."""

    def __init__(self) -> None:
        self._entries: Dict[str, LogEntry] = {}
        self._order: List[str] = []
        self._lock = threading.Lock()

    async def append(self, entry: LogEntry) -> str:
        with self._lock:
            self._entries[entry.id] = entry
            self._order.append(entry.id)
        return entry.id

    def get(self, entry_id: str, tenant: str) -> LogEntry:
        entry = self._entries.get(entry_id)
        if entry is None or entry.organization_id != tenant:
            raise LogNotFound(entry_id)
        return entry

    def list_entries(
        self, tenant: Optional[str] = None, include_deleted: bool = False
    ) -> List[LogEntry]:
        entries = [self._entries[entry_id] for entry_id in self._order]
        return _filter(entries, tenant, include_deleted)

    def soft_delete(self, entry_id: str, tenant: str) -> LogEntry:
        with self._lock:
            entry = self.get(entry_id, tenant).with_state(LifecycleState.DELETED)
            self._entries[entry_id] = entry
            return entry


class JsonlLogStore:
    """Log sink persisting entries as JSONL (one JSON object per line).

    Thread-safe. Lifecycle changes are appended as
    ``{"event": "lifecycle", ...}`` records; nothing is overwritten.
    Appends run in a worker thread so the event loop never blocks on disk.
    Reads scan and fold the whole file, so lookups are linear in its size.
    """

    def __init__(self, log_path: str) -> None:
        self._log_path = Path(log_path)
        self._lock = threading.Lock()

        os.makedirs(self._log_path.parent, exist_ok=True)

    async def append(self, entry: LogEntry) -> str:
        """Persist a new entry and return its id."""
        await asyncio.to_thread(
            self._write, {"event": "entry", "entry": entry.to_dict()}
        )
        return entry.id

    def get(self, entry_id: str, tenant: str) -> LogEntry:
        for entry in self.list_entries(tenant, include_deleted=True):
            if entry.id == entry_id:
                return entry
        raise LogNotFound(entry_id)

    def list_entries(
        self, tenant: Optional[str] = None, include_deleted: bool = False
    ) -> List[LogEntry]:
        """Read all entries, folding lifecycle events into their state."""
        entries: Dict[str, LogEntry] = {}
        order: List[str] = []
        for record in self._read_records():
            if record.get("event") == "entry":
                try:
                    entry = LogEntry.from_dict(record["entry"])
                except (KeyError, TypeError, ValueError) as e:
                    _logger.warning("Skipping corrupt log entry: %s", e)
                    continue
                entries[entry.id] = entry
                order.append(entry.id)
            elif record.get("event") == "lifecycle":
                entry_id = record.get("id")
                if entry_id in entries:
                    entries[entry_id] = entries[entry_id].with_state(
                        LifecycleState(record["state"])
                    )
        return _filter([entries[entry_id] for entry_id in order], tenant, include_deleted)

    def soft_delete(self, entry_id: str, tenant: str) -> LogEntry:
        """Mark an entry deleted by appending a lifecycle event."""
        entry = self.get(entry_id, tenant)
        self._write(
            {
                "event": "lifecycle",
                "id": entry_id,
                "state": LifecycleState.DELETED.value,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )
        return entry.with_state(LifecycleState.DELETED)

    def _write(self, record: Dict[str, Any]) -> None:
        with self._lock:
            with open(self._log_path, "a") as f:
                f.write(json.dumps(record, sort_keys=True, default=str) + "\n")

    def _read_records(self) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        if not self._log_path.exists():
            return records

        with open(self._log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError as e:
                    _logger.warning("Skipping corrupt log record: %s", e)
                    continue
        return records


def _filter(
    entries: List[LogEntry], tenant: Optional[str], include_deleted: bool
) -> List[LogEntry]:
    return [
        entry
        for entry in entries
        if (tenant is None or entry.organization_id == tenant)
        and (include_deleted or entry.state == LifecycleState.ACTIVE)
    ]
