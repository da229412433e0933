"""Snapshot store: capture and restore the prior state of one vault note.

A snapshot is taken immediately before a tool mutates a note and records
either the note's content or the fact that it did not exist. Restoring an
"absent" snapshot deletes the note again. Records are small JSON files in
the snapshot directory, one per snapshot id.
"""
from __future__ import annotations

import asyncio
import enum
import json
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Union

from quill.engine.errors import SnapshotNotFoundError
from quill.shared.services.durable_write import atomic_write_json, durable_unlink
from quill.shared.services.vault import (
    ResourceStore,
    normalize_vault_path,
    parent_path,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
# Content of a legacy plain-text record for a note that did not exist.
ABSENT_MARKER = "__FILE_NOT_EXISTED__"

_SNAPSHOT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class _Absent(enum.Enum):
    ABSENT = "absent"

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent.ABSENT

PriorContent = Union[str, _Absent]


@dataclass(frozen=True)
class Snapshot:
    snapshot_id: str
    resource_path: str
    prior_content: PriorContent
    created_at: str = ""

    @property
    def existed(self) -> bool:
        return self.prior_content is not ABSENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "snapshot_id": self.snapshot_id,
            "resource_path": self.resource_path,
            "existed": self.existed,
            "content": self.prior_content if self.existed else None,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        version = data.get("schema_version", SCHEMA_VERSION)
        if version != SCHEMA_VERSION:
            raise ValueError(f"unsupported snapshot schema_version {version}")
        existed = bool(data.get("existed", True))
        return cls(
            snapshot_id=str(data["snapshot_id"]),
            resource_path=str(data.get("resource_path", "")),
            prior_content=str(data.get("content") or "") if existed else ABSENT,
            created_at=str(data.get("created_at", "")),
        )


class SnapshotStore:
    """Create, restore and delete per-note snapshots."""

    def __init__(self, store: ResourceStore, snapshot_dir: Path) -> None:
        self._store = store
        self._snapshot_dir = Path(snapshot_dir)
        self._snapshot_dir.mkdir(parents=True, exist_ok=True)

    @property
    def snapshot_dir(self) -> Path:
        return self._snapshot_dir

    def _record_path(self, snapshot_id: str) -> Path:
        if not _SNAPSHOT_ID_RE.match(snapshot_id or ""):
            raise SnapshotNotFoundError(snapshot_id)
        return self._snapshot_dir / f"{snapshot_id}.json"

    async def create_snapshot(self, resource_path: str) -> str:
        """Capture the current state of ``resource_path``. Returns the snapshot id.

        Must complete before the guarded mutation starts.
        """
        path = normalize_vault_path(resource_path)
        if await self._store.exists(path):
            prior: PriorContent = await self._store.read(path)
        else:
            prior = ABSENT

        snapshot = Snapshot(
            snapshot_id=uuid.uuid4().hex,
            resource_path=path,
            prior_content=prior,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        await asyncio.to_thread(
            atomic_write_json,
            self._record_path(snapshot.snapshot_id),
            snapshot.to_dict(),
        )
        logger.info(
            "Created snapshot %s for %s (existed=%s)",
            snapshot.snapshot_id, path, snapshot.existed,
        )
        return snapshot.snapshot_id

    def load_snapshot(self, snapshot_id: str) -> Snapshot:
        """Read a stored snapshot. Raises SnapshotNotFoundError if missing."""
        record = self._record_path(snapshot_id)
        if record.exists():
            try:
                return Snapshot.from_dict(json.loads(record.read_text(encoding="utf-8")))
            except (json.JSONDecodeError, KeyError, ValueError) as exc:
                logger.warning("Unreadable snapshot %s: %s", snapshot_id, exc)
                raise SnapshotNotFoundError(snapshot_id) from exc

        # Legacy records: bare file holding the content or the absent marker.
        legacy = self._snapshot_dir / snapshot_id
        if legacy.is_file():
            text = legacy.read_text(encoding="utf-8")
            return Snapshot(
                snapshot_id=snapshot_id,
                resource_path="",
                prior_content=ABSENT if text == ABSENT_MARKER else text,
            )
        raise SnapshotNotFoundError(snapshot_id)

    async def restore_snapshot(self, snapshot_id: str, resource_path: str) -> bool:
        """Put ``resource_path`` back into the captured state.

        A missing snapshot is logged and nothing is changed; returns False.
        """
        try:
            snapshot = self.load_snapshot(snapshot_id)
        except SnapshotNotFoundError:
            logger.warning("Snapshot %s not found; nothing restored", snapshot_id)
            return False

        path = normalize_vault_path(resource_path or snapshot.resource_path)
        if not path:
            logger.warning(
                "Snapshot %s has no recorded note path; nothing restored", snapshot_id
            )
            return False

        if snapshot.prior_content is ABSENT:
            if await self._store.exists(path):
                await self._store.delete(path)
                logger.info("Restored %s from %s: removed", path, snapshot_id)
            return True

        if await self._store.exists(path):
            await self._store.write(path, snapshot.prior_content)
        else:
            folder = parent_path(path)
            if folder:
                await self._store.mkdir_recursive_if_missing(folder)
            await self._store.create(path, snapshot.prior_content)
        logger.info("Restored %s from %s", path, snapshot_id)
        return True

    def delete_snapshot(self, snapshot_id: str) -> bool:
        """Remove a stored snapshot. Idempotent; returns whether one was removed."""
        try:
            record = self._record_path(snapshot_id)
        except SnapshotNotFoundError:
            return False
        removed = durable_unlink(record)
        removed = durable_unlink(self._snapshot_dir / snapshot_id) or removed
        if removed:
            logger.info("Deleted snapshot %s", snapshot_id)
        return removed

    def list_snapshots(self) -> list[Snapshot]:
        """All readable snapshots, oldest first."""
        snapshots: list[Snapshot] = []
        for record in sorted(self._snapshot_dir.glob("*.json")):
            try:
                snapshots.append(self.load_snapshot(record.stem))
            except SnapshotNotFoundError:
                continue
        snapshots.sort(key=lambda s: s.created_at)
        return snapshots

    def prune(self, keep_ids: Iterable[str]) -> int:
        """Delete every snapshot not in ``keep_ids``. Returns how many were removed."""
        keep = set(keep_ids)
        removed = 0
        for snapshot in self.list_snapshots():
            if snapshot.snapshot_id not in keep and self.delete_snapshot(snapshot.snapshot_id):
                removed += 1
        if removed:
            logger.info("Pruned %d snapshot(s)", removed)
        return removed
