"""Persistence gateway: durable snapshot of the combined event/request state.

The in-memory ``AppState`` is the single source of truth while the process
runs; the snapshot on disk is an eventually-consistent shadow of it.  A
gateway only knows how to read and write one opaque JSON document:

    {"events": [...], "requests": [...]}

``SnapshotFlusher`` owns the write path.  Mutation handlers hand it a fully
serialised snapshot and continue; a single background task writes the most
recent snapshot, so writes never overlap and the last one on disk always
reflects the last mutation.  Write failures are logged and swallowed.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)

SnapshotDict = dict[str, object]


class PersistenceGateway(ABC):
    """Interface for snapshot storage."""

    @abstractmethod
    def load(self) -> SnapshotDict | None:
        """Return the stored snapshot, or None on cold start."""
        ...

    @abstractmethod
    def save(self, snapshot: SnapshotDict) -> None:
        """Replace the stored snapshot atomically.

        Raises ``OSError`` when the write fails; callers decide whether that
        is fatal.
        """
        ...


class JsonFileGateway(PersistenceGateway):
    """Snapshot stored as a single pretty-printed JSON file.

    Writes go to a temporary sibling file that is then ``os.replace``-d over
    the target, so a crash mid-write leaves the previous snapshot intact.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> SnapshotDict | None:
        if not self.path.exists():
            logger.info("No snapshot at %s, starting fresh", self.path)
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("⚠️  Unreadable snapshot %s, starting fresh: %s", self.path, exc)
            return None
        if not isinstance(raw, dict):
            logger.warning("⚠️  Snapshot %s is not a JSON object, starting fresh", self.path)
            return None
        return raw

    def save(self, snapshot: SnapshotDict) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(snapshot, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class MemoryGateway(PersistenceGateway):
    """Keeps the last snapshot in memory. Used when no data file is wanted."""

    def __init__(self, initial: SnapshotDict | None = None) -> None:
        self.snapshot = initial
        self.saves = 0

    def load(self) -> SnapshotDict | None:
        return self.snapshot

    def save(self, snapshot: SnapshotDict) -> None:
        self.snapshot = snapshot
        self.saves += 1


class SnapshotFlusher:
    """Serialises snapshot writes onto one background task.

    ``schedule()`` must be called from the event loop.  Only the newest pending
    snapshot is written; intermediate ones are superseded because every
    snapshot is a full copy of the state.
    """

    def __init__(self, gateway: PersistenceGateway) -> None:
        self.gateway = gateway
        self._pending: SnapshotDict | None = None
        self._task: asyncio.Task[None] | None = None

    def schedule(self, snapshot: SnapshotDict) -> None:
        """Queue *snapshot* for writing and return immediately."""
        self._pending = snapshot
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name="musicask-snapshot-flush"
            )

    async def _run(self) -> None:
        while self._pending is not None:
            snapshot, self._pending = self._pending, None
            try:
                await asyncio.to_thread(self.gateway.save, snapshot)
            except Exception as exc:
                logger.error("❌ Snapshot write failed, in-memory state kept: %s", exc)
            else:
                logger.debug("💾 Snapshot flushed")

    async def drain(self) -> None:
        """Wait until every scheduled snapshot has been written (or failed)."""
        while self._task is not None and not self._task.done():
            await self._task

    @property
    def pending(self) -> bool:
        return self._pending is not None or (self._task is not None and not self._task.done())
