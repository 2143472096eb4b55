"""
Append-only log of processing runs, bounded by archival.

Every append is a read-modify-write of one shared blob, so it runs under the
history lock. Once the log reaches `archive_threshold` records (and the last
archive is older than `min_archive_interval`), everything but the newest
`keep_records` is moved to a timestamped archive blob.
"""
from __future__ import annotations

import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Callable

from .blob_store import BlobNotFoundError
from .config import (
    DATA_DIR,
    HISTORY_ARCHIVE_PREFIX,
    HISTORY_ARCHIVE_THRESHOLD,
    HISTORY_FILE_KEY,
    HISTORY_KEEP_RECORDS,
    LOCK_TIMEOUT_SEC,
    MIN_SECONDS_BETWEEN_ARCHIVES,
)
from .locks import FileLock, LockBackend, scoped_lock
from .models import ProcessingHistory, ProcessingRecord

logger = logging.getLogger(__name__)


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _epoch(iso: str | None) -> float | None:
    if not iso:
        return None
    try:
        return datetime.fromisoformat(iso.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


class ProcessingHistoryLog:
    def __init__(
        self,
        store,
        bucket: str,
        lock: LockBackend | None = None,
        scratch_path: str = os.path.join(DATA_DIR, "processing-history.json"),
        history_key: str = HISTORY_FILE_KEY,
        archive_prefix: str = HISTORY_ARCHIVE_PREFIX,
        archive_threshold: int = HISTORY_ARCHIVE_THRESHOLD,
        keep_records: int = HISTORY_KEEP_RECORDS,
        min_archive_interval: float = MIN_SECONDS_BETWEEN_ARCHIVES,
        lock_timeout: float = LOCK_TIMEOUT_SEC,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.bucket = bucket
        self.lock = lock or FileLock(scratch_path + ".lock")
        self.scratch_path = scratch_path
        self.history_key = history_key
        self.archive_prefix = archive_prefix.rstrip("/")
        self.archive_threshold = archive_threshold
        self.keep_records = keep_records
        self.min_archive_interval = min_archive_interval
        self.lock_timeout = lock_timeout
        self._clock = clock

    async def _load(self) -> ProcessingHistory:
        try:
            await self.store.download(self.bucket, self.history_key, self.scratch_path)
        except BlobNotFoundError:
            logger.info("No processing history yet, starting a new one")
            return ProcessingHistory()
        try:
            with open(self.scratch_path, "r") as f:
                return ProcessingHistory.from_json(json.load(f))
        finally:
            os.unlink(self.scratch_path)

    def _archive_due(self, history: ProcessingHistory, now: float) -> bool:
        if len(history.records) < self.archive_threshold:
            return False
        last = _epoch(history.last_archive_timestamp)
        return last is None or now - last >= self.min_archive_interval

    async def _archive(self, history: ProcessingHistory, now: float) -> None:
        to_archive = history.records[: -self.keep_records] if self.keep_records else list(history.records)
        if not to_archive:
            return
        path = f"{self.archive_prefix}/processing-history-{int(now * 1000)}.json"
        payload = json.dumps({"records": [r.to_json() for r in to_archive]}, indent=2)
        await self.store.upload(self.bucket, self.scratch_path, path, payload)

        history.records = history.records[len(to_archive):]
        history.last_archive_timestamp = _iso(now)
        history.archived_records.append({"path": path, "count": len(to_archive), "timestamp": _iso(now)})
        logger.info("Archived %d history records to %s", len(to_archive), path)

    async def _save(self, history: ProcessingHistory) -> None:
        os.makedirs(os.path.dirname(self.scratch_path) or ".", exist_ok=True)
        content = json.dumps(history.to_json(), indent=2)
        with open(self.scratch_path, "w") as f:
            f.write(content)
        try:
            await self.store.upload(self.bucket, self.scratch_path, self.history_key, content)
        finally:
            os.unlink(self.scratch_path)

    async def append(self, record: ProcessingRecord) -> ProcessingHistory:
        async with scoped_lock(self.lock, timeout=self.lock_timeout):
            os.makedirs(os.path.dirname(self.scratch_path) or ".", exist_ok=True)
            history = await self._load()
            history.records.append(record)

            now = self._clock()
            if self._archive_due(history, now):
                await self._archive(history, now)

            await self._save(history)
            logger.debug("History now holds %d records", len(history.records))
            return history
