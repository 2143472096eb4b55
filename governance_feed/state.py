"""
state.py — Durable per-network processing state.

The state file is a JSON object keyed by network name (see
ProcessingState.to_json). A run downloads it once, mutates the local copy
after every collection, and uploads it back at the end, even after a fatal
error.

Merge rules for write():
  • lastProcessedBlock never moves backwards.
  • failed_segments=None keeps what is stored, [] clears it, a non-empty
    list is unioned with the stored gaps by (from, to).
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import fields, replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List

from .blob_store import BlobNotFoundError
from .models import FailedSegment, ProcessingState

logger = logging.getLogger(__name__)

_STATE_FIELDS = {f.name for f in fields(ProcessingState)} - {"last_updated"}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def merge_failed_segments(existing: Iterable[FailedSegment], new: Iterable[FailedSegment]) -> List[FailedSegment]:
    """Union keyed by (from, to); the newer error message wins."""
    merged: Dict[tuple[int, int], FailedSegment] = {s.key: s for s in existing}
    for seg in new:
        merged[seg.key] = seg
    return sorted(merged.values(), key=lambda s: s.key)


class ProcessingStateStore:
    def __init__(self, store, bucket: str, remote_key: str, local_path: str):
        self.store = store
        self.bucket = bucket
        self.remote_key = remote_key
        self.local_path = local_path

    async def load(self) -> None:
        """Best-effort download; a missing or unreachable state means a fresh start."""
        os.makedirs(os.path.dirname(self.local_path) or ".", exist_ok=True)
        try:
            await self.store.download(self.bucket, self.remote_key, self.local_path)
            logger.info("State file downloaded from %s/%s", self.bucket, self.remote_key)
        except BlobNotFoundError:
            logger.info("No state file at %s/%s, starting fresh", self.bucket, self.remote_key)
        except Exception as e:
            logger.warning("Failed to download state file, starting fresh: %s", e)

    def read(self) -> Dict[str, ProcessingState]:
        if not os.path.exists(self.local_path):
            return {}
        try:
            with open(self.local_path, "r") as f:
                raw = json.load(f)
            return {network: ProcessingState.from_json(d) for network, d in raw.items()}
        except Exception as e:
            logger.warning("Error reading state file, starting fresh: %s", e)
            return {}

    def _save(self, states: Dict[str, ProcessingState]) -> None:
        os.makedirs(os.path.dirname(self.local_path) or ".", exist_ok=True)
        with open(self.local_path, "w") as f:
            json.dump({n: s.to_json() for n, s in states.items()}, f, indent=2)

    def write(self, network: str, **changes) -> ProcessingState:
        unknown = set(changes) - _STATE_FIELDS
        if unknown:
            raise TypeError(f"Unknown state field(s): {sorted(unknown)}")

        states = self.read()
        current = states.get(network) or ProcessingState(last_processed_block=changes.get("last_processed_block", 0))

        new_segments = changes.pop("failed_segments", None)
        if new_segments is not None:
            changes["failed_segments"] = (
                merge_failed_segments(current.failed_segments, new_segments) if new_segments else []
            )

        block = changes.get("last_processed_block")
        if block is not None and block < current.last_processed_block:
            logger.warning("%s: refusing to move watermark back from %d to %d",
                           network, current.last_processed_block, block)
            changes["last_processed_block"] = current.last_processed_block

        updated = replace(current, **changes, last_updated=utc_now_iso())
        states[network] = updated
        self._save(states)
        logger.debug("Updated state for %s: %s", network, updated.to_json())
        return updated

    async def persist(self) -> bool:
        """Upload the local state file and remove the local copy."""
        if not os.path.exists(self.local_path):
            logger.error("State file %s does not exist for upload", self.local_path)
            return False
        try:
            with open(self.local_path, "r") as f:
                content = f.read()
            await self.store.upload(self.bucket, self.local_path, self.remote_key, content)
        except Exception as e:
            logger.error("Failed to upload state file: %s", e)
            return False
        os.unlink(self.local_path)
        logger.info("State file uploaded to %s/%s", self.bucket, self.remote_key)
        return True
