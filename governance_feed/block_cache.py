"""
Persistent block-number -> timestamp memo.

Entries expire `max_age` seconds after they were cached (access does not
refresh them). When the cache grows past `max_entries` the oldest 10% by
insertion time are evicted. The JSON file is rewritten every `save_every`
inserts and on flush().
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Callable, Dict

logger = logging.getLogger(__name__)

ONE_WEEK_SEC = 7 * 24 * 60 * 60


class BlockTimestampCache:
    def __init__(self, cache_path: str, max_age: float = ONE_WEEK_SEC, max_entries: int = 10_000,
                 save_every: int = 100, clock: Callable[[], float] = time.time):
        self.cache_path = cache_path
        self.max_age = max_age
        self.max_entries = max_entries
        self.save_every = save_every
        self._clock = clock
        self._entries: Dict[int, dict] = {}
        self._inserts = 0
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.cache_path):
            return
        try:
            with open(self.cache_path, "r") as f:
                data = json.load(f)
            now = self._clock()
            for item in data:
                if now - item["cached"] < self.max_age:
                    self._entries[int(item["blockNumber"])] = item
            logger.info("Loaded %d block timestamps from %s", len(self._entries), self.cache_path)
        except Exception as e:
            logger.warning("Failed to load block timestamp cache %s: %s", self.cache_path, e)

    def _save(self) -> None:
        try:
            os.makedirs(os.path.dirname(self.cache_path) or ".", exist_ok=True)
            with open(self.cache_path, "w") as f:
                json.dump(list(self._entries.values()), f)
        except Exception as e:
            logger.warning("Failed to save block timestamp cache %s: %s", self.cache_path, e)

    def get(self, block_number: int) -> int | None:
        item = self._entries.get(block_number)
        if item and self._clock() - item["cached"] < self.max_age:
            return item["timestamp"]
        return None

    def set(self, block_number: int, timestamp: int) -> None:
        self._entries[block_number] = {
            "blockNumber": block_number,
            "timestamp": int(timestamp),
            "cached": self._clock(),
        }

        if len(self._entries) > self.max_entries:
            oldest = sorted(self._entries.values(), key=lambda item: item["cached"])
            for item in oldest[: max(1, self.max_entries // 10)]:
                del self._entries[item["blockNumber"]]

        self._inserts += 1
        if self._inserts % self.save_every == 0:
            self._save()

    def flush(self) -> None:
        self._save()

    def __len__(self) -> int:
        return len(self._entries)
