"""
Advisory mutual exclusion with bounded acquisition.

A backend only needs try_acquire()/release(); FileLock creates the lock file
exclusively and writes our PID into it. A lock left behind by a crashed
process is not broken: waiters give up after `timeout` seconds.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Protocol

logger = logging.getLogger(__name__)


class LockTimeoutError(TimeoutError):
    pass


class LockBackend(Protocol):
    name: str

    def try_acquire(self) -> bool: ...

    def release(self) -> None: ...


class FileLock:
    def __init__(self, path: str):
        self.path = path
        self.name = os.path.basename(path)

    def try_acquire(self) -> bool:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        return True

    def release(self) -> None:
        os.unlink(self.path)

    def is_held(self) -> bool:
        return os.path.exists(self.path)


@asynccontextmanager
async def scoped_lock(lock: LockBackend, timeout: float = 5.0, poll_interval: float = 0.1):
    start = time.monotonic()
    while not lock.try_acquire():
        if time.monotonic() - start > timeout:
            raise LockTimeoutError(f"Could not acquire {lock.name} within {timeout}s")
        await asyncio.sleep(poll_interval)
    logger.debug("Acquired %s", lock.name)
    try:
        yield lock
    finally:
        try:
            lock.release()
            logger.debug("Released %s", lock.name)
        except Exception as e:
            logger.error("Failed to release %s: %s", lock.name, e)
