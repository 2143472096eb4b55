"""
Named byte blobs in buckets.

LocalBlobStore keeps each bucket as a directory; keys are relative paths
inside it. File work runs in a worker thread so callers can await it.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil

logger = logging.getLogger(__name__)


class BlobNotFoundError(FileNotFoundError):
    def __init__(self, bucket: str, key: str):
        super().__init__(f"Blob {bucket}/{key} does not exist")
        self.bucket = bucket
        self.key = key


class LocalBlobStore:
    def __init__(self, root: str):
        self.root = root

    def _path(self, bucket: str, key: str) -> str:
        path = os.path.normpath(os.path.join(self.root, bucket, key))
        bucket_dir = os.path.normpath(os.path.join(self.root, bucket))
        if os.path.commonpath([path, bucket_dir]) != bucket_dir:
            raise ValueError(f"Key {key!r} escapes bucket {bucket!r}")
        return path

    def _upload(self, bucket: str, local_path: str, remote_key: str, content: str | bytes | None) -> None:
        dest = self._path(bucket, remote_key)
        os.makedirs(os.path.dirname(dest), exist_ok=True)
        if content is None:
            shutil.copyfile(local_path, dest)
        else:
            mode = "wb" if isinstance(content, bytes) else "w"
            with open(dest, mode) as f:
                f.write(content)
        logger.debug("Uploaded %s/%s", bucket, remote_key)

    def _download(self, bucket: str, remote_key: str, local_path: str) -> None:
        src = self._path(bucket, remote_key)
        if not os.path.isfile(src):
            raise BlobNotFoundError(bucket, remote_key)
        os.makedirs(os.path.dirname(local_path) or ".", exist_ok=True)
        shutil.copyfile(src, local_path)

    def _list_keys(self, bucket: str, prefix: str) -> list[str]:
        bucket_dir = os.path.join(self.root, bucket)
        keys = []
        for dirpath, _dirs, files in os.walk(bucket_dir):
            for name in files:
                key = os.path.relpath(os.path.join(dirpath, name), bucket_dir).replace(os.sep, "/")
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    async def upload(self, bucket: str, local_path: str, remote_key: str,
                     content: str | bytes | None = None) -> None:
        await asyncio.to_thread(self._upload, bucket, local_path, remote_key, content)

    async def download(self, bucket: str, remote_key: str, local_path: str) -> None:
        await asyncio.to_thread(self._download, bucket, remote_key, local_path)

    async def exists(self, bucket: str, remote_key: str) -> bool:
        return await asyncio.to_thread(os.path.isfile, self._path(bucket, remote_key))

    async def list_keys(self, bucket: str, prefix: str = "") -> list[str]:
        return await asyncio.to_thread(self._list_keys, bucket, prefix)
