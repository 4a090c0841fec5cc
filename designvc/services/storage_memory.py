# designvc/services/storage_memory.py
from __future__ import annotations

import threading

from designvc.services.storage import BlobFetchFailed, BlobStore, UploadResult

_SCHEME = "memory://"


class MemoryBlobStore(BlobStore):
    """Process-local blob store for tests and local runs."""

    name = "memory"

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def upload(self, payload: bytes, key_hint: str) -> UploadResult:
        with self._lock:
            self.objects[key_hint] = bytes(payload)
        return UploadResult(success=True, url=f"{_SCHEME}{key_hint}")

    def delete(self, url: str) -> bool:
        if not url.startswith(_SCHEME):
            return False
        with self._lock:
            self.objects.pop(url[len(_SCHEME):], None)
        return True

    def fetch(self, url: str) -> bytes:
        key = url[len(_SCHEME):] if url.startswith(_SCHEME) else None
        with self._lock:
            data = self.objects.get(key) if key else None
        if data is None:
            raise BlobFetchFailed(f"no object at {url}")
        return data
