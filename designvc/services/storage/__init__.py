# designvc/services/storage/__init__.py
"""
Blob store contract + backend switcher.

The version store only needs three things from object storage:

    upload(payload, key_hint) -> UploadResult(success, url, error)
    delete(url)               -> bool   (True on success *or* not-found)
    fetch(url)                -> bytes  (used by the PNG proxy route)

`get_blob_store()` decides which backend to build from `STORAGE_BACKEND`
("gcp", "s3" or "memory"). Backends are imported lazily so a deployment
on one cloud does not need the other cloud's SDK configured.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)

PNG_CONTENT_TYPE = "image/png"
FETCH_TIMEOUT_S = 30


class UploadFailed(Exception):
    """A PNG could not be stored. Never fatal for a commit."""


class BlobDeleteFailed(Exception):
    """A blob could not be removed. Never fatal for a delete."""


class BlobFetchFailed(Exception):
    """A stored PNG could not be read back."""


@dataclass
class UploadResult:
    success: bool
    url: Optional[str] = None
    error: Optional[str] = None


class BlobStore:
    """Base class for the PNG object stores."""

    name = "base"

    def upload(self, payload: bytes, key_hint: str) -> UploadResult:
        raise NotImplementedError

    def delete(self, url: str) -> bool:
        raise NotImplementedError

    def fetch(self, url: str) -> bytes:
        # Objects are written publicly readable, same as the old proxy did
        try:
            resp = requests.get(url, timeout=FETCH_TIMEOUT_S)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise BlobFetchFailed(f"GET {url} failed: {exc}") from exc
        return resp.content


def get_blob_store(settings) -> BlobStore:
    backend = (settings.storage_backend or "").lower()

    if backend == "gcp":
        if not settings.gcs_bucket:
            raise RuntimeError("STORAGE_BACKEND=gcp requires GCS_BUCKET.")
        from designvc.services.storage_gcp import GCSBlobStore
        return GCSBlobStore(settings.gcs_bucket, project=settings.gcp_project)

    if backend == "s3":
        missing = [
            name for name, val in (
                ("AWS_ACCESS_KEY_ID", settings.aws_access_key_id),
                ("AWS_SECRET_ACCESS_KEY", settings.aws_secret_access_key),
                ("AWS_S3_BUCKET_NAME", settings.s3_bucket),
            ) if not val
        ]
        if missing:
            raise RuntimeError(f"STORAGE_BACKEND=s3 requires {', '.join(missing)}.")
        from designvc.services.storage_s3 import S3BlobStore
        return S3BlobStore(
            settings.s3_bucket,
            region=settings.aws_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
        )

    if backend == "memory":
        from designvc.services.storage_memory import MemoryBlobStore
        return MemoryBlobStore()

    raise RuntimeError(f"Unknown STORAGE_BACKEND {settings.storage_backend!r}; use gcp, s3 or memory.")
