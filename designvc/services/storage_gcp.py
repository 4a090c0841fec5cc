# designvc/services/storage_gcp.py
"""
Google Cloud Storage backend for design version previews.

Objects live at `<key_hint>` inside the configured bucket and are addressed
by their public URL (`https://storage.googleapis.com/<bucket>/<path>`), so
the stored `previewUrl` never expires the way a V4 signed URL would.
"""
from __future__ import annotations

import logging
from urllib.parse import unquote, urlparse

from google.api_core import exceptions as gexc  # type: ignore
from google.cloud import storage as gcs  # type: ignore

from designvc.services.gcp_clients import get_storage_client
from designvc.services.storage import PNG_CONTENT_TYPE, BlobStore, UploadResult

logger = logging.getLogger(__name__)

GCS_HOSTS = ("storage.googleapis.com", "storage.cloud.google.com")


class GCSBlobStore(BlobStore):
    name = "gcp"

    def __init__(self, bucket: str, project: str | None = None, client: gcs.Client | None = None):
        self._client = client or get_storage_client(project)
        self._bucket = self._client.bucket(bucket)
        self.bucket_name = bucket

    def blob_path_from_url(self, url: str) -> str | None:
        """Return the object path for a URL in *this* bucket, else None."""
        if url.startswith("gs://"):
            rest = url[len("gs://"):]
            bucket, _, path = rest.partition("/")
            return path if bucket == self.bucket_name and path else None

        parsed = urlparse(url)
        if parsed.netloc not in GCS_HOSTS:
            return None
        bucket, _, path = parsed.path.lstrip("/").partition("/")
        if bucket != self.bucket_name or not path:
            return None
        return unquote(path)

    def upload(self, payload: bytes, key_hint: str) -> UploadResult:
        blob = self._bucket.blob(key_hint)
        try:
            blob.upload_from_string(payload, content_type=PNG_CONTENT_TYPE)
        except gexc.GoogleAPIError as exc:
            return UploadResult(success=False, error=str(exc))
        return UploadResult(success=True, url=blob.public_url)

    def delete(self, url: str) -> bool:
        path = self.blob_path_from_url(url)
        if path is None:
            logger.warning(f"Not a gs object in bucket {self.bucket_name}: {url}")
            return False
        try:
            self._bucket.blob(path).delete()
        except gexc.NotFound:
            return True  # already gone
        except gexc.GoogleAPIError as exc:
            logger.warning(f"GCS delete failed for {path}: {exc}")
            return False
        return True
