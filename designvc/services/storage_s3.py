# designvc/services/storage_s3.py
"""
Amazon S3 backend for design version previews.
"""
from __future__ import annotations

import logging
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from designvc.services.storage import PNG_CONTENT_TYPE, BlobStore, UploadResult

logger = logging.getLogger(__name__)


def _get_s3_client(region: str, access_key_id: str | None, secret_access_key: str | None):
    return boto3.client(
        service_name="s3",
        region_name=region,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
    )


class S3BlobStore(BlobStore):
    name = "s3"

    def __init__(self, bucket: str, region: str = "ap-south-1",
                 access_key_id: str | None = None, secret_access_key: str | None = None,
                 client=None):
        self.bucket_name = bucket
        self.region = region
        self._s3 = client or _get_s3_client(region, access_key_id, secret_access_key)

    def object_url(self, key: str) -> str:
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/{key}"

    def key_from_url(self, url: str) -> str | None:
        parsed = urlparse(url)
        host = parsed.netloc
        path = unquote(parsed.path.lstrip("/"))
        if host.startswith(f"{self.bucket_name}.s3."):
            return path or None
        # path-style: s3.<region>.amazonaws.com/<bucket>/<key>
        if host.startswith("s3.") or host == "s3.amazonaws.com":
            bucket, _, key = path.partition("/")
            return key if bucket == self.bucket_name and key else None
        return None

    def upload(self, payload: bytes, key_hint: str) -> UploadResult:
        try:
            self._s3.put_object(
                Bucket=self.bucket_name,
                Key=key_hint,
                Body=payload,
                ContentType=PNG_CONTENT_TYPE,
            )
        except (BotoCoreError, ClientError) as exc:
            return UploadResult(success=False, error=str(exc))
        return UploadResult(success=True, url=self.object_url(key_hint))

    def delete(self, url: str) -> bool:
        key = self.key_from_url(url)
        if key is None:
            logger.warning(f"Not an object in s3://{self.bucket_name}: {url}")
            return False
        try:
            # DeleteObject succeeds for missing keys too
            self._s3.delete_object(Bucket=self.bucket_name, Key=key)
        except (BotoCoreError, ClientError) as exc:
            logger.warning(f"S3 delete failed for {key}: {exc}")
            return False
        return True
