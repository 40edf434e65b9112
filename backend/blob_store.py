import logging
import os
import uuid
from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

AWS_REGION = os.environ.get("AWS_REGION")
S3_BUCKET_NAME = os.environ.get("S3_BUCKET_NAME")
S3_ACCESS_KEY = os.environ.get("S3_ACCESS_KEY") or os.environ.get("AWS_ACCESS_KEY_ID")
S3_SECRET_KEY = os.environ.get("S3_SECRET_KEY") or os.environ.get("AWS_SECRET_ACCESS_KEY")
S3_KEY_ROOT = os.environ.get("S3_KEY_ROOT", "innovate-x")
S3_CONNECT_TIMEOUT = float(os.environ.get("S3_CONNECT_TIMEOUT", "5"))
S3_READ_TIMEOUT = float(os.environ.get("S3_READ_TIMEOUT", "15"))
S3_MAX_ATTEMPTS = int(os.environ.get("S3_MAX_ATTEMPTS", "3"))


class BlobStoreError(RuntimeError):
    pass


def _build_client():
    if not (AWS_REGION and S3_BUCKET_NAME and S3_ACCESS_KEY and S3_SECRET_KEY):
        return None
    # Standard retry mode backs off exponentially between bounded attempts.
    s3_config = Config(
        signature_version="s3v4",
        s3={"addressing_style": "virtual"},
        connect_timeout=S3_CONNECT_TIMEOUT,
        read_timeout=S3_READ_TIMEOUT,
        retries={"max_attempts": S3_MAX_ATTEMPTS, "mode": "standard"},
    )
    return boto3.client(
        "s3",
        region_name=AWS_REGION,
        aws_access_key_id=S3_ACCESS_KEY,
        aws_secret_access_key=S3_SECRET_KEY,
        endpoint_url=f"https://s3.{AWS_REGION}.amazonaws.com",
        config=s3_config,
    )


class S3BlobStore:
    """Durable storage for uploaded and generated files, addressed by public URL."""

    def __init__(self, client=None, bucket: Optional[str] = None, region: Optional[str] = None, key_root: str = S3_KEY_ROOT):
        self.client = client if client is not None else _build_client()
        self.bucket = bucket or S3_BUCKET_NAME
        self.region = region or AWS_REGION
        self.key_root = key_root.strip("/")

    @property
    def configured(self) -> bool:
        return bool(self.client and self.bucket and self.region)

    def build_url(self, key: str) -> str:
        if not self.bucket or not self.region:
            raise BlobStoreError("S3 configuration missing")
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def _build_key(self, folder: str, filename: str) -> str:
        extension = Path(filename or "").suffix.lower()
        unique_name = f"{uuid.uuid4().hex}{extension}"
        parts = [self.key_root, folder.strip("/"), unique_name]
        return "/".join(part for part in parts if part)

    def put(self, data: bytes, folder: str, filename: str, content_type: str = "application/octet-stream") -> str:
        if not self.configured:
            raise BlobStoreError("S3 not configured")
        if not filename:
            raise BlobStoreError("Missing filename")

        key = self._build_key(folder, filename)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.warning("S3 upload to %s failed: %s", key, exc)
            raise BlobStoreError(f"Upload failed: {exc}") from exc

        return self.build_url(key)


_default_store: Optional[S3BlobStore] = None


def get_blob_store() -> S3BlobStore:
    global _default_store
    if _default_store is None:
        _default_store = S3BlobStore()
    return _default_store
