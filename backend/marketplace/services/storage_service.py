"""
Object storage for re-hosted catalog images and upload backups.

Objects live in one S3 (or S3-compatible) bucket. Every stored object is
identified by its key ("public id"); the public URL is derived from
AWS_S3_PUBLIC_BASE_URL when set, otherwise from the bucket's regional
endpoint.
"""
from __future__ import annotations

import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

IMAGE_PREFIX = "bulk-uploads/products"
UPLOAD_BACKUP_PREFIX = "bulk-uploads"

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


class ObjectStoreError(Exception):
    """Raised when an object cannot be fetched, stored or removed."""


class UnsupportedContentError(ObjectStoreError):
    """Remote resource is not one of the allowed image types."""


@dataclass(frozen=True)
class StoredObject:
    url: str
    public_id: str

    def to_dict(self) -> dict:
        return {"url": self.url, "publicId": self.public_id}


class ObjectStore:
    def __init__(self, app=None, client=None, http_client: httpx.Client | None = None):
        self._client = client
        self._http_client = http_client
        self.bucket = None
        self.region = None
        self.endpoint_url = None
        self.public_base_url = None
        self.access_key_id = None
        self.secret_access_key = None
        self.fetch_timeout = 10.0
        self.allowed_content_types: tuple[str, ...] = tuple(_EXTENSIONS)
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.bucket = app.config.get("AWS_STORAGE_BUCKET_NAME")
        self.region = app.config.get("AWS_S3_REGION_NAME")
        self.endpoint_url = app.config.get("AWS_S3_ENDPOINT_URL")
        self.public_base_url = app.config.get("AWS_S3_PUBLIC_BASE_URL")
        self.access_key_id = app.config.get("AWS_ACCESS_KEY_ID")
        self.secret_access_key = app.config.get("AWS_SECRET_ACCESS_KEY")
        self.fetch_timeout = float(app.config.get("IMAGE_FETCH_TIMEOUT_SECONDS", 10))
        self.allowed_content_types = tuple(
            app.config.get("ALLOWED_IMAGE_CONTENT_TYPES", self.allowed_content_types)
        )
        app.extensions["object_store"] = self

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
                region_name=self.region,
                endpoint_url=self.endpoint_url,
            )
        return self._client

    @client.setter
    def client(self, value) -> None:
        self._client = value

    @property
    def http_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(follow_redirects=True)
        return self._http_client

    @http_client.setter
    def http_client(self, value: httpx.Client | None) -> None:
        self._http_client = value

    def _require_bucket(self) -> str:
        if not self.bucket:
            raise ObjectStoreError("Object storage is not configured")
        return self.bucket

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def _put(self, key: str, body: bytes, content_type: str) -> StoredObject:
        bucket = self._require_bucket()
        try:
            self.client.put_object(Bucket=bucket, Key=key, Body=body, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"Failed to store object {key}: {exc}") from exc
        return StoredObject(url=self.public_url(key), public_id=key)

    def fetch_image(self, url: str) -> tuple[bytes, str]:
        """Download a remote image; time-bounded by fetch_timeout."""
        try:
            response = self.http_client.get(url, timeout=self.fetch_timeout, follow_redirects=True)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ObjectStoreError(f"Failed to fetch {url}: {exc}") from exc

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type not in self.allowed_content_types:
            raise UnsupportedContentError(
                f"Unsupported content type '{content_type or 'unknown'}' for {url}"
            )
        return response.content, content_type

    def import_from_url(self, url: str, prefix: str = IMAGE_PREFIX) -> StoredObject:
        """Fetch an externally hosted image and store a platform-owned copy."""
        self._require_bucket()
        body, content_type = self.fetch_image(url)
        key = f"{prefix}/{uuid.uuid4().hex}{_EXTENSIONS.get(content_type, '')}"
        stored = self._put(key, body, content_type)
        logger.debug("Re-hosted %s as %s", url, stored.public_id)
        return stored

    def upload_file(self, path: str, original_name: str, prefix: str = UPLOAD_BACKUP_PREFIX) -> StoredObject:
        self._require_bucket()
        content_type = mimetypes.guess_type(original_name)[0] or "application/octet-stream"
        key = f"{prefix}/{uuid.uuid4().hex}-{os.path.basename(original_name)}"
        with open(path, "rb") as handle:
            body = handle.read()
        return self._put(key, body, content_type)

    def delete(self, public_id: str) -> None:
        bucket = self._require_bucket()
        try:
            self.client.delete_object(Bucket=bucket, Key=public_id)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"Failed to delete object {public_id}: {exc}") from exc
