"""occupeye_etl.storage

Object-storage backends for transcoded photos.

  SupabasePhotoStore — Supabase Storage bucket (default for real runs)
  GcsPhotoStore      — Google Cloud Storage bucket
  LocalPhotoStore    — local directory (tests / offline runs)

All backends return a publicly reachable URL for each uploaded object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

log = logging.getLogger(__name__)

DEFAULT_BUCKET = "occupeye-photos"
BUCKET_FILE_SIZE_LIMIT = 10 * 1024 * 1024
BUCKET_ALLOWED_MIME_TYPES = ["image/webp", "image/jpeg", "image/png", "image/jpg"]


class StorageError(Exception):
    """Raised when a bucket cannot be prepared or an upload fails."""


class PhotoStore(Protocol):
    def ensure_bucket(self) -> None:
        """Create the target bucket if it does not exist yet."""
        ...

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Store content at path (overwriting) and return its public URL."""
        ...


# ---------------------------------------------------------------------------
# Supabase
# ---------------------------------------------------------------------------

@dataclass
class SupabasePhotoStore:
    """Upload photos to a public Supabase Storage bucket."""

    client: Any  # supabase.Client
    bucket_name: str = DEFAULT_BUCKET

    @classmethod
    def from_credentials(cls, url: str, key: str, bucket_name: str = DEFAULT_BUCKET) -> "SupabasePhotoStore":
        from supabase import create_client

        return cls(client=create_client(url, key), bucket_name=bucket_name)

    def ensure_bucket(self) -> None:
        try:
            buckets = self.client.storage.list_buckets()
        except Exception as exc:
            raise StorageError(f"Failed to list buckets: {exc}") from exc

        if any(b.name == self.bucket_name for b in buckets):
            log.info("bucket %r already exists", self.bucket_name)
            return

        try:
            self.client.storage.create_bucket(
                self.bucket_name,
                options={
                    "public": True,
                    "file_size_limit": BUCKET_FILE_SIZE_LIMIT,
                    "allowed_mime_types": BUCKET_ALLOWED_MIME_TYPES,
                },
            )
        except Exception as exc:
            raise StorageError(f"Failed to create bucket {self.bucket_name!r}: {exc}") from exc
        log.info("created bucket %r", self.bucket_name)

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        bucket = self.client.storage.from_(self.bucket_name)
        try:
            bucket.upload(
                path,
                content,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except Exception as exc:
            raise StorageError(f"Failed to upload to Supabase: {exc}") from exc
        return bucket.get_public_url(path)


# ---------------------------------------------------------------------------
# Google Cloud Storage
# ---------------------------------------------------------------------------

@dataclass
class GcsPhotoStore:
    """Upload photos to a GCS bucket. Bucket name is set at construction."""

    bucket_name: str = DEFAULT_BUCKET
    project: str | None = None
    _client: Any = field(default=None, init=False, repr=False)

    def _get_client(self) -> Any:
        if self._client is None:
            from google.cloud import storage  # type: ignore[import-untyped]

            self._client = storage.Client(project=self.project)
        return self._client

    def ensure_bucket(self) -> None:
        client = self._get_client()
        try:
            if client.lookup_bucket(self.bucket_name) is not None:
                log.info("bucket %r already exists", self.bucket_name)
                return
            client.create_bucket(self.bucket_name)
        except Exception as exc:
            raise StorageError(f"GCS bucket setup failed for {self.bucket_name!r}: {exc}") from exc
        log.info("created bucket %r", self.bucket_name)

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        blob = self._get_client().bucket(self.bucket_name).blob(path)
        try:
            blob.upload_from_string(content, content_type=content_type)
        except Exception as exc:
            raise StorageError(f"Failed to upload to GCS: {exc}") from exc
        return blob.public_url


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------

@dataclass
class LocalPhotoStore:
    """Write photos under base_dir/bucket_name (used in tests / offline runs)."""

    base_dir: Path
    bucket_name: str = DEFAULT_BUCKET

    @property
    def root(self) -> Path:
        return self.base_dir / self.bucket_name

    def ensure_bucket(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        dest = self.root / path
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(content)
        return dest.resolve().as_uri()
