"""Unit tests for photo storage backends.

No network access required; Supabase and GCS clients are mocked.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from occupeye_etl.storage import (
    BUCKET_ALLOWED_MIME_TYPES,
    BUCKET_FILE_SIZE_LIMIT,
    GcsPhotoStore,
    LocalPhotoStore,
    StorageError,
    SupabasePhotoStore,
)


# ---------------------------------------------------------------------------
# SupabasePhotoStore
# ---------------------------------------------------------------------------

class TestSupabasePhotoStore:
    def _store(self, bucket_names=()):
        client = MagicMock()
        client.storage.list_buckets.return_value = [SimpleNamespace(name=n) for n in bucket_names]
        return SupabasePhotoStore(client=client, bucket_name="occupeye-photos"), client

    def test_existing_bucket_not_recreated(self):
        store, client = self._store(["other", "occupeye-photos"])
        store.ensure_bucket()
        client.storage.create_bucket.assert_not_called()

    def test_missing_bucket_created_public(self):
        store, client = self._store(["other"])
        store.ensure_bucket()
        client.storage.create_bucket.assert_called_once_with(
            "occupeye-photos",
            options={
                "public": True,
                "file_size_limit": BUCKET_FILE_SIZE_LIMIT,
                "allowed_mime_types": BUCKET_ALLOWED_MIME_TYPES,
            },
        )

    def test_list_failure_raises_storage_error(self):
        store, client = self._store()
        client.storage.list_buckets.side_effect = RuntimeError("401 invalid key")
        with pytest.raises(StorageError, match="list buckets"):
            store.ensure_bucket()

    def test_create_failure_raises_storage_error(self):
        store, client = self._store()
        client.storage.create_bucket.side_effect = RuntimeError("forbidden")
        with pytest.raises(StorageError, match="create bucket"):
            store.ensure_bucket()

    def test_upload_returns_public_url(self):
        store, client = self._store()
        bucket = client.storage.from_.return_value
        bucket.get_public_url.return_value = "https://x.supabase.co/storage/v1/object/public/p/0.webp"

        url = store.upload("p/0.webp", b"data", "image/webp")

        client.storage.from_.assert_called_with("occupeye-photos")
        bucket.upload.assert_called_once_with(
            "p/0.webp",
            b"data",
            file_options={"content-type": "image/webp", "upsert": "true"},
        )
        assert url.endswith("/p/0.webp")

    def test_upload_failure_raises_storage_error(self):
        store, client = self._store()
        client.storage.from_.return_value.upload.side_effect = RuntimeError("413 too large")
        with pytest.raises(StorageError, match="413"):
            store.upload("p/0.webp", b"data", "image/webp")


# ---------------------------------------------------------------------------
# GcsPhotoStore
# ---------------------------------------------------------------------------

class TestGcsPhotoStore:
    def _store(self):
        store = GcsPhotoStore(bucket_name="occupeye-photos")
        client = MagicMock()
        store._client = client
        return store, client

    def test_existing_bucket_not_recreated(self):
        store, client = self._store()
        client.lookup_bucket.return_value = MagicMock()
        store.ensure_bucket()
        client.create_bucket.assert_not_called()

    def test_missing_bucket_created(self):
        store, client = self._store()
        client.lookup_bucket.return_value = None
        store.ensure_bucket()
        client.create_bucket.assert_called_once_with("occupeye-photos")

    def test_upload_returns_blob_public_url(self):
        store, client = self._store()
        blob = client.bucket.return_value.blob.return_value
        blob.public_url = "https://storage.googleapis.com/occupeye-photos/a/0.webp"
        assert store.upload("a/0.webp", b"x", "image/webp") == blob.public_url
        blob.upload_from_string.assert_called_once_with(b"x", content_type="image/webp")

    def test_upload_failure_raises_storage_error(self):
        store, client = self._store()
        client.bucket.return_value.blob.return_value.upload_from_string.side_effect = RuntimeError("boom")
        with pytest.raises(StorageError):
            store.upload("a/0.webp", b"x", "image/webp")


# ---------------------------------------------------------------------------
# LocalPhotoStore
# ---------------------------------------------------------------------------

class TestLocalPhotoStore:
    def test_ensure_bucket_creates_dir(self, tmp_path):
        store = LocalPhotoStore(base_dir=tmp_path)
        store.ensure_bucket()
        assert (tmp_path / "occupeye-photos").is_dir()

    def test_upload_writes_file_and_returns_uri(self, tmp_path):
        store = LocalPhotoStore(base_dir=tmp_path, bucket_name="b")
        url = store.upload("organizations/o/photos/spots/s/1.webp", b"img", "image/webp")
        dest = tmp_path / "b" / "organizations/o/photos/spots/s/1.webp"
        assert dest.read_bytes() == b"img"
        assert url.startswith("file://")
        assert url.endswith("/spots/s/1.webp")

    def test_upload_overwrites(self, tmp_path):
        store = LocalPhotoStore(base_dir=tmp_path)
        store.upload("a/0.webp", b"first", "image/webp")
        store.upload("a/0.webp", b"second", "image/webp")
        assert (store.root / "a/0.webp").read_bytes() == b"second"
