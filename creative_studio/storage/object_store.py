"""Durable object storage for uploaded media and generated artifacts.

Keys follow ``{owner}/{job-or-exec-id}/{index}{ext}``.
"""

import mimetypes
import os
import shutil
from abc import ABC, abstractmethod
from typing import Optional

from creative_studio.jobs.errors import StorageError


def artifact_key(owner: str, scope_id: str, index: int, ext: str = "") -> str:
    if ext and not ext.startswith("."):
        ext = "." + ext
    return f"{owner}/{scope_id}/{index}{ext}"


def extension_for(content_type: Optional[str], filename: Optional[str] = None) -> str:
    """Pick a file extension from the upload's filename, falling back to its MIME type."""
    if filename:
        ext = os.path.splitext(filename)[1]
        if ext:
            return ext.lower()
    if content_type:
        guessed = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if guessed:
            return guessed
    return ""


class ObjectStore(ABC):
    @abstractmethod
    def upload(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` (overwriting) and return the key."""
        ...

    @abstractmethod
    def upload_file(self, key: str, path: str, content_type: str) -> str:
        """Store the local file at ``path`` without loading it into memory."""
        ...

    @abstractmethod
    def download(self, key: str) -> bytes:
        ...

    @abstractmethod
    def signed_url(self, key: str, expires_in: int) -> str:
        """Time-limited URL for clients."""
        ...


class LocalObjectStore(ObjectStore):
    """Files on local disk, served by URL prefix. For development and tests."""

    def __init__(self, base_dir: str, base_url: str = "http://localhost:8000/files"):
        self._base_dir = base_dir
        self._base_url = base_url.rstrip("/")
        os.makedirs(self._base_dir, exist_ok=True)

    def _path(self, key: str) -> str:
        path = os.path.normpath(os.path.join(self._base_dir, key))
        if not path.startswith(os.path.normpath(self._base_dir) + os.sep):
            raise StorageError(f"Invalid storage key: {key}")
        return path

    def upload(self, key, data, content_type):
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as dst:
                dst.write(data)
        except OSError as exc:
            raise StorageError(f"Failed to store {key}: {exc}") from exc
        return key

    def upload_file(self, key, path, content_type):
        target = self._path(key)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            shutil.copyfile(path, target)
        except OSError as exc:
            raise StorageError(f"Failed to store {key}: {exc}") from exc
        return key

    def download(self, key):
        try:
            with open(self._path(key), "rb") as src:
                return src.read()
        except OSError as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc

    def signed_url(self, key, expires_in):
        return f"{self._base_url}/{key}?expires_in={expires_in}"

    def exists(self, key: str) -> bool:
        return os.path.exists(self._path(key))


class SupabaseObjectStore(ObjectStore):
    """A Supabase Storage bucket."""

    def __init__(self, client, bucket: str):
        self._client = client
        self._bucket = bucket

    def _storage(self):
        return self._client.storage.from_(self._bucket)

    def upload(self, key, data, content_type):
        try:
            self._storage().upload(
                key,
                data,
                {"content-type": content_type, "upsert": "true"},
            )
        except Exception as exc:
            raise StorageError(f"Upload failed for {key}: {exc}") from exc
        return key

    def upload_file(self, key, path, content_type):
        try:
            with open(path, "rb") as src:
                self._storage().upload(
                    key,
                    src,
                    {"content-type": content_type, "upsert": "true"},
                )
        except Exception as exc:
            raise StorageError(f"Upload failed for {key}: {exc}") from exc
        return key

    def download(self, key):
        try:
            return self._storage().download(key)
        except Exception as exc:
            raise StorageError(f"Failed to download {key}: {exc}") from exc

    def signed_url(self, key, expires_in):
        try:
            signed = self._storage().create_signed_url(key, expires_in)
        except Exception as exc:
            raise StorageError(f"Failed to create signed URL for {key}: {exc}") from exc
        return signed.get("signedURL") or signed.get("signedUrl")
