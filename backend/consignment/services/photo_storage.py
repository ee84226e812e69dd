# Overview: Photo storage adapter. Stores item photos and hands back a public URL.

"""
Photo Storage

Contract consumed by photo_service:
    store(stream, *, org_id, item_id, filename) -> (url, key)
    delete(key) -> None

The only implementation is the local filesystem under PHOTO_STORAGE_DIR,
served by the system blueprint at PHOTO_BASE_URL. Keys are relative paths
("<org>/<item>/<random>.<ext>") so they never leave the storage root.
"""

from __future__ import annotations

import os
import secrets
import shutil

from flask import current_app


class PhotoStorageError(Exception):
    """Raised when the storage backend cannot store or delete a file."""
    pass


class LocalPhotoStorage:
    def __init__(self, root_dir: str, base_url: str):
        self.root_dir = os.path.abspath(root_dir)
        self.base_url = base_url.rstrip("/")

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root_dir, key))
        if os.path.commonpath([path, self.root_dir]) != self.root_dir:
            raise PhotoStorageError("Invalid storage key")
        return path

    def store(self, stream, *, org_id: int, item_id: int, filename: str) -> tuple[str, str]:
        ext = os.path.splitext(filename)[1].lower()
        key = f"{org_id}/{item_id}/{secrets.token_hex(8)}{ext}"
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as fh:
                shutil.copyfileobj(stream, fh)
        except OSError as exc:
            raise PhotoStorageError(f"Could not store photo: {exc}") from exc
        return f"{self.base_url}/{key}", key

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise PhotoStorageError(f"Could not delete photo: {exc}") from exc


def get_photo_storage() -> LocalPhotoStorage:
    storage_dir = current_app.config["PHOTO_STORAGE_DIR"]
    if not os.path.isabs(storage_dir):
        storage_dir = os.path.join(current_app.root_path, "..", storage_dir)
    return LocalPhotoStorage(storage_dir, current_app.config["PHOTO_BASE_URL"])
