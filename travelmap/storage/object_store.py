"""Blob storage for uploaded photo bytes."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from travelmap.errors import PersistenceError

logger = logging.getLogger(__name__)

PHOTOS_PREFIX = "photos"


def photo_key(photo_id: str) -> str:
    return f"{PHOTOS_PREFIX}/{photo_id}"


class LocalObjectStore:
    """Flat key -> bytes store on the local filesystem.

    ``base_url`` is the public prefix the directory is served under; without
    one, download URLs are ``file://`` URIs.
    """

    def __init__(self, root: Path, base_url: Optional[str] = None) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._base_url = base_url.rstrip("/") if base_url else None

    def _path_for(self, key: str) -> Path:
        parts = [part for part in key.split("/") if part not in ("", ".", "..")]
        if not parts:
            raise ValueError(f"Invalid object key: {key!r}")
        return self._root.joinpath(*parts)

    def url_for(self, key: str) -> str:
        if self._base_url:
            return f"{self._base_url}/{quote(key)}"
        return self._path_for(key).resolve().as_uri()

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            path.with_name(path.name + ".meta").write_text(
                json.dumps({"contentType": content_type, "size": len(data)}), encoding="utf-8"
            )
        except OSError as exc:
            raise PersistenceError(f"Failed to upload object '{key}': {exc}") from exc
        logger.info("Stored object %s (%d bytes, %s)", key, len(data), content_type)
        return self.url_for(key)

    def get(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise PersistenceError(f"Object not found: '{key}'") from exc
        except OSError as exc:
            raise PersistenceError(f"Failed to read object '{key}': {exc}") from exc

    def content_type(self, key: str) -> Optional[str]:
        meta = self._path_for(key)
        meta = meta.with_name(meta.name + ".meta")
        if not meta.exists():
            return None
        return json.loads(meta.read_text(encoding="utf-8")).get("contentType")

    def exists(self, key: str) -> bool:
        return self._path_for(key).exists()

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise PersistenceError(f"Object not found: '{key}'") from exc
        except OSError as exc:
            raise PersistenceError(f"Failed to delete object '{key}': {exc}") from exc
        path.with_name(path.name + ".meta").unlink(missing_ok=True)
        logger.info("Deleted object %s", key)
