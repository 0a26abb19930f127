from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol

from services.errors import AccountError, ErrorKind

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}

DEFAULT_MAX_BYTES = 5 * 1024 * 1024


class PathTraversalError(ValueError):
    """Raised when a storage key escapes the upload directory."""


@dataclass(frozen=True)
class StoredAvatar:
    key: str
    url: str


class AvatarStorage(Protocol):
    def save(self, user_id: str, stream: BinaryIO, content_type: str) -> StoredAvatar: ...

    def delete(self, key: str) -> None: ...


class LocalAvatarStorage:
    """Keeps avatars as files under base_dir and serves them from base_url."""

    def __init__(self, base_dir: str, base_url: str, max_bytes: int = DEFAULT_MAX_BYTES):
        self.base_dir = Path(base_dir).resolve()
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes

    def _path(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        if path.parent != self.base_dir:
            raise PathTraversalError(key)
        return path

    def save(self, user_id: str, stream: BinaryIO, content_type: str) -> StoredAvatar:
        ext = ALLOWED_CONTENT_TYPES.get((content_type or "").lower())
        if ext is None:
            raise AccountError(ErrorKind.INVALID_AVATAR, "avatar must be a JPEG, PNG, GIF or WebP image")
        data = stream.read(self.max_bytes + 1)
        if not data:
            raise AccountError(ErrorKind.INVALID_AVATAR, "avatar file is empty")
        if len(data) > self.max_bytes:
            raise AccountError(ErrorKind.INVALID_AVATAR, f"avatar must be at most {self.max_bytes} bytes")

        key = f"user_{user_id}_{uuid.uuid4().hex}{ext}"
        try:
            path = self._path(key)
            self.base_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except (OSError, PathTraversalError) as exc:
            raise AccountError(ErrorKind.AVATAR_UPLOAD_FAILED) from exc
        return StoredAvatar(key=key, url=f"{self.base_url}/{key}")

    def delete(self, key: str) -> None:
        if not key:
            return
        self._path(key).unlink(missing_ok=True)
        logger.info("Deleted avatar file %s", key)
