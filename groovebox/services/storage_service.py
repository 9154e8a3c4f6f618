from __future__ import annotations

import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import UploadFile
from groovebox.core import settings


logger = logging.getLogger(__name__)


class UploadTooLarge(ValueError):
    pass


@dataclass(frozen=True)
class StoredObject:
    """
    key: relative path under STORAGE_DIR (e.g. "songs/2026/02/02/<uuid>.mp3")
    abs_path: absolute filesystem path to the stored file
    url: public URL path (e.g. "/storage/songs/2026/02/02/<uuid>.mp3")
    mime: MIME type string used for Content-Type
    size: bytes written
    """
    key: str
    abs_path: str
    url: str
    mime: str
    size: int


class StorageService:
    """
    Local filesystem storage for uploaded songs.

    Guarantees:
    - Generates safe file keys (no user path traversal)
    - Writes atomically (tmp file + replace)
    - Produces a URL your client can GET directly (served under /storage with byte-range support)
    """

    def __init__(
        self,
        storage_dir: str | Path | None = None,
        base_url: str | None = None,
        max_bytes: int | None = None,
    ):
        self.storage_dir = Path(storage_dir or settings.STORAGE_DIR)
        self.base_url = (base_url or settings.STORAGE_BASE_URL).rstrip("/")
        self.max_bytes = max_bytes if max_bytes is not None else settings.MAX_UPLOAD_BYTES
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    # ---------- public API ----------

    async def save_upload(self, upload: UploadFile, *, ext: Optional[str] = None) -> StoredObject:
        """
        Save an uploaded song. Returns storage key + public URL.

        Raises UploadTooLarge (and leaves nothing behind) when the body exceeds max_bytes.
        """
        mime = self._resolve_mime(upload.filename, upload.content_type)
        suffix = ext or self._resolve_suffix(upload.filename, mime)
        key = self._make_key(suffix=suffix)
        abs_path = self.storage_dir / key
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        # Stream-write to disk (avoid reading entire file into memory)
        tmp_path = abs_path.with_suffix(abs_path.suffix + ".tmp")
        try:
            size = await self._write_upload_to_path(upload, tmp_path)
        except UploadTooLarge:
            tmp_path.unlink(missing_ok=True)
            raise
        os.replace(tmp_path, abs_path)
        logger.info("Stored upload %s (%d bytes) as %s", upload.filename, size, key)

        return StoredObject(
            key=key,
            abs_path=str(abs_path),
            url=self.public_url(key),
            mime=mime,
            size=size,
        )

    def public_url(self, key: str) -> str:
        key_norm = key.replace("\\", "/").lstrip("/")
        return f"{self.base_url}/{key_norm}"

    def abs_path(self, key: str) -> Path | None:
        """Resolve a key under STORAGE_DIR; None if it escapes the directory."""
        base = self.storage_dir.resolve()
        target = (base / key.replace("\\", "/").lstrip("/")).resolve()
        if not target.is_relative_to(base):
            return None
        return target

    def path_for_locator(self, locator: str | None) -> Path | None:
        """Map a locator produced by public_url back to a file, if it is one of ours."""
        if not locator:
            return None
        prefix = f"{self.base_url}/"
        if not locator.startswith(prefix):
            return None
        path = self.abs_path(locator[len(prefix):])
        if path is None or not path.is_file():
            return None
        return path

    # ---------- internals ----------

    def _make_key(self, *, suffix: str) -> str:
        # shard by date to avoid huge directories
        now = datetime.now(timezone.utc)
        date_prefix = now.strftime("%Y/%m/%d")
        safe_suffix = suffix if suffix.startswith(".") else f".{suffix}"
        return f"songs/{date_prefix}/{uuid.uuid4().hex}{safe_suffix}"

    def _resolve_mime(self, filename: Optional[str], content_type: Optional[str]) -> str:
        if content_type and content_type != "application/octet-stream":
            return content_type
        if filename:
            guess, _ = mimetypes.guess_type(filename)
            if guess:
                return guess
        return "application/octet-stream"

    def _resolve_suffix(self, filename: Optional[str], mime: str) -> str:
        if filename:
            suf = Path(filename).suffix
            if suf and len(suf) <= 10:
                return suf
        return self._suffix_from_mime(mime) or ".bin"

    def _suffix_from_mime(self, mime: str) -> Optional[str]:
        if mime in ("audio/mpeg", "audio/mp3"):
            return ".mp3"
        if mime in ("audio/wav", "audio/x-wav"):
            return ".wav"
        if mime == "audio/flac":
            return ".flac"
        if mime in ("audio/ogg", "application/ogg"):
            return ".ogg"
        if mime in ("audio/mp4", "audio/aac", "audio/x-m4a"):
            return ".m4a"
        return None

    async def _write_upload_to_path(self, upload: UploadFile, path: Path) -> int:
        chunk_size = 1024 * 1024  # 1MB
        written = 0
        with path.open("wb") as f:
            while True:
                chunk = await upload.read(chunk_size)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_bytes:
                    raise UploadTooLarge(f"file exceeds {self.max_bytes} bytes")
                f.write(chunk)
        return written


def get_storage() -> StorageService:
    return StorageService()
