"""Attachment paths and blob storage."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import secrets
import time
from pathlib import Path, PurePosixPath
from typing import Iterable, Protocol
from urllib.parse import quote, urlencode

from .errors import BlobStoreError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES: tuple[str, ...] = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
    "text/plain",
)
DEFAULT_MAX_ATTACHMENT_MB = 10

# Older rows stored full public URLs instead of bucket-relative paths.
_LEGACY_PUBLIC_MARKER = "/public/ticket-attachments/"


def normalize_attachment_path(reference: str) -> str:
    """Return the bucket-relative path for a stored attachment reference."""

    if _LEGACY_PUBLIC_MARKER in reference:
        _, _, tail = reference.partition(_LEGACY_PUBLIC_MARKER)
        if tail:
            return tail
    return reference


def build_attachment_path(user_id: str, ticket_id: str, filename: str, *, now_ms: int | None = None) -> str:
    """Generate a fresh storage path ``{user}/{ticket}/{epoch_ms}-{random}.{ext}``."""

    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = PurePosixPath(filename).suffix.lstrip(".").lower() or "bin"
    token = secrets.token_hex(6)
    return f"{user_id}/{ticket_id}/{timestamp}-{token}.{suffix}"


def attachment_ticket_id(reference: str) -> str | None:
    """Return the ticket id encoded in a ``{user}/{ticket}/{file}`` path."""

    parts = normalize_attachment_path(reference).strip("/").split("/")
    if len(parts) != 3 or not all(parts):
        return None
    return parts[1]


def validate_upload(
    filename: str,
    content_type: str | None,
    size: int,
    *,
    max_mb: int = DEFAULT_MAX_ATTACHMENT_MB,
    allowed_types: Iterable[str] = ALLOWED_CONTENT_TYPES,
) -> None:
    if not filename:
        raise ValidationError("Filename is required", fields=["filename"])
    if content_type not in tuple(allowed_types):
        raise ValidationError(
            f"File type {content_type!r} is not allowed",
            fields=["content_type"],
        )
    if size > max_mb * 1024 * 1024:
        raise ValidationError(f"File exceeds the {max_mb}MB limit", fields=["size"])


class BlobStore(Protocol):
    async def upload(self, path: str, content: bytes, content_type: str | None = None) -> None:
        ...

    async def delete(self, paths: Iterable[str]) -> None:
        ...

    async def signed_url(self, path: str, expires_in: int) -> str:
        ...


class LocalBlobStore:
    """Blob store writing attachments below a local directory."""

    def __init__(self, root: str | Path, *, url_base: str, signing_secret: str) -> None:
        self._root = Path(root)
        self._url_base = url_base.rstrip("/")
        self._secret = signing_secret.encode("utf-8")

    def _resolve(self, path: str) -> Path:
        relative = normalize_attachment_path(path).lstrip("/")
        target = (self._root / relative).resolve()
        if not target.is_relative_to(self._root.resolve()):
            raise BlobStoreError(f"Path {path!r} escapes the attachment root", paths=[path])
        return target

    async def upload(self, path: str, content: bytes, content_type: str | None = None) -> None:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise BlobStoreError(f"Failed to store {path}: {exc}", paths=[path]) from exc
        logger.debug("Stored attachment %s (%d bytes)", path, len(content))

    async def delete(self, paths: Iterable[str]) -> None:
        failed: list[str] = []
        for path in paths:
            target = self._resolve(path)
            try:
                await asyncio.to_thread(target.unlink, missing_ok=True)
            except OSError:
                logger.exception("Failed to delete attachment %s", path)
                failed.append(path)
        if failed:
            raise BlobStoreError(f"Failed to delete {len(failed)} attachment(s)", paths=failed)

    async def signed_url(self, path: str, expires_in: int) -> str:
        relative = normalize_attachment_path(path)
        expires = int(time.time()) + expires_in
        query = urlencode({"expires": expires, "signature": self._sign(relative, expires)})
        return f"{self._url_base}/{quote(relative)}?{query}"

    def local_path(self, path: str) -> Path:
        """Return the file backing ``path``; raises ``BlobStoreError`` if it escapes the root."""

        return self._resolve(path)

    def verify_signature(self, path: str, expires: int, signature: str, *, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        if expires < current:
            return False
        return hmac.compare_digest(self._sign(normalize_attachment_path(path), expires), signature)

    def _sign(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()
