"""
Blob references.

`ExternalBlob` is the handle the backend hands out for uploaded files (form
attachments, hero images, service icons). A blob is either local bytes waiting
to be uploaded or a reference to an already stored object reachable by URL.
"""

from __future__ import annotations

import base64
import logging
import mimetypes
from typing import Callable, Iterator, Optional

import httpx

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

UPLOAD_CHUNK_SIZE = 64 * 1024


class ExternalBlob:
    def __init__(
        self,
        *,
        data: Optional[bytes] = None,
        url: Optional[str] = None,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> None:
        if data is None and not url:
            raise ValueError("ExternalBlob needs either bytes or a URL")
        self._data = data
        self._url = url
        self.filename = filename
        self.content_type = content_type or _guess_content_type(filename)
        self._on_progress: Optional[ProgressCallback] = None

    @classmethod
    def from_bytes(cls, data: bytes, *, filename: Optional[str] = None, content_type: Optional[str] = None) -> "ExternalBlob":
        return cls(data=bytes(data), filename=filename, content_type=content_type)

    @classmethod
    def from_url(cls, url: str) -> "ExternalBlob":
        return cls(url=url)

    def with_upload_progress(self, on_progress: ProgressCallback) -> "ExternalBlob":
        self._on_progress = on_progress
        return self

    @property
    def is_uploaded(self) -> bool:
        return bool(self._url) and not self._url.startswith("data:")

    @property
    def size(self) -> Optional[int]:
        return len(self._data) if self._data is not None else None

    def get_direct_url(self) -> str:
        if self._url:
            return self._url
        encoded = base64.b64encode(self._data or b"").decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"

    async def get_bytes(self, timeout_seconds: float = 20.0) -> bytes:
        if self._data is not None:
            return self._data
        if self._url.startswith("data:"):
            _, _, payload = self._url.partition(",")
            return base64.b64decode(payload)
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(self._url)
            response.raise_for_status()
            self._data = response.content
        return self._data

    def mark_uploaded(self, url: str) -> None:
        self._url = url

    def report_progress(self, percentage: int) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(max(0, min(100, int(percentage))))
        except Exception:
            logger.exception("Upload progress callback failed")

    def iter_upload_chunks(self, chunk_size: int = UPLOAD_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the blob's bytes in chunks, reporting progress after each one."""
        data = self._data or b""
        total = len(data)
        if total == 0:
            self.report_progress(100)
            return
        sent = 0
        while sent < total:
            chunk = data[sent:sent + chunk_size]
            sent += len(chunk)
            yield chunk
            self.report_progress(sent * 100 // total)

    def to_reference(self) -> dict:
        return {
            "url": self.get_direct_url() if self.is_uploaded else None,
            "filename": self.filename,
            "content_type": self.content_type,
            "size": self.size,
        }

    def __repr__(self) -> str:
        target = self._url if self.is_uploaded else f"{self.size} bytes"
        return f"ExternalBlob({self.filename or 'unnamed'}, {target})"


def _guess_content_type(filename: Optional[str]) -> str:
    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed
    return "application/octet-stream"
