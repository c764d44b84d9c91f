from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Iterator, Optional

from ..core.enums import StorageBackend


@dataclass(frozen=True)
class ImageReference:
    """Locator of a stored image, tagged with the backend that holds it.

    Persisted as ``<tag>:<key>``. References are never edited in place: a new
    capture always gets a new key.
    """

    backend: StorageBackend
    key: str

    def serialize(self) -> str:
        return f"{self.backend.value}:{self.key}"

    @classmethod
    def from_tagged(cls, value: str) -> Optional["ImageReference"]:
        """Parse a ``<tag>:<key>`` value; ``None`` when the tag is unknown."""
        tag, sep, key = value.partition(":")
        if not sep or not key:
            return None
        try:
            backend = StorageBackend(tag)
        except ValueError:
            return None
        return cls(backend=backend, key=key)


@dataclass
class ImageStream:
    body: BinaryIO
    content_type: str

    def read(self) -> bytes:
        try:
            return self.body.read()
        finally:
            self.close()

    def iter_chunks(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        try:
            while True:
                chunk = self.body.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        close = getattr(self.body, "close", None)
        if close:
            close()


@dataclass(frozen=True)
class StoredObject:
    """One listed image, as reported by the backend holding it."""

    ref: ImageReference
    size: Optional[int] = None
    last_modified: Optional[datetime] = None
