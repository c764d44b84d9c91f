from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator, Optional

from ...core.enums import StorageBackend
from ..model import ImageStream, StoredObject


class BackendError(Exception):
    """A failed backend call. Translated by the gateway, never raised past it."""

    def __init__(self, backend: str, message: str, *, not_found: bool = False, retryable: bool = False):
        super().__init__(f"{backend}: {message}")
        self.backend = backend
        self.not_found = not_found
        self.retryable = retryable


class ObjectBackend(ABC):
    """One place images can be written to and read from."""

    name: str
    tag: StorageBackend

    @property
    def writable(self) -> bool:
        return True

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` and return the key actually used."""
        raise NotImplementedError

    @abstractmethod
    def get(self, locator: str) -> ImageStream:
        raise NotImplementedError

    @abstractmethod
    def delete(self, locator: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def exists(self, locator: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def public_url(self, locator: str) -> Optional[str]:
        raise NotImplementedError

    def native_image(self, locator: str) -> Optional[dict]:
        """Recognition-service image pointer, when the backend supports one."""
        return None

    def key_from_locator(self, locator: str) -> str:
        return locator

    @property
    def listable(self) -> bool:
        return False

    def list_objects(self, prefix: str, *, page_size: int = 200) -> Iterator[StoredObject]:
        """Every stored object whose key starts with ``prefix``."""
        raise BackendError(self.name, "listing not supported")
