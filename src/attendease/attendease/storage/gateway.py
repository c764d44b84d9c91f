from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Iterable, Mapping, Optional, Sequence

from werkzeug.utils import secure_filename

from ..core.constants import CONTENT_TYPE_EXTENSIONS, DEFAULT_CONTENT_TYPE
from ..core.enums import StorageBackend
from ..core.exceptions import ImageNotFound, StorageUnavailable, ValidationError
from . import legacy
from .backends.base import BackendError, ObjectBackend
from .backends.local_backend import LocalBackend
from .model import ImageReference, ImageStream, StoredObject

logger = logging.getLogger(__name__)


def storage_key(logical_name: str, content_type: str) -> str:
    """Normalise a logical name into a safe key whose extension matches the content type."""
    ext = CONTENT_TYPE_EXTENSIONS.get(content_type)
    if ext is None:
        raise ValidationError(f"Unsupported image content type: {content_type}")

    parts = [p for p in logical_name.replace("\\", "/").split("/") if p]
    safe = [secure_filename(p) for p in parts]
    if not safe or any(not p for p in safe):
        raise ValidationError("Invalid image name")

    safe[-1] = f"{PurePosixPath(safe[-1]).stem}{ext}"
    return "/".join(safe)


def listing_prefix(prefix: str) -> str:
    """Folder-style prefix (``faces/``); only plain name segments are accepted."""
    parts = [p for p in prefix.strip().split("/") if p]
    if not parts or any(secure_filename(p) != p for p in parts):
        raise ValidationError("Invalid image prefix")
    return "/".join(parts) + "/"


class ObjectStorageGateway:
    """Uniform store/resolve over an ordered chain of backends.

    ``store`` walks the chain in order and returns a reference tagged with the
    backend that accepted the write. ``resolve`` dispatches on the tag.
    """

    def __init__(
        self,
        backends: Sequence[ObjectBackend],
        *,
        readers: Optional[Iterable[ObjectBackend]] = None,
    ):
        chain = [b for b in backends if b.writable]
        if not chain or not isinstance(chain[-1], LocalBackend):
            raise ValueError("storage chain must end with a local backend")
        self._chain = chain

        by_tag: dict[StorageBackend, ObjectBackend] = {}
        for backend in list(chain) + list(readers or []):
            by_tag.setdefault(backend.tag, backend)
        self._readers: Mapping[StorageBackend, ObjectBackend] = by_tag

    @property
    def chain(self) -> tuple[str, ...]:
        return tuple(b.name for b in self._chain)

    def _reader(self, ref: ImageReference) -> ObjectBackend:
        backend = self._readers.get(ref.backend)
        if backend is None:
            raise StorageUnavailable(f"No storage backend configured for {ref.backend.value} images")
        return backend

    def _put_with_retry(self, backend: ObjectBackend, key: str, data: bytes, content_type: str) -> bool:
        for attempt in (1, 2):
            try:
                backend.put(key, data, content_type)
                return True
            except BackendError as exc:
                if exc.retryable and attempt == 1:
                    logger.info("Storage backend %s failed transiently (%s); retrying once", backend.name, exc)
                    continue
                logger.warning("Storage backend %s failed: %s", backend.name, exc)
                return False
        return False

    def store(self, data: bytes, logical_name: str, content_type: str = DEFAULT_CONTENT_TYPE) -> ImageReference:
        key = storage_key(logical_name, content_type)
        for position, backend in enumerate(self._chain):
            if self._put_with_retry(backend, key, data, content_type):
                if position:
                    logger.warning("Stored %s on fallback backend %s", key, backend.name)
                return ImageReference(backend=backend.tag, key=key)
        raise StorageUnavailable(backend=self._chain[-1].name)

    def resolve(self, ref: ImageReference) -> ImageStream:
        backend = self._reader(ref)
        try:
            return backend.get(ref.key)
        except BackendError as exc:
            if exc.not_found:
                raise ImageNotFound() from exc
            logger.warning("Image read from %s failed: %s", backend.name, exc)
            raise StorageUnavailable(backend=backend.name) from exc

    def exists(self, ref: ImageReference) -> bool:
        backend = self._reader(ref)
        try:
            return backend.exists(ref.key)
        except BackendError as exc:
            raise StorageUnavailable(backend=backend.name) from exc

    def delete(self, ref: ImageReference) -> None:
        backend = self._reader(ref)
        try:
            backend.delete(ref.key)
        except BackendError as exc:
            raise StorageUnavailable(backend=backend.name) from exc

    def discard(self, ref: ImageReference) -> bool:
        """Best-effort delete used by compensating actions; failures are only logged."""
        try:
            self.delete(ref)
            return True
        except StorageUnavailable:
            logger.warning("Could not remove orphaned image from %s storage", ref.backend.value, exc_info=True)
            return False

    def list_objects(self, prefix: str, *, page_size: int = 200) -> list[StoredObject]:
        """Images under ``prefix`` across every listable backend of the chain."""
        prefix = listing_prefix(prefix)
        found: list[StoredObject] = []
        for backend in self._chain:
            if not backend.listable:
                continue
            try:
                found.extend(backend.list_objects(prefix, page_size=page_size))
            except BackendError as exc:
                logger.warning("Listing %s on %s failed: %s", prefix, backend.name, exc)
                raise StorageUnavailable(backend=backend.name) from exc
        return found

    def public_url(self, ref: ImageReference) -> Optional[str]:
        backend = self._readers.get(ref.backend)
        return backend.public_url(ref.key) if backend else None

    def native_image(self, ref: ImageReference) -> Optional[dict]:
        backend = self._readers.get(ref.backend)
        return backend.native_image(ref.key) if backend else None

    def _object_store_hosts(self) -> tuple[str, ...]:
        backend = self._readers.get(StorageBackend.OBJECT_STORE)
        return tuple(getattr(backend, "hosts", ()))

    def parse_reference(self, value: Optional[str]) -> Optional[ImageReference]:
        """Turn a persisted value (tagged or legacy) into a reference."""
        if not value:
            return None
        ref = ImageReference.from_tagged(value)
        if ref is not None:
            return ref
        return legacy.to_reference(value, object_store_hosts=self._object_store_hosts())
