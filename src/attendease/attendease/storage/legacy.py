"""Adapter for image locators stored before references carried a backend tag.

Old rows hold one of: a local path (``/uploads/attendance/x.jpg``), an S3
public URL, a bare S3 key (``attendance/x.jpg``) or a B2 / other download URL.
"""
from __future__ import annotations

from typing import Iterable
from urllib.parse import urlparse

from ..core.constants import LOCAL_URL_PREFIX
from ..core.enums import StorageBackend
from ..core.exceptions import ValidationError
from .model import ImageReference


def _is_object_store_host(host: str, known_hosts: Iterable[str]) -> bool:
    if host in known_hosts:
        return True
    return host.endswith(".amazonaws.com") and (".s3." in f".{host}" or ".s3-" in f".{host}")


def classify(value: str, *, object_store_hosts: Iterable[str] = ()) -> StorageBackend:
    """Tell which backend a legacy locator belongs to."""
    if not value or not value.strip():
        raise ValidationError("Image locator is empty")
    value = value.strip()

    if value.startswith(LOCAL_URL_PREFIX):
        return StorageBackend.LOCAL

    if value.lower().startswith(("http://", "https://")):
        host = urlparse(value).netloc.lower()
        known = {h.lower() for h in object_store_hosts}
        if _is_object_store_host(host, known):
            return StorageBackend.OBJECT_STORE
        return StorageBackend.EXTERNAL

    return StorageBackend.OBJECT_STORE


def to_reference(value: str, *, object_store_hosts: Iterable[str] = ()) -> ImageReference:
    backend = classify(value, object_store_hosts=object_store_hosts)
    value = value.strip()
    if backend is StorageBackend.LOCAL:
        return ImageReference(backend=backend, key=value[len(LOCAL_URL_PREFIX):])
    return ImageReference(backend=backend, key=value)
