from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from werkzeug.utils import secure_filename

from ...core.constants import CONTENT_TYPE_EXTENSIONS, LOCAL_URL_PREFIX
from ...core.enums import StorageBackend
from ..model import ImageReference, ImageStream, StoredObject
from .base import BackendError, ObjectBackend


_EXTENSION_CONTENT_TYPES = {ext: ct for ct, ext in CONTENT_TYPE_EXTENSIONS.items()}
_EXTENSION_CONTENT_TYPES[".jpeg"] = "image/jpeg"


class LocalBackend(ObjectBackend):
    """Filesystem backend rooted at the upload directory.

    Files are written to ``<root>/<key>``; the root is created on the first
    write. Keys made of anything but plain file-name segments are refused.
    """

    name = "local"
    tag = StorageBackend.LOCAL

    def __init__(self, root: str | Path, *, url_prefix: str = LOCAL_URL_PREFIX):
        self._root = Path(root)
        self._url_prefix = url_prefix if url_prefix.endswith("/") else f"{url_prefix}/"

    def _path(self, locator: str) -> Path:
        key = self.key_from_locator(locator)
        parts = key.split("/")
        if not parts or any(not p or secure_filename(p) != p for p in parts):
            raise BackendError(self.name, "invalid key", not_found=True)
        return self._root.joinpath(*parts)

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise BackendError(self.name, f"write failed: {exc.strerror or exc}") from exc
        return key

    def get(self, locator: str) -> ImageStream:
        path = self._path(locator)
        try:
            fh = open(path, "rb")
        except FileNotFoundError:
            raise BackendError(self.name, "file not found", not_found=True) from None
        except OSError as exc:
            raise BackendError(self.name, f"read failed: {exc.strerror or exc}") from exc
        content_type = _EXTENSION_CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")
        return ImageStream(body=fh, content_type=content_type)

    def delete(self, locator: str) -> None:
        try:
            self._path(locator).unlink(missing_ok=True)
        except OSError as exc:
            raise BackendError(self.name, f"delete failed: {exc.strerror or exc}") from exc

    def exists(self, locator: str) -> bool:
        try:
            return self._path(locator).is_file()
        except BackendError:
            return False

    @property
    def listable(self) -> bool:
        return True

    def list_objects(self, prefix: str, *, page_size: int = 200) -> Iterator[StoredObject]:
        folder, _, _ = prefix.rpartition("/")
        base = self._path(folder) if folder else self._root
        if not base.is_dir():
            return
        for path in sorted(base.rglob("*")):
            if not path.is_file() or path.name.startswith(".upload-"):
                continue
            key = path.relative_to(self._root).as_posix()
            if not key.startswith(prefix):
                continue
            try:
                stat = path.stat()
            except OSError as exc:
                raise BackendError(self.name, f"list failed: {exc.strerror or exc}") from exc
            yield StoredObject(
                ref=ImageReference(backend=self.tag, key=key),
                size=stat.st_size,
                last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )

    def public_url(self, locator: str) -> Optional[str]:
        return f"{self._url_prefix}{self.key_from_locator(locator)}"

    def key_from_locator(self, locator: str) -> str:
        if locator.startswith(self._url_prefix):
            return locator[len(self._url_prefix):]
        return locator
