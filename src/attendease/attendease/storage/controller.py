from __future__ import annotations

from flask import Flask, Response

from ..container import Container
from ..core.constants import LOCAL_URL_PREFIX
from ..core.enums import StorageBackend
from .model import ImageReference


def register(app: Flask, container: Container) -> None:
    storage = container.storage

    @app.route(f"{LOCAL_URL_PREFIX}<path:key>", methods=["GET"], endpoint="uploads")
    def uploaded_image(key: str):
        """Serve an image held by the local fallback backend."""
        stream = storage.resolve(ImageReference(backend=StorageBackend.LOCAL, key=key))
        return Response(stream.iter_chunks(), mimetype=stream.content_type)
