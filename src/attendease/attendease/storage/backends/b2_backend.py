from __future__ import annotations

import hashlib
import threading
import time
from typing import Optional
from urllib.parse import quote, unquote, urlparse

import requests

from ...core.constants import DEFAULT_CALL_TIMEOUT_SECONDS, DEFAULT_CONTENT_TYPE
from ...core.enums import StorageBackend
from ..model import ImageStream
from .base import BackendError, ObjectBackend


B2_AUTHORIZE_URL = "https://api.backblazeb2.com/b2api/v2/b2_authorize_account"
DEFAULT_B2_DOWNLOAD_HOST = "https://f005.backblazeb2.com"
# Account tokens are valid for 24 hours; refresh a little earlier.
AUTH_TOKEN_TTL_SECONDS = 23 * 3600


class B2Backend(ObjectBackend):
    """External blob backend speaking the native Backblaze B2 API.

    Without credentials the backend is read-only: it can still fetch public
    ``external`` URLs, which is how legacy references to arbitrary hosts are
    served.
    """

    name = "b2"
    tag = StorageBackend.EXTERNAL

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        key_id: Optional[str] = None,
        application_key: Optional[str] = None,
        bucket_id: Optional[str] = None,
        bucket_name: Optional[str] = None,
        download_host: str = DEFAULT_B2_DOWNLOAD_HOST,
        timeout: float = DEFAULT_CALL_TIMEOUT_SECONDS,
    ):
        self._session = session or requests.Session()
        self._key_id = key_id
        self._application_key = application_key
        self._bucket_id = bucket_id
        self._bucket_name = bucket_name
        self._download_host = download_host.rstrip("/")
        self._timeout = timeout
        self._auth: Optional[dict] = None
        self._auth_expires = 0.0
        self._auth_lock = threading.Lock()

    @property
    def writable(self) -> bool:
        return all([self._key_id, self._application_key, self._bucket_id, self._bucket_name])

    def _error(self, exc: requests.RequestException, action: str) -> BackendError:
        status = exc.response.status_code if exc.response is not None else None
        expired = status == 401 and self._auth is not None
        if expired:
            self._forget_auth()
        return BackendError(
            self.name,
            f"{action} failed ({status or type(exc).__name__})",
            not_found=status == 404,
            retryable=expired or isinstance(exc, requests.ConnectionError) or status in {500, 503},
        )

    def _forget_auth(self) -> None:
        with self._auth_lock:
            self._auth = None

    def _authorize(self) -> dict:
        """Account token and API url, reused until the token is about to expire."""
        with self._auth_lock:
            if self._auth is None or time.monotonic() >= self._auth_expires:
                resp = self._session.get(
                    B2_AUTHORIZE_URL,
                    auth=(self._key_id, self._application_key),
                    timeout=self._timeout,
                )
                resp.raise_for_status()
                self._auth = resp.json()
                self._auth_expires = time.monotonic() + AUTH_TOKEN_TTL_SECONDS
            return self._auth

    def _file_url(self, key: str) -> str:
        return f"{self._download_host}/file/{self._bucket_name}/{quote(key)}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        if not self.writable:
            raise BackendError(self.name, "not configured")
        try:
            auth = self._authorize()
            upload = self._session.post(
                f"{auth['apiUrl']}/b2api/v2/b2_get_upload_url",
                json={"bucketId": self._bucket_id},
                headers={"Authorization": auth["authorizationToken"]},
                timeout=self._timeout,
            )
            upload.raise_for_status()
            target = upload.json()

            resp = self._session.post(
                target["uploadUrl"],
                data=data,
                headers={
                    "Authorization": target["authorizationToken"],
                    "X-Bz-File-Name": quote(key),
                    "Content-Type": content_type,
                    "X-Bz-Content-Sha1": hashlib.sha1(data).hexdigest(),
                },
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise self._error(exc, "upload") from exc
        return key

    def _owns(self, locator: str) -> bool:
        host = urlparse(locator).netloc.lower()
        return host.endswith("backblazeb2.com") or locator.startswith(self._download_host)

    def _download_target(self, locator: str) -> tuple[str, dict]:
        is_url = locator.lower().startswith(("http://", "https://"))
        if is_url and not self._owns(locator):
            return locator, {}
        url = locator if is_url else self._file_url(locator)
        if not self.writable:
            return url, {}
        auth = self._authorize()
        return url, {"Authorization": auth["authorizationToken"]}

    def get(self, locator: str) -> ImageStream:
        try:
            url, headers = self._download_target(locator)
            resp = self._session.get(url, headers=headers, stream=True, timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise self._error(exc, "download") from exc
        resp.raw.decode_content = True
        content_type = resp.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
        return ImageStream(body=resp.raw, content_type=content_type)

    def delete(self, locator: str) -> None:
        """Hide the file so it is no longer served; B2 keeps older versions."""
        if not self.writable:
            raise BackendError(self.name, "not configured")
        try:
            auth = self._authorize()
            resp = self._session.post(
                f"{auth['apiUrl']}/b2api/v2/b2_hide_file",
                json={"bucketId": self._bucket_id, "fileName": self.key_from_locator(locator)},
                headers={"Authorization": auth["authorizationToken"]},
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise self._error(exc, "delete") from exc

    def exists(self, locator: str) -> bool:
        try:
            url, headers = self._download_target(locator)
            resp = self._session.head(url, headers=headers, timeout=self._timeout)
        except requests.RequestException as exc:
            raise self._error(exc, "head") from exc
        if resp.status_code == 404:
            return False
        return resp.ok

    def public_url(self, locator: str) -> Optional[str]:
        if locator.lower().startswith(("http://", "https://")):
            return locator
        if not self._bucket_name:
            return None
        return self._file_url(locator)

    def key_from_locator(self, locator: str) -> str:
        if not locator.lower().startswith(("http://", "https://")):
            return locator
        path = unquote(urlparse(locator).path)
        marker = f"/file/{self._bucket_name}/"
        if self._bucket_name and path.startswith(marker):
            return path[len(marker):]
        return path.lstrip("/")
