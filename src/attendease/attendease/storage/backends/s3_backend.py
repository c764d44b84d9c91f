from __future__ import annotations

import logging
from typing import Iterator, Optional
from urllib.parse import unquote, urlparse

from botocore.exceptions import BotoCoreError, ClientError, ConnectionError as BotoConnectionError

from ...core.constants import DEFAULT_CONTENT_TYPE
from ...core.enums import StorageBackend
from ..model import ImageReference, ImageStream, StoredObject
from .base import BackendError, ObjectBackend

logger = logging.getLogger(__name__)

# Errors after which the upload is retried once without the ACL.
ACL_REJECTED_CODES = {"AccessControlListNotSupported", "AccessDenied", "InvalidRequest"}
NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}


def client_error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3Backend(ObjectBackend):
    """Object-store backend over a boto3 S3 client."""

    name = "s3"
    tag = StorageBackend.OBJECT_STORE

    def __init__(
        self,
        client,
        *,
        bucket: str,
        region: Optional[str] = None,
        public_base_url: Optional[str] = None,
        acl: Optional[str] = "public-read",
    ):
        self._client = client
        self._bucket = bucket
        self._acl = acl or None
        if public_base_url:
            self._base_url = public_base_url if public_base_url.endswith("/") else f"{public_base_url}/"
        elif region:
            self._base_url = f"https://{bucket}.s3.{region}.amazonaws.com/"
        else:
            self._base_url = f"https://{bucket}.s3.amazonaws.com/"

    @property
    def hosts(self) -> tuple[str, ...]:
        return (urlparse(self._base_url).netloc.lower(),)

    def _error(self, exc: Exception, action: str) -> BackendError:
        if isinstance(exc, ClientError):
            code = client_error_code(exc)
            return BackendError(
                self.name,
                f"{action} failed ({code or 'unknown'})",
                not_found=code in NOT_FOUND_CODES,
                retryable=code in {"SlowDown", "RequestTimeout", "InternalError", "ServiceUnavailable"},
            )
        return BackendError(
            self.name,
            f"{action} failed ({type(exc).__name__})",
            retryable=isinstance(exc, BotoConnectionError),
        )

    def put(self, key: str, data: bytes, content_type: str) -> str:
        params = {"Bucket": self._bucket, "Key": key, "Body": data, "ContentType": content_type}
        try:
            acl = self._acl
            if acl:
                try:
                    self._client.put_object(ACL=acl, **params)
                    return key
                except ClientError as exc:
                    code = client_error_code(exc)
                    if code not in ACL_REJECTED_CODES:
                        raise
                    # The bucket refuses ACLs; later uploads go without one.
                    self._acl = None
                    logger.info("S3 rejected ACL %s (%s); uploading without it from now on", acl, code)
            self._client.put_object(**params)
        except (ClientError, BotoCoreError) as exc:
            raise self._error(exc, "upload") from exc
        return key

    def get(self, locator: str) -> ImageStream:
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=self.key_from_locator(locator))
        except (ClientError, BotoCoreError) as exc:
            raise self._error(exc, "download") from exc
        return ImageStream(body=resp["Body"], content_type=resp.get("ContentType") or DEFAULT_CONTENT_TYPE)

    def delete(self, locator: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=self.key_from_locator(locator))
        except (ClientError, BotoCoreError) as exc:
            raise self._error(exc, "delete") from exc

    def exists(self, locator: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=self.key_from_locator(locator))
        except ClientError as exc:
            if client_error_code(exc) in NOT_FOUND_CODES:
                return False
            raise self._error(exc, "head") from exc
        except BotoCoreError as exc:
            raise self._error(exc, "head") from exc
        return True

    @property
    def listable(self) -> bool:
        return True

    def list_objects(self, prefix: str, *, page_size: int = 200) -> Iterator[StoredObject]:
        paginator = self._client.get_paginator("list_objects_v2")
        pages = paginator.paginate(
            Bucket=self._bucket,
            Prefix=prefix,
            PaginationConfig={"PageSize": page_size},
        )
        try:
            for page in pages:
                for item in page.get("Contents") or []:
                    key = item.get("Key")
                    if not key or key.endswith("/"):
                        continue
                    yield StoredObject(
                        ref=ImageReference(backend=self.tag, key=key),
                        size=item.get("Size"),
                        last_modified=item.get("LastModified"),
                    )
        except (ClientError, BotoCoreError) as exc:
            raise self._error(exc, "list") from exc

    def public_url(self, locator: str) -> Optional[str]:
        return f"{self._base_url}{self.key_from_locator(locator)}"

    def native_image(self, locator: str) -> Optional[dict]:
        return {"S3Object": {"Bucket": self._bucket, "Name": self.key_from_locator(locator)}}

    def key_from_locator(self, locator: str) -> str:
        """Object key from either a bare key or a public/virtual-host/path-style URL."""
        if not locator.lower().startswith(("http://", "https://")):
            return locator.lstrip("/")
        if locator.startswith(self._base_url):
            return unquote(locator[len(self._base_url):])

        parsed = urlparse(locator)
        path = unquote(parsed.path).lstrip("/")
        host = parsed.netloc.lower()
        if (host.startswith("s3.") or host.startswith("s3-")) and path.startswith(f"{self._bucket}/"):
            path = path[len(self._bucket) + 1:]
        return path
