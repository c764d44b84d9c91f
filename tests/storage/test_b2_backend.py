from __future__ import annotations

import hashlib

import pytest

from src.attendease.attendease.storage.backends.b2_backend import B2Backend
from src.attendease.attendease.storage.backends.base import BackendError

from conftest import FakeB2Session


def _backend(session: FakeB2Session) -> B2Backend:
    return B2Backend(
        session,
        key_id="kid",
        application_key="secret",
        bucket_id="bucket-id",
        bucket_name="attendance-photos",
    )


def test_put_uses_native_upload_flow():
    session = FakeB2Session()

    key = _backend(session).put("attendance/attendance_3_IN_x.jpg", b"abc", "image/jpeg")

    assert key == "attendance/attendance_3_IN_x.jpg"
    method, url, kwargs = session.calls[-1]
    assert (method, url) == ("POST", "https://pod.backblazeb2.com/upload")
    assert kwargs["headers"]["Authorization"] == "up"
    assert kwargs["headers"]["X-Bz-File-Name"] == "attendance/attendance_3_IN_x.jpg"
    assert kwargs["headers"]["X-Bz-Content-Sha1"] == hashlib.sha1(b"abc").hexdigest()


def test_account_token_is_reused_across_calls():
    session = FakeB2Session()
    backend = _backend(session)

    backend.put("attendance/a.jpg", b"abc", "image/jpeg")
    backend.put("attendance/b.jpg", b"abc", "image/jpeg")
    backend.get("attendance/a.jpg")
    backend.exists("attendance/a.jpg")

    assert session.authorizations == 1


def test_rejected_token_is_dropped_and_the_retry_reauthorizes():
    session = FakeB2Session(upload_status=401)
    backend = _backend(session)

    with pytest.raises(BackendError) as info:
        backend.put("attendance/a.jpg", b"abc", "image/jpeg")
    assert info.value.retryable is True

    session.upload_status = 200
    backend.put("attendance/a.jpg", b"abc", "image/jpeg")

    assert session.authorizations == 2


def test_server_error_on_upload_is_retryable():
    with pytest.raises(BackendError) as info:
        _backend(FakeB2Session(upload_status=503)).put("attendance/x.jpg", b"abc", "image/jpeg")

    assert info.value.retryable is True


def test_foreign_urls_are_fetched_without_credentials():
    session = FakeB2Session()

    stream = _backend(session).get("https://cdn.example.com/old/photo.png")

    assert stream.read() == b"image-bytes"
    assert stream.content_type == "image/png"
    assert session.calls == [("GET", "https://cdn.example.com/old/photo.png", session.calls[0][2])]
    assert session.calls[0][2]["headers"] == {}


def test_own_keys_are_downloaded_with_account_token():
    session = FakeB2Session()
    backend = _backend(session)

    backend.get("attendance/x.jpg")

    method, url, kwargs = session.calls[-1]
    assert url == "https://f005.backblazeb2.com/file/attendance-photos/attendance/x.jpg"
    assert kwargs["headers"] == {"Authorization": "acct"}
    assert backend.key_from_locator(url) == "attendance/x.jpg"


def test_missing_file_reports_not_exists():
    assert _backend(FakeB2Session()).exists("attendance/gone.jpg") is False


def test_unconfigured_backend_refuses_writes():
    backend = B2Backend(FakeB2Session())

    assert backend.writable is False
    assert backend.listable is False
    with pytest.raises(BackendError):
        backend.put("attendance/x.jpg", b"abc", "image/jpeg")
