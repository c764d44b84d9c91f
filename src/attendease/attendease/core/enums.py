from __future__ import annotations

from enum import Enum


class PunchDirection(str, Enum):
    """Chiều chấm công: vào ca / tan ca."""

    IN = "IN"
    OUT = "OUT"


class PunchState(str, Enum):
    """Trạng thái của bản ghi chấm công trong ngày."""

    EMPTY = "EMPTY"
    PUNCHED_IN = "PUNCHED_IN"
    COMPLETE = "COMPLETE"


class StorageBackend(str, Enum):
    """Backend tag carried by every ImageReference."""

    LOCAL = "local"
    OBJECT_STORE = "object-store"
    EXTERNAL = "external"
