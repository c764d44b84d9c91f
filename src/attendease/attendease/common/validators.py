from __future__ import annotations

import io
from typing import Any, Optional

from PIL import Image, UnidentifiedImageError

from ..core.constants import PIL_FORMAT_CONTENT_TYPES
from ..core.exceptions import ValidationError


def require_non_empty(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def require_int(value: Any, field_name: str) -> int:
    """Accept ints and numeric strings; ``True``/``False`` are rejected."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number")
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field_name} must be a number") from None


def optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return require_int(value, field_name)


def require_coordinate(value: Any, field_name: str, *, limit: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number") from None
    if not -limit <= number <= limit:
        raise ValidationError(f"{field_name} must be between {-limit:g} and {limit:g}")
    return number


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def detect_image_content_type(data: bytes, field_name: str = "image") -> str:
    """Sniff the image format with Pillow and return its content type."""
    if not data:
        raise ValidationError(f"{field_name} is empty")
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValidationError(f"{field_name} is not a readable image") from None

    content_type = PIL_FORMAT_CONTENT_TYPES.get(fmt or "")
    if not content_type:
        raise ValidationError(f"{field_name} format {fmt} is not supported")
    return content_type
