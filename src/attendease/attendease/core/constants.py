"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_FACE_MATCH_THRESHOLD = 90.0
DEFAULT_SEARCH_MATCH_THRESHOLD = 90.0
DEFAULT_TIMEZONE = "Asia/Kolkata"
DEFAULT_COLLECTION_ID = "attendance-faces"

DEFAULT_CALL_TIMEOUT_SECONDS = 10
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5
DEFAULT_POOL_WAIT_SECONDS = 2.0

ATTENDANCE_PREFIX = "attendance"
FACE_PREFIX = "faces"
GALLERY_PAGE_SIZE = 200
GALLERY_MAX_PAGE_SIZE = 1000
LOCAL_URL_PREFIX = "/uploads/"

DEFAULT_CONTENT_TYPE = "image/jpeg"

# Content types accepted for punch and enrollment photos.
CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

PIL_FORMAT_CONTENT_TYPES = {
    "JPEG": "image/jpeg",
    "MPO": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}
