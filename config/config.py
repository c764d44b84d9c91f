import os


def env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _backends(default: str) -> list[str]:
    raw = os.environ.get("STORAGE_BACKENDS", default)
    return [b.strip().lower() for b in raw.split(",") if b.strip()]


class Config:
    """Settings shared by every environment; env modules override what differs."""

    SECRET_KEY = os.environ.get("SECRET_KEY") or "attendease-secret"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    DB_USER = os.environ.get("DB_USER", "root")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "")
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = int(os.environ.get("DB_PORT", "3306"))
    DB_NAME = os.environ.get("DB_NAME", "attendease")
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", "5"))
    DB_CONNECT_TIMEOUT = int(os.environ.get("DB_CONNECT_TIMEOUT", "5"))
    DB_POOL_WAIT_SECONDS = float(os.environ.get("DB_POOL_WAIT_SECONDS", "2"))

    AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")
    AWS_ACCESS_KEY_ID = os.environ.get("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY = os.environ.get("AWS_SECRET_ACCESS_KEY")
    AWS_CONNECT_TIMEOUT = float(os.environ.get("AWS_CONNECT_TIMEOUT", "5"))

    S3_BUCKET = os.environ.get("S3_BUCKET_NAME") or os.environ.get("AWS_S3_BUCKET")
    S3_PUBLIC_BASE_URL = os.environ.get("S3_PUBLIC_BASE_URL")
    S3_ACL = os.environ.get("S3_OBJECT_ACL", "public-read")

    B2_KEY_ID = os.environ.get("B2_KEY_ID")
    B2_APPLICATION_KEY = os.environ.get("B2_APPLICATION_KEY")
    B2_BUCKET_ID = os.environ.get("B2_BUCKET_ID")
    B2_BUCKET_NAME = os.environ.get("B2_BUCKET_NAME")
    B2_DOWNLOAD_HOST = os.environ.get("B2_DOWNLOAD_HOST", "https://f005.backblazeb2.com")

    UPLOAD_ROOT = os.environ.get("UPLOAD_ROOT", "uploads")
    STORAGE_TIMEOUT = float(os.environ.get("STORAGE_TIMEOUT", "10"))

    REKOGNITION_COLLECTION = os.environ.get("REKOGNITION_COLLECTION", "attendance-faces")
    SEARCH_MATCH_THRESHOLD = float(os.environ.get("SEARCH_MATCH_THRESHOLD", "90"))
    RECOGNITION_TIMEOUT = float(os.environ.get("RECOGNITION_TIMEOUT", "10"))

    ATTENDANCE_TIMEZONE = os.environ.get("ATTENDANCE_TIMEZONE", "Asia/Kolkata")
    FACE_MATCH_THRESHOLD = float(os.environ.get("FACE_MATCH_THRESHOLD", "90"))
    REQUIRE_FACE_MATCH = env_flag("REQUIRE_FACE_MATCH")
    REQUIRE_PHOTO = env_flag("REQUIRE_PHOTO")
    MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    AUTO_INIT_DB = env_flag("AUTO_INIT_DB")


def db_config(cfg=Config, **overrides) -> dict:
    settings = {
        "host": cfg.DB_HOST,
        "port": cfg.DB_PORT,
        "user": cfg.DB_USER,
        "password": cfg.DB_PASSWORD,
        "database": cfg.DB_NAME,
        "pool_size": cfg.DB_POOL_SIZE,
        "connect_timeout": cfg.DB_CONNECT_TIMEOUT,
        "pool_wait_seconds": cfg.DB_POOL_WAIT_SECONDS,
    }
    settings.update(overrides)
    return settings


def storage_config(cfg=Config, *, default_backends: str = "s3,local", **overrides) -> dict:
    settings = {
        "backends": _backends(default_backends),
        "upload_root": cfg.UPLOAD_ROOT,
        "url_prefix": "/uploads/",
        "timeout": cfg.STORAGE_TIMEOUT,
        "s3": {
            "bucket": cfg.S3_BUCKET,
            "region": cfg.AWS_REGION,
            "public_base_url": cfg.S3_PUBLIC_BASE_URL,
            "acl": cfg.S3_ACL,
            "access_key_id": cfg.AWS_ACCESS_KEY_ID,
            "secret_access_key": cfg.AWS_SECRET_ACCESS_KEY,
            "connect_timeout": cfg.AWS_CONNECT_TIMEOUT,
        },
        "b2": {
            "key_id": cfg.B2_KEY_ID,
            "application_key": cfg.B2_APPLICATION_KEY,
            "bucket_id": cfg.B2_BUCKET_ID,
            "bucket_name": cfg.B2_BUCKET_NAME,
            "download_host": cfg.B2_DOWNLOAD_HOST,
        },
    }
    settings.update(overrides)
    return settings


def recognition_config(cfg=Config, **overrides) -> dict:
    settings = {
        "region": cfg.AWS_REGION,
        "collection_id": cfg.REKOGNITION_COLLECTION,
        "search_threshold": cfg.SEARCH_MATCH_THRESHOLD,
        "timeout": cfg.RECOGNITION_TIMEOUT,
        "connect_timeout": cfg.AWS_CONNECT_TIMEOUT,
        "access_key_id": cfg.AWS_ACCESS_KEY_ID,
        "secret_access_key": cfg.AWS_SECRET_ACCESS_KEY,
    }
    settings.update(overrides)
    return settings


def punch_config(cfg=Config, **overrides) -> dict:
    settings = {
        "timezone": cfg.ATTENDANCE_TIMEZONE,
        "face_threshold": cfg.FACE_MATCH_THRESHOLD,
        "require_face_match": cfg.REQUIRE_FACE_MATCH,
        "require_photo": cfg.REQUIRE_PHOTO,
    }
    settings.update(overrides)
    return settings
