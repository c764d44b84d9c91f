from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import boto3
import requests
from botocore.config import Config as BotoConfig

from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.punch_service import PunchOrchestrator
from .attendance.service import AttendanceRecordManager
from .core.constants import (
    DEFAULT_CALL_TIMEOUT_SECONDS,
    DEFAULT_COLLECTION_ID,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_FACE_MATCH_THRESHOLD,
    DEFAULT_POOL_WAIT_SECONDS,
    DEFAULT_SEARCH_MATCH_THRESHOLD,
    DEFAULT_TIMEZONE,
    LOCAL_URL_PREFIX,
)
from .database.connection import DBConfig, DatabaseConnection
from .employees.mysql_employee_repository import MySQLEmployeeRepository
from .faces.recognition_client import FaceRecognitionClient
from .faces.service import IdentityResolver
from .storage.backends.b2_backend import DEFAULT_B2_DOWNLOAD_HOST, B2Backend
from .storage.backends.base import ObjectBackend
from .storage.backends.local_backend import LocalBackend
from .storage.backends.s3_backend import S3Backend
from .storage.gateway import ObjectStorageGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection

    employees_repo: MySQLEmployeeRepository
    attendance_repo: MySQLAttendanceRepository

    storage: ObjectStorageGateway
    recognition_client: FaceRecognitionClient

    records: AttendanceRecordManager
    identity_resolver: IdentityResolver
    punch_orchestrator: PunchOrchestrator


def _boto_config(*, connect_timeout: float, read_timeout: float) -> BotoConfig:
    # One attempt per call; fallback and retry policy live above the client.
    return BotoConfig(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )


def _boto_client(service: str, cfg: dict, *, region: Optional[str], timeout: float):
    return boto3.client(
        service,
        region_name=region,
        aws_access_key_id=cfg.get("access_key_id") or None,
        aws_secret_access_key=cfg.get("secret_access_key") or None,
        config=_boto_config(
            connect_timeout=float(cfg.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT_SECONDS)),
            read_timeout=timeout,
        ),
    )


def _b2_backend(cfg: dict, *, timeout: float) -> B2Backend:
    return B2Backend(
        requests.Session(),
        key_id=cfg.get("key_id"),
        application_key=cfg.get("application_key"),
        bucket_id=cfg.get("bucket_id"),
        bucket_name=cfg.get("bucket_name"),
        download_host=cfg.get("download_host") or DEFAULT_B2_DOWNLOAD_HOST,
        timeout=timeout,
    )


def build_storage(storage_config: dict) -> ObjectStorageGateway:
    """Turn the ordered ``backends`` list into a fallback chain ending with local."""
    timeout = float(storage_config.get("timeout", DEFAULT_CALL_TIMEOUT_SECONDS))
    local = LocalBackend(
        storage_config.get("upload_root", "uploads"),
        url_prefix=storage_config.get("url_prefix", LOCAL_URL_PREFIX),
    )

    chain: list[ObjectBackend] = []
    readers: list[ObjectBackend] = []
    for name in storage_config.get("backends", ["s3", "local"]):
        name = str(name).strip().lower()
        if name == "s3":
            s3_cfg = dict(storage_config.get("s3") or {})
            if not s3_cfg.get("bucket"):
                logger.info("Storage backend s3 skipped: no bucket configured")
                continue
            chain.append(
                S3Backend(
                    _boto_client("s3", s3_cfg, region=s3_cfg.get("region"), timeout=timeout),
                    bucket=s3_cfg["bucket"],
                    region=s3_cfg.get("region"),
                    public_base_url=s3_cfg.get("public_base_url"),
                    acl=s3_cfg.get("acl", "public-read"),
                )
            )
        elif name == "b2":
            b2 = _b2_backend(dict(storage_config.get("b2") or {}), timeout=timeout)
            if not b2.writable:
                logger.info("Storage backend b2 skipped: credentials incomplete")
                continue
            chain.append(b2)
        elif name == "local":
            continue
        else:
            raise ValueError(f"Unknown storage backend: {name}")

    if not any(b.name == "b2" for b in chain):
        # Read-only reader so legacy external URLs stay resolvable.
        readers.append(_b2_backend(dict(storage_config.get("b2") or {}), timeout=timeout))

    chain.append(local)
    gateway = ObjectStorageGateway(chain, readers=readers)
    logger.info("Storage chain: %s", " -> ".join(gateway.chain))
    return gateway


def build_recognition(recognition_config: dict, storage: ObjectStorageGateway) -> FaceRecognitionClient:
    client = _boto_client(
        "rekognition",
        recognition_config,
        region=recognition_config.get("region"),
        timeout=float(recognition_config.get("timeout", DEFAULT_CALL_TIMEOUT_SECONDS)),
    )
    return FaceRecognitionClient(
        client,
        storage,
        collection_id=recognition_config.get("collection_id", DEFAULT_COLLECTION_ID),
        search_threshold=float(recognition_config.get("search_threshold", DEFAULT_SEARCH_MATCH_THRESHOLD)),
        prefer_native=bool(recognition_config.get("prefer_native", True)),
    )


def build_container(
    *,
    db_config: dict,
    storage_config: dict,
    recognition_config: dict,
    punch_config: dict,
) -> Container:
    config = DBConfig(
        host=str(db_config["host"]),
        port=int(db_config.get("port", 3306)),
        user=str(db_config["user"]),
        password=str(db_config["password"]),
        database=str(db_config["database"]),
        pool_size=int(db_config.get("pool_size", 5)),
        connect_timeout=int(db_config.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT_SECONDS)),
        pool_wait_seconds=float(db_config.get("pool_wait_seconds", DEFAULT_POOL_WAIT_SECONDS)),
    )
    conn = DatabaseConnection.get_instance(config)

    employees_repo = MySQLEmployeeRepository(conn)
    attendance_repo = MySQLAttendanceRepository(conn)

    storage = build_storage(storage_config)
    recognition_client = build_recognition(recognition_config, storage)

    records = AttendanceRecordManager(attendance_repo)
    identity_resolver = IdentityResolver(employees_repo, recognition_client, storage)
    punch_orchestrator = PunchOrchestrator(
        records,
        employees_repo,
        identity_resolver,
        recognition_client,
        storage,
        face_threshold=float(punch_config.get("face_threshold", DEFAULT_FACE_MATCH_THRESHOLD)),
        require_face_match=bool(punch_config.get("require_face_match", False)),
        require_photo=bool(punch_config.get("require_photo", False)),
        timezone=punch_config.get("timezone", DEFAULT_TIMEZONE),
    )

    return Container(
        conn=conn,
        employees_repo=employees_repo,
        attendance_repo=attendance_repo,
        storage=storage,
        recognition_client=recognition_client,
        records=records,
        identity_resolver=identity_resolver,
        punch_orchestrator=punch_orchestrator,
    )
