from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

import mysql.connector
from mysql.connector import errors as mysql_errors
from mysql.connector import pooling

from ..core.constants import DEFAULT_CONNECT_TIMEOUT_SECONDS, DEFAULT_POOL_WAIT_SECONDS
from ..core.exceptions import DatabaseUnavailable

logger = logging.getLogger(__name__)

POOL_POLL_INTERVAL_SECONDS = 0.05


@dataclass
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str
    pool_size: int = 5
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT_SECONDS
    pool_wait_seconds: float = DEFAULT_POOL_WAIT_SECONDS


class DatabaseConnection:
    """Singleton-like DB connection factory.

    Note: Connections come from a shared mysql-connector pool; ``close()`` on a
    pooled connection hands it back to the pool. The pool never blocks, so a
    caller polls for up to ``pool_wait_seconds`` and then opens a short-lived
    connection of its own. ``pool_size=0`` always uses short-lived connections.
    """

    _instance: Optional["DatabaseConnection"] = None

    def __init__(self, config: DBConfig):
        self._config = config
        self._pool: Optional[pooling.MySQLConnectionPool] = None
        self._pool_lock = threading.Lock()

    @classmethod
    def get_instance(cls, config: DBConfig) -> "DatabaseConnection":
        if cls._instance is None:
            cls._instance = DatabaseConnection(config)
        return cls._instance

    def _connect_kwargs(self) -> dict:
        return dict(
            host=self._config.host,
            port=int(self._config.port),
            user=self._config.user,
            password=self._config.password,
            database=self._config.database,
            connection_timeout=int(self._config.connect_timeout),
        )

    def _get_pool(self) -> pooling.MySQLConnectionPool:
        if self._pool is None:
            with self._pool_lock:
                if self._pool is None:
                    self._pool = pooling.MySQLConnectionPool(
                        pool_name="attendease",
                        pool_size=int(self._config.pool_size),
                        **self._connect_kwargs(),
                    )
        return self._pool

    def _pooled(self):
        pool = self._get_pool()
        deadline = time.monotonic() + float(self._config.pool_wait_seconds)
        while True:
            try:
                return pool.get_connection()
            except mysql_errors.PoolError:
                if time.monotonic() >= deadline:
                    break
                time.sleep(POOL_POLL_INTERVAL_SECONDS)
        logger.warning("Connection pool exhausted; opening a short-lived connection")
        return mysql.connector.connect(**self._connect_kwargs())

    def connect(self):
        try:
            if int(self._config.pool_size) <= 0:
                return mysql.connector.connect(**self._connect_kwargs())
            return self._pooled()
        except mysql_errors.Error as exc:
            logger.warning("Database connection failed: %s", exc)
            raise DatabaseUnavailable() from exc
