from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Optional

from mysql.connector import errorcode
from mysql.connector import errors as mysql_errors

from .connection import DatabaseConnection


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def is_duplicate_key(exc: BaseException) -> bool:
    """True for a unique-key violation (ER_DUP_ENTRY)."""
    return isinstance(exc, mysql_errors.IntegrityError) and exc.errno == errorcode.ER_DUP_ENTRY
