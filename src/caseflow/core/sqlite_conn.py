"""SQLite driver for the :class:`~caseflow.core.protocols.Connection` shape.

The stores issue ``execute`` and then read the result with ``fetchone`` /
``fetchall`` or ``rowcount`` on the connection itself, so the adapter owns
one cursor and every call goes through it. Rows come back as
:class:`sqlite3.Row` so stores index columns by name.

The runner, ledger and ops router share one instance on one event loop.
``check_same_thread=False`` allows that loop to run on a thread other than
the one that opened the database, as under ``fastapi.testclient.TestClient``.
"""

from __future__ import annotations

import sqlite3
from typing import Any


class SqliteConnection:
    """Single-cursor wrapper over ``sqlite3.Connection``."""

    def __init__(self, path: str = ":memory:") -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._cursor = self._conn.cursor()

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        self._cursor.execute(sql, params)
        return self._cursor

    def fetchone(self) -> Any:
        return self._cursor.fetchone()

    def fetchall(self) -> list:
        return self._cursor.fetchall()

    @property
    def rowcount(self) -> int:
        """Rows changed by the last UPDATE/INSERT/DELETE."""
        return self._cursor.rowcount

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()
