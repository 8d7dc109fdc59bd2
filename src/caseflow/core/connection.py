"""Connection factory - create database connections from URL strings.

Supported URL schemes
---------------------
==================  ==========================================  ============
Scheme              Example                                     Backend
==================  ==========================================  ============
``memory``          ``memory`` or ``:memory:`` or ``None``       SQLite RAM
``sqlite``          ``sqlite:///path/to/file.db``                SQLite file
``(file path)``     ``./data/caseflow.db``                       SQLite file
==================  ==========================================  ============

Usage
-----
::

    from caseflow.core.connection import create_connection

    conn, info = create_connection("sqlite:///data/caseflow.db", init_schema=True)
    print(info)
    # ConnectionInfo(backend='sqlite', persistent=True, path='/srv/data/caseflow.db')
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from caseflow.core.errors import ConfigError
from caseflow.core.logging import get_logger
from caseflow.core.sqlite_conn import SqliteConnection

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConnectionInfo:
    """Metadata about a database connection."""

    backend: str
    persistent: bool
    url: str
    resolved_path: str | None = None

    def __repr__(self) -> str:
        parts = [f"backend={self.backend!r}", f"persistent={self.persistent}"]
        if self.resolved_path:
            parts.append(f"path={self.resolved_path!r}")
        else:
            parts.append(f"url={self.url!r}")
        return f"ConnectionInfo({', '.join(parts)})"


def _parse_url(db: str | None) -> tuple[str, str]:
    """Parse a database URL into (scheme, target)."""
    if db is None or db in ("", "memory", ":memory:"):
        return "memory", ":memory:"

    if db.startswith("sqlite:///"):
        path = db[len("sqlite:///"):]
        if not path or path == ":memory:":
            return "memory", ":memory:"
        return "sqlite", path

    if "://" in db:
        scheme = db.split("://", 1)[0]
        raise ConfigError(f"Unsupported database scheme: {scheme!r}")

    return "sqlite", db


def create_connection(
    db: str | None = None,
    *,
    init_schema: bool = False,
) -> tuple[SqliteConnection, ConnectionInfo]:
    """Create a connection from a URL or path.

    Args:
        db: ``None``/``memory`` for RAM, ``sqlite:///path`` or a bare path.
        init_schema: Create the caseflow tables if missing.

    Returns:
        ``(conn, info)``
    """
    scheme, target = _parse_url(db)

    if scheme == "memory":
        conn = SqliteConnection(":memory:")
        info = ConnectionInfo(backend="sqlite", persistent=False, url=":memory:")
    else:
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        resolved = str(path.resolve())
        conn = SqliteConnection(resolved)
        info = ConnectionInfo(backend="sqlite", persistent=True, url=target, resolved_path=resolved)

    if init_schema:
        from caseflow.core.schema import create_tables

        create_tables(conn)

    logger.debug("connection.created", backend=info.backend, persistent=info.persistent)
    return conn, info


__all__ = ["ConnectionInfo", "create_connection"]
