"""
Canonical protocol definitions for caseflow.

Every store (credit ledger, usage log, job repository) depends on the shape
of ``Connection``, not on a concrete driver, so the same code runs on an
in-memory SQLite database in tests and a file-backed one in production.

    ::

        Connection Protocol:
        ┌────────────────────────────────────────────────────────┐
        │ execute(sql, params)   → Execute single statement      │
        │ fetchone()             → Get one result row            │
        │ fetchall()             → Get all result rows           │
        │ rowcount               → Rows changed by last statement│
        │ commit()               → Commit transaction            │
        │ rollback()             → Rollback transaction          │
        └────────────────────────────────────────────────────────┘

Tags:
    protocol, connection, database, caseflow-core, contracts
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """Minimal SYNCHRONOUS connection interface for database operations."""

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters."""
        ...

    def fetchone(self) -> Any:
        """Fetch one row from last query."""
        ...

    def fetchall(self) -> list:
        """Fetch all rows from last query."""
        ...

    @property
    def rowcount(self) -> int:
        """Rows changed by the last statement."""
        ...

    def commit(self) -> None:
        """Commit current transaction."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction."""
        ...


__all__ = ["Connection"]
