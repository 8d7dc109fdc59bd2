"""
Caseflow core primitives.

Error hierarchy, structured logging, settings and the SQLite storage layer
shared by the execution, billing and alerts packages.
"""

from caseflow.core.connection import ConnectionInfo, create_connection
from caseflow.core.errors import (
    CaseflowError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    FailureKind,
    FatalError,
    NetworkResetError,
    RateLimitedError,
    ServerUnavailableError,
    StorageError,
    TransientError,
    classify_error,
    humanize_error,
    is_retryable,
)
from caseflow.core.logging import configure_logging, get_logger
from caseflow.core.protocols import Connection
from caseflow.core.settings import CaseflowSettings, get_settings
from caseflow.core.sqlite_conn import SqliteConnection

__all__ = [
    # Errors
    "CaseflowError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "FailureKind",
    "FatalError",
    "NetworkResetError",
    "RateLimitedError",
    "ServerUnavailableError",
    "StorageError",
    "TransientError",
    "classify_error",
    "humanize_error",
    "is_retryable",
    # Logging
    "configure_logging",
    "get_logger",
    # Settings
    "CaseflowSettings",
    "get_settings",
    # Storage
    "Connection",
    "ConnectionInfo",
    "SqliteConnection",
    "create_connection",
]
