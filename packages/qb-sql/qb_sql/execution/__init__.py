"""Execution layer: target database access, error taxonomy, DDL engine.

The psycopg2-backed executor is imported lazily so conversion-only use does
not require the driver.
"""

from .errors import (
    SQLState,
    FailureKind,
    classify_sqlstate,
    QueryBridgeError,
    ExecutionFailure,
    MissingDependency,
    ConversionError,
    CorrectionServiceUnavailable,
    UnresolvedReference,
    failure_from_exception,
)
from .factory import (
    DatabaseExecutor,
    PostgresConfig,
)


def __getattr__(name: str):
    """Lazy import for driver-backed classes."""
    if name == "PostgresExecutor":
        from .postgres_executor import PostgresExecutor
        return PostgresExecutor
    if name == "ExecutionEngine":
        from .engine import ExecutionEngine
        return ExecutionEngine
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Errors
    "SQLState",
    "FailureKind",
    "classify_sqlstate",
    "QueryBridgeError",
    "ExecutionFailure",
    "MissingDependency",
    "ConversionError",
    "CorrectionServiceUnavailable",
    "UnresolvedReference",
    "failure_from_exception",
    # Executors
    "DatabaseExecutor",
    "PostgresConfig",
    "PostgresExecutor",
    # Engine
    "ExecutionEngine",
]
