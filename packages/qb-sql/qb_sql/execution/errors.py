"""Error taxonomy for conversion and import.

Execution failures are classified by SQLSTATE, never by message text:

- ``MissingDependency``: the object references something not created yet in
  this batch (undefined table/function/schema/object). Deferred to a later pass.
- ``ConversionError``: anything else. Routed to the fallback corrector once.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class SQLState(str, Enum):
    """SQLSTATE codes the engine reacts to."""
    UNDEFINED_TABLE = "42P01"
    UNDEFINED_FUNCTION = "42883"
    INVALID_SCHEMA_NAME = "3F000"
    UNDEFINED_OBJECT = "42704"
    UNDEFINED_COLUMN = "42703"
    SYNTAX_ERROR = "42601"
    DATATYPE_MISMATCH = "42804"
    INVALID_TABLE_DEFINITION = "42P16"
    INVALID_FUNCTION_DEFINITION = "42P13"
    DEPENDENT_OBJECTS_STILL_EXIST = "2BP01"
    QUERY_CANCELED = "57014"


MISSING_DEPENDENCY_STATES = frozenset({
    SQLState.UNDEFINED_TABLE.value,
    SQLState.UNDEFINED_FUNCTION.value,
    SQLState.INVALID_SCHEMA_NAME.value,
    SQLState.UNDEFINED_OBJECT.value,
})

# Raised by CREATE OR REPLACE when the replacement changes an object's
# output shape; recovered with a targeted drop and one retry.
SHAPE_CHANGE_STATES = frozenset({
    SQLState.INVALID_TABLE_DEFINITION.value,
    SQLState.INVALID_FUNCTION_DEFINITION.value,
})


class FailureKind(str, Enum):
    MISSING_DEPENDENCY = "missing-dependency"
    CONVERSION_ERROR = "conversion-error"


def classify_sqlstate(code: Optional[str]) -> FailureKind:
    """Map a SQLSTATE to a failure kind (unknown or absent -> conversion error)."""
    if code and code in MISSING_DEPENDENCY_STATES:
        return FailureKind.MISSING_DEPENDENCY
    return FailureKind.CONVERSION_ERROR


class QueryBridgeError(Exception):
    """Base class for all QueryBridge errors."""


class ExecutionFailure(QueryBridgeError):
    """DDL for one object failed to execute."""

    kind: FailureKind = FailureKind.CONVERSION_ERROR

    def __init__(
        self,
        object_name: str,
        message: str,
        sqlstate: Optional[str] = None,
        sql: Optional[str] = None,
    ):
        super().__init__(f"{object_name}: {message}")
        self.object_name = object_name
        self.message = message
        self.sqlstate = sqlstate
        self.sql = sql


class MissingDependency(ExecutionFailure):
    """Referenced object does not exist yet; retry in a later pass."""

    kind = FailureKind.MISSING_DEPENDENCY


class ConversionError(ExecutionFailure):
    """Translated DDL is wrong; the fallback corrector may repair it.

    When raised after a correction attempt, ``corrected_sql`` and
    ``correction_error`` describe what the corrector tried.
    """

    kind = FailureKind.CONVERSION_ERROR

    def __init__(
        self,
        object_name: str,
        message: str,
        sqlstate: Optional[str] = None,
        sql: Optional[str] = None,
        corrected_sql: Optional[str] = None,
        correction_error: Optional[str] = None,
    ):
        super().__init__(object_name, message, sqlstate=sqlstate, sql=sql)
        self.corrected_sql = corrected_sql
        self.correction_error = correction_error


class CorrectionServiceUnavailable(QueryBridgeError):
    """No correction service is configured; conversion errors are terminal."""


class UnresolvedReference(QueryBridgeError):
    """A widget reference with no mapping. Non-fatal: rendered as NULL."""

    def __init__(self, reference: str, reason: str):
        super().__init__(f"Unresolved reference {reference}: {reason}")
        self.reference = reference
        self.reason = reason


def failure_from_exception(
    exc: BaseException,
    object_name: str,
    sql: Optional[str] = None,
) -> ExecutionFailure:
    """Wrap a driver exception in the matching :class:`ExecutionFailure`."""
    sqlstate = getattr(exc, "pgcode", None)
    message = (getattr(exc, "pgerror", None) or str(exc)).strip()
    if classify_sqlstate(sqlstate) is FailureKind.MISSING_DEPENDENCY:
        return MissingDependency(object_name, message, sqlstate=sqlstate, sql=sql)
    return ConversionError(object_name, message, sqlstate=sqlstate, sql=sql)
