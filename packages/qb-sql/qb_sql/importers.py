"""Per-kind importers driven by the import orchestrator.

Every importer turns one object into an :class:`AttemptResult`; execution
failures never escape ``attempt``. Missing dependencies come back as
``MISSING_DEPENDENCY`` so the orchestrator can retry them in a later pass.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .catalog import SchemaCatalog
from .conversion.converter import QueryConverter
from .execution.engine import ExecutionEngine
from .execution.errors import (
    ConversionError,
    CorrectionServiceUnavailable,
    ExecutionFailure,
    MissingDependency,
    failure_from_exception,
)
from .fallback import FallbackCorrector
from .mapping import ControlMapping, ControlMappingRepository, bindings_from_definition
from .schemas import (
    AttemptOutcome,
    BatchKind,
    ConversionResult,
    ImportObject,
    ImportStatus,
    ObjectKind,
    ObjectReport,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptResult:
    """Outcome of one attempt plus the diagnostics that go into the report."""
    outcome: AttemptOutcome
    object_kind: Optional[ObjectKind] = None
    ddl: str = ""
    warnings: Tuple[str, ...] = ()
    resolved_references: Tuple[Tuple[str, str], ...] = ()
    error: Optional[str] = None
    sqlstate: Optional[str] = None
    failed_sql: Optional[str] = None
    corrected_sql: Optional[str] = None
    correction_error: Optional[str] = None

    @classmethod
    def from_conversion(
        cls,
        outcome: AttemptOutcome,
        result: Optional[ConversionResult],
        failure: Optional[ExecutionFailure] = None,
        **extra,
    ) -> "AttemptResult":
        fields = {}
        if result is not None:
            fields.update(
                object_kind=result.object_kind,
                ddl=result.ddl,
                warnings=tuple(result.warnings),
                resolved_references=tuple(result.resolved_references),
            )
        if failure is not None:
            fields.update(error=failure.message, sqlstate=failure.sqlstate, failed_sql=failure.sql)
            if isinstance(failure, ConversionError):
                fields.update(corrected_sql=failure.corrected_sql, correction_error=failure.correction_error)
        fields.update(extra)
        return cls(outcome=outcome, **fields)

    def to_report(self, name: str, kind: BatchKind, status: ImportStatus, pass_number: int) -> ObjectReport:
        return ObjectReport(
            name=name,
            kind=kind,
            status=status,
            pass_number=pass_number,
            object_kind=self.object_kind,
            ddl=self.ddl,
            warnings=self.warnings,
            resolved_references=self.resolved_references,
            error=self.error,
            sqlstate=self.sqlstate,
            failed_sql=self.failed_sql,
            corrected_sql=self.corrected_sql,
            correction_error=self.correction_error,
        )


def _failed(failure: ExecutionFailure, result: Optional[ConversionResult] = None, **extra) -> AttemptResult:
    outcome = (
        AttemptOutcome.MISSING_DEPENDENCY
        if isinstance(failure, MissingDependency)
        else AttemptOutcome.CONVERSION_ERROR
    )
    return AttemptResult.from_conversion(outcome, result, failure, **extra)


class BaseImporter(ABC):
    """Imports objects of one batch kind."""

    kind: BatchKind

    def prepare_pass(self) -> None:
        """Hook run once before each pass."""

    @abstractmethod
    def attempt(self, obj: ImportObject) -> AttemptResult:
        ...


class StatementImporter(BaseImporter):
    """Tables and function stubs: ready-made DDL executed as given."""

    def __init__(self, engine: ExecutionEngine, kind: BatchKind = BatchKind.TABLE):
        self.engine = engine
        self.kind = kind

    def attempt(self, obj: ImportObject) -> AttemptResult:
        ddl = ";\n".join(obj.statements)
        try:
            self.engine.execute_statements(obj.name, obj.statements)
        except ExecutionFailure as e:
            return _failed(e, ddl=ddl)
        return AttemptResult(outcome=AttemptOutcome.IMPORTED, ddl=ddl)


class FormImporter(BaseImporter):
    """Forms and reports: derive and store their control bindings.

    The in-memory ``mapping`` is shared with the query converter, so queries
    imported later in the batch resolve against the new bindings.
    """

    def __init__(
        self,
        mapping: ControlMapping,
        repository: Optional[ControlMappingRepository] = None,
        kind: BatchKind = BatchKind.FORM,
    ):
        self.mapping = mapping
        self.repository = repository
        self.kind = kind

    def attempt(self, obj: ImportObject) -> AttemptResult:
        bindings = bindings_from_definition(obj.name, obj.definition or {})
        if self.repository is not None:
            try:
                self.repository.replace_form(obj.name, bindings)
            except Exception as e:
                return _failed(failure_from_exception(e, obj.name))
        self.mapping.replace_form(obj.name, bindings)
        warnings = () if bindings else ("No bound controls found",)
        return AttemptResult(outcome=AttemptOutcome.IMPORTED, warnings=warnings)


class QueryImporter(BaseImporter):
    """Saved queries: convert, execute, and fall back to correction once.

    Args:
        engine: Execution engine for the synthesized DDL.
        converter: Converter bound to the target schema and shared mapping.
        corrector: Fallback corrector; ``None`` makes conversion errors terminal.
        catalog_loader: Refreshes the converter's catalog before each pass so
            objects created earlier in the batch are typed.
    """

    kind = BatchKind.QUERY

    def __init__(
        self,
        engine: ExecutionEngine,
        converter: QueryConverter,
        corrector: Optional[FallbackCorrector] = None,
        catalog_loader: Optional[Callable[[], SchemaCatalog]] = None,
    ):
        self.engine = engine
        self.converter = converter
        self.corrector = corrector
        self.catalog_loader = catalog_loader

    def prepare_pass(self) -> None:
        if self.catalog_loader is not None:
            self.converter.catalog = self.catalog_loader()

    def attempt(self, obj: ImportObject) -> AttemptResult:
        if obj.query is None:
            return AttemptResult(outcome=AttemptOutcome.CONVERSION_ERROR, error="No query definition")

        result = self.converter.convert(obj.query)
        try:
            self.engine.execute(result, obj.name)
        except MissingDependency as e:
            return _failed(e, result)
        except ConversionError as e:
            return self._correct(obj, result, e)
        return AttemptResult.from_conversion(AttemptOutcome.IMPORTED, result)

    def _correct(self, obj: ImportObject, result: ConversionResult, failure: ConversionError) -> AttemptResult:
        if self.corrector is None:
            return _failed(failure, result, correction_error="no correction service configured")
        try:
            corrected = self.corrector.correct(obj.query, result, failure)
        except CorrectionServiceUnavailable as e:
            return _failed(failure, result, correction_error=str(e))
        except ConversionError as e:
            return _failed(e, result)
        return AttemptResult.from_conversion(
            AttemptOutcome.ASSISTED_SUCCESS,
            corrected,
            failed_sql=failure.sql,
            corrected_sql=corrected.ddl,
            error=failure.message,
            sqlstate=failure.sqlstate,
        )
