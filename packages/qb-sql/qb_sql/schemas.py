"""QueryBridge schemas.

Data structures shared by the conversion and import pipeline:
- Conversion: QueryParameter, QueryDefinition, QueryHint, ObjectKind, ConversionResult
- Import: BatchKind, ImportObject, ImportBatch, AttemptOutcome, ImportAttempt
- Audit: ImportStatus, ObjectReport, ImportSummary
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class QueryHint(str, Enum):
    """Classification hint supplied by the extraction step."""
    PLAIN_SELECT = "plain-select"
    PARAMETERIZED = "parameterized"
    ACTION = "action"


class ObjectKind(str, Enum):
    """Kind of database object a conversion produced."""
    VIEW = "view"
    FUNCTION = "function"
    NONE = "none"


# Legacy query type codes as exported by the source system.
TYPE_CODE_CROSSTAB = 16
TYPE_CODE_DELETE = 32
TYPE_CODE_UPDATE = 48
TYPE_CODE_APPEND = 64
TYPE_CODE_MAKE_TABLE = 80
TYPE_CODE_UNION = 128


@dataclass(frozen=True)
class QueryParameter:
    """Declared query parameter (name plus legacy type name)."""
    name: str
    type: str = "Text"


@dataclass(frozen=True)
class QueryDefinition:
    """A saved query as extracted from the source application."""
    name: str
    sql: str
    parameters: Tuple[QueryParameter, ...] = ()
    hint: Optional[QueryHint] = None
    type_code: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QueryDefinition":
        """Build from an extraction record (``name``, ``sql``, ``parameters``...)."""
        params = tuple(
            QueryParameter(name=p["name"], type=p.get("type") or "Text")
            if isinstance(p, Mapping)
            else QueryParameter(name=str(p))
            for p in data.get("parameters") or ()
        )
        hint = data.get("hint") or data.get("type")
        type_code = data.get("type_code")
        if isinstance(hint, int):
            type_code, hint = hint, None
        return cls(
            name=data["name"],
            sql=data.get("sql") or "",
            parameters=params,
            hint=_parse_hint(hint),
            type_code=int(type_code) if type_code is not None else None,
        )


def _parse_hint(value: Any) -> Optional[QueryHint]:
    if not value:
        return None
    aliases = {"select": QueryHint.PLAIN_SELECT, "plain": QueryHint.PLAIN_SELECT}
    text = str(value).strip().lower()
    if text in aliases:
        return aliases[text]
    try:
        return QueryHint(text)
    except ValueError:
        return None


@dataclass
class ConversionResult:
    """Output of converting one query: target DDL plus audit trail."""
    object_name: str
    object_kind: ObjectKind
    statements: List[str] = field(default_factory=list)
    translated_sql: str = ""
    warnings: List[str] = field(default_factory=list)
    resolved_references: List[Tuple[str, str]] = field(default_factory=list)
    output_columns: Optional[List[str]] = None
    unmapped_functions: List[str] = field(default_factory=list)
    drop_statement: Optional[str] = None
    assisted: bool = False

    @property
    def ddl(self) -> str:
        """All statements joined as a single script."""
        return ";\n\n".join(s.rstrip().rstrip(";") for s in self.statements) + (
            ";" if self.statements else ""
        )

    @property
    def is_executable(self) -> bool:
        return self.object_kind is not ObjectKind.NONE and bool(self.statements)


# =============================================================================
# Import batch
# =============================================================================


class BatchKind(str, Enum):
    """Object kinds processed by the import orchestrator, in dependency order."""
    TABLE = "table"
    FORM = "form"
    REPORT = "report"
    FUNCTION_STUB = "function-stub"
    QUERY = "query"


DEFAULT_KIND_ORDER: Tuple[BatchKind, ...] = (
    BatchKind.TABLE,
    BatchKind.FORM,
    BatchKind.REPORT,
    BatchKind.FUNCTION_STUB,
    BatchKind.QUERY,
)


@dataclass(frozen=True)
class ImportObject:
    """One object awaiting import.

    Tables and function stubs carry ready-made ``statements``; queries carry a
    ``query``; forms and reports carry their ``definition``.
    """
    name: str
    kind: BatchKind
    query: Optional[QueryDefinition] = None
    statements: Tuple[str, ...] = ()
    definition: Optional[Mapping[str, Any]] = field(default=None, compare=False, hash=False)


@dataclass(frozen=True)
class ImportBatch:
    objects: Tuple[ImportObject, ...] = ()
    kinds: Tuple[BatchKind, ...] = DEFAULT_KIND_ORDER

    def objects_of(self, kind: BatchKind) -> List[ImportObject]:
        return [o for o in self.objects if o.kind is kind]

    @classmethod
    def from_manifest(cls, manifest: Mapping[str, Any]) -> "ImportBatch":
        """Build a batch from an extraction manifest.

        Expected keys (all optional): ``tables`` and ``functions`` as lists of
        ``{"name", "ddl"}``; ``forms`` and ``reports`` as lists of definitions
        with a ``name``; ``queries`` as lists of query records.
        """
        objects: List[ImportObject] = []
        for kind, key in (
            (BatchKind.TABLE, "tables"),
            (BatchKind.FUNCTION_STUB, "functions"),
        ):
            for item in manifest.get(key) or ():
                ddl = item.get("ddl") or item.get("statements") or ()
                statements = (ddl,) if isinstance(ddl, str) else tuple(ddl)
                objects.append(ImportObject(name=item["name"], kind=kind, statements=statements))
        for kind, key in ((BatchKind.FORM, "forms"), (BatchKind.REPORT, "reports")):
            for item in manifest.get(key) or ():
                objects.append(ImportObject(name=item["name"], kind=kind, definition=item))
        for item in manifest.get("queries") or ():
            query = QueryDefinition.from_dict(item)
            objects.append(ImportObject(name=query.name, kind=BatchKind.QUERY, query=query))

        kinds = manifest.get("kinds")
        return cls(
            objects=tuple(objects),
            kinds=tuple(BatchKind(k) for k in kinds) if kinds else DEFAULT_KIND_ORDER,
        )


class AttemptOutcome(str, Enum):
    IMPORTED = "imported"
    MISSING_DEPENDENCY = "missing-dependency"
    CONVERSION_ERROR = "conversion-error"
    ASSISTED_SUCCESS = "assisted-success"

    @property
    def succeeded(self) -> bool:
        return self in (AttemptOutcome.IMPORTED, AttemptOutcome.ASSISTED_SUCCESS)


@dataclass(frozen=True)
class ImportAttempt:
    """One (object, pass) attempt as recorded by the orchestrator."""
    object_name: str
    kind: BatchKind
    pass_number: int
    outcome: AttemptOutcome
    error: Optional[str] = None


# =============================================================================
# Audit
# =============================================================================


class ImportStatus(str, Enum):
    """Final status of an object after a batch completes."""
    IMPORTED = "imported"
    ASSISTED = "assisted"           # imported after fallback correction
    NEEDS_REVIEW = "needs-review"   # conversion error, fallback unavailable or failed
    UNRESOLVED = "unresolved"       # still missing a dependency when the loop stopped


@dataclass(frozen=True)
class ObjectReport:
    """Per-object audit record."""
    name: str
    kind: BatchKind
    status: ImportStatus
    pass_number: int
    object_kind: Optional[ObjectKind] = None
    ddl: str = ""
    warnings: Tuple[str, ...] = ()
    resolved_references: Tuple[Tuple[str, str], ...] = ()
    error: Optional[str] = None
    sqlstate: Optional[str] = None
    failed_sql: Optional[str] = None
    corrected_sql: Optional[str] = None
    correction_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["status"] = self.status.value
        data["object_kind"] = self.object_kind.value if self.object_kind else None
        data["warnings"] = list(self.warnings)
        data["resolved_references"] = [list(r) for r in self.resolved_references]
        return data


@dataclass(frozen=True)
class ImportSummary:
    """Partitioned result of an import batch."""
    reports: Tuple[ObjectReport, ...] = ()
    attempts: Tuple[ImportAttempt, ...] = ()
    passes: Tuple[Tuple[BatchKind, int], ...] = ()

    def with_status(self, status: ImportStatus) -> List[ObjectReport]:
        return [r for r in self.reports if r.status is status]

    @property
    def imported(self) -> List[ObjectReport]:
        return self.with_status(ImportStatus.IMPORTED)

    @property
    def assisted(self) -> List[ObjectReport]:
        return self.with_status(ImportStatus.ASSISTED)

    @property
    def needs_review(self) -> List[ObjectReport]:
        return self.with_status(ImportStatus.NEEDS_REVIEW)

    @property
    def unresolved(self) -> List[ObjectReport]:
        return self.with_status(ImportStatus.UNRESOLVED)

    @property
    def ok(self) -> bool:
        return not self.needs_review and not self.unresolved

    def report_for(self, name: str) -> Optional[ObjectReport]:
        for report in self.reports:
            if report.name == name:
                return report
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counts": {status.value: len(self.with_status(status)) for status in ImportStatus},
            "passes": {kind.value: n for kind, n in self.passes},
            "imported": [r.name for r in self.imported],
            "assisted": [r.name for r in self.assisted],
            "needs_review": [r.name for r in self.needs_review],
            "unresolved": [r.name for r in self.unresolved],
            "attempts": [
                {
                    "object": a.object_name,
                    "kind": a.kind.value,
                    "pass": a.pass_number,
                    "outcome": a.outcome.value,
                    "error": a.error,
                }
                for a in self.attempts
            ],
        }
