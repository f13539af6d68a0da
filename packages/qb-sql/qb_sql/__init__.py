"""QueryBridge SQL: Access query conversion and dependency-ordered import.

Pipeline:
1. Convert:  legacy query text -> view / function DDL (deterministic)
2. Execute:  one transaction per object, failures classified by SQLSTATE
3. Correct:  conversion errors go to the fallback corrector once
4. Import:   multi-pass retry until every dependency exists or progress stops

Usage:
    from qb_sql import QueryConverter, QueryDefinition
    result = QueryConverter(schema="app").convert(QueryDefinition("qryOrders", sql))
    print(result.ddl)

    from qb_sql import ImportPipeline, ImportBatch, PostgresConfig
    summary = ImportPipeline(PostgresConfig.from_env()).run(ImportBatch.from_manifest(manifest))
"""

from .schemas import (
    QueryHint,
    ObjectKind,
    QueryParameter,
    QueryDefinition,
    ConversionResult,
    BatchKind,
    ImportObject,
    ImportBatch,
    AttemptOutcome,
    ImportAttempt,
    ImportStatus,
    ObjectReport,
    ImportSummary,
)
from .conversion.converter import QueryConverter, convert_query, convert_expression
from .mapping import ControlBinding, ControlMapping
from .execution.errors import (
    QueryBridgeError,
    MissingDependency,
    ConversionError,
    CorrectionServiceUnavailable,
    UnresolvedReference,
)
from .execution.factory import PostgresConfig
from .orchestrator import ImportOrchestrator
from .pipeline import ImportPipeline

__version__ = "1.0.0"

__all__ = [
    # Schemas
    "QueryHint",
    "ObjectKind",
    "QueryParameter",
    "QueryDefinition",
    "ConversionResult",
    "BatchKind",
    "ImportObject",
    "ImportBatch",
    "AttemptOutcome",
    "ImportAttempt",
    "ImportStatus",
    "ObjectReport",
    "ImportSummary",
    # Conversion
    "QueryConverter",
    "convert_query",
    "convert_expression",
    "ControlBinding",
    "ControlMapping",
    # Errors
    "QueryBridgeError",
    "MissingDependency",
    "ConversionError",
    "CorrectionServiceUnavailable",
    "UnresolvedReference",
    # Import
    "PostgresConfig",
    "ImportOrchestrator",
    "ImportPipeline",
]
