"""Query converter: legacy query definition -> target DDL.

Pipeline (each stage is a pure text transform):

1. strip the ``PARAMETERS`` clause and trailing ``;``
2. bind declared parameters to ``p_<name>``
3. translate legacy function calls
4. resolve widget and session-variable references
5. rewrite dialect syntax
6. cast columns compared with state subqueries
7. schema-qualify tables and user functions
8. synthesize the view/function DDL
"""

from __future__ import annotations

import logging
from typing import Optional

from ..catalog import SchemaCatalog
from ..mapping import ControlMapping
from ..schemas import ConversionResult, ObjectKind, QueryDefinition
from . import ddl
from .functions import translate_functions
from .names import sanitize_name
from .references import SESSION_SETTING, STATE_TABLE, ReferenceResolver
from .syntax import (
    cast_state_comparisons,
    qualify_functions,
    qualify_tables,
    rewrite_syntax,
    strip_parameters_clause,
)

logger = logging.getLogger(__name__)


class QueryConverter:
    """Converts query definitions for one target schema.

    Args:
        schema: Target schema; tables and user functions are qualified with
            it. ``None`` leaves names unqualified.
        mapping: Control-column mapping used to resolve widget references.
        catalog: Target catalog snapshot for parameter and column typing.
        session_setting: Transaction-local setting holding the session id.
    """

    def __init__(
        self,
        schema: Optional[str] = None,
        mapping: Optional[ControlMapping] = None,
        catalog: Optional[SchemaCatalog] = None,
        session_setting: str = SESSION_SETTING,
        state_table: str = STATE_TABLE,
    ):
        self.schema = schema
        self.catalog = catalog
        self.resolver = ReferenceResolver(mapping, setting=session_setting, state_table=state_table)

    @property
    def mapping(self) -> ControlMapping:
        return self.resolver.mapping

    def convert(self, query: QueryDefinition) -> ConversionResult:
        name = sanitize_name(query.name) or query.name
        if not query.sql or not query.sql.strip():
            return ConversionResult(
                object_name=name,
                object_kind=ObjectKind.NONE,
                warnings=["Empty query definition"],
            )

        text = strip_parameters_clause(query.sql).strip().rstrip(";").strip()
        text, params = ddl.bind_parameters(text, query.parameters)

        functions = translate_functions(text)
        resolution = self.resolver.resolve(functions.sql)
        body = rewrite_syntax(resolution.sql)
        body = cast_state_comparisons(body)
        body = qualify_tables(body, self.schema)
        body = qualify_functions(body, self.schema, exclude=functions.unmapped)

        ddl.refine_parameter_types(params, body, self.catalog)
        synthesis = ddl.synthesize(query, body, params, schema=self.schema, catalog=self.catalog)

        warnings = functions.warnings + resolution.warnings + synthesis.warnings
        logger.debug(
            "Converted %s -> %s (%d statements, %d warnings)",
            query.name, synthesis.kind.value, len(synthesis.statements), len(warnings),
        )
        return ConversionResult(
            object_name=name,
            object_kind=synthesis.kind,
            statements=synthesis.statements,
            translated_sql=body,
            warnings=warnings,
            resolved_references=list(resolution.resolved),
            output_columns=synthesis.output_columns,
            unmapped_functions=list(functions.unmapped),
            drop_statement=synthesis.drop_statement,
        )


def convert_query(
    query: QueryDefinition,
    schema: Optional[str] = None,
    mapping: Optional[ControlMapping] = None,
    catalog: Optional[SchemaCatalog] = None,
) -> ConversionResult:
    """Convert a single query with a throwaway :class:`QueryConverter`."""
    return QueryConverter(schema=schema, mapping=mapping, catalog=catalog).convert(query)


def convert_expression(expression: str) -> str:
    """Translate a standalone expression (e.g. a calculated control source).

    Only function mapping and syntax rewriting apply; a leading ``=`` is
    dropped.
    """
    text = expression.strip()
    if text.startswith("="):
        text = text[1:].strip()
    return rewrite_syntax(translate_functions(text).sql)
