"""DDL synthesizer: wraps a translated query body in the right target object.

- plain select            -> ``CREATE OR REPLACE VIEW``
- parameterized select    -> ``LANGUAGE SQL STABLE`` function returning a row set
- insert / update / delete -> ``plpgsql`` function returning the affected row count
- make-table (SELECT INTO) -> ``plpgsql`` function that drops and recreates the table
- crosstab                -> commented placeholder plus a warning
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from ..catalog import SchemaCatalog
from ..schemas import (
    ObjectKind,
    QueryDefinition,
    QueryHint,
    QueryParameter,
    TYPE_CODE_APPEND,
    TYPE_CODE_CROSSTAB,
    TYPE_CODE_DELETE,
    TYPE_CODE_MAKE_TABLE,
    TYPE_CODE_UPDATE,
)
from .names import map_param_type, param_name, quote_ident, sanitize_name

logger = logging.getLogger(__name__)


class QueryClass(str, Enum):
    SELECT = "select"
    PARAMETERIZED_SELECT = "parameterized-select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    MAKE_TABLE = "make-table"
    CROSSTAB = "crosstab"

    @property
    def is_action(self) -> bool:
        return self in (QueryClass.INSERT, QueryClass.UPDATE, QueryClass.DELETE, QueryClass.MAKE_TABLE)


@dataclass
class BoundParameter:
    """A declared parameter as it appears in the generated function signature."""
    source_name: str
    name: str
    type: str = "text"

    @property
    def declaration(self) -> str:
        return f"{self.name} {self.type}"


@dataclass
class Synthesis:
    kind: ObjectKind
    statements: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    output_columns: Optional[List[str]] = None
    drop_statement: Optional[str] = None


# Declared "parameters" that are really widget/session references or
# qualified column references; those are handled by the reference resolver.
_NOT_A_PARAMETER = re.compile(r"\b(TempVars|Parent|Form|Forms|Report|Reports|Me)\b", re.I)
_STRINGS = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"", re.S)
_PLACEHOLDER = re.compile(r"\x00(\d+)\x00")


# =============================================================================
# Parameters
# =============================================================================


def bind_parameters(sql: str, parameters: Sequence[QueryParameter]) -> Tuple[str, List[BoundParameter]]:
    """Rename declared parameter references in ``sql`` to ``p_<name>``.

    Both ``[Enter Start Date]`` and bare ``StartDate`` forms are rewritten.
    Duplicate declarations collapse to the first one.
    """
    bound: List[BoundParameter] = []
    seen = set()
    for param in parameters:
        raw = param.name.strip()
        if _NOT_A_PARAMETER.search(raw) or "." in raw.replace("[", "").replace("]", ""):
            continue
        name = param_name(raw)
        if name == "p_" or name in seen:
            continue
        seen.add(name)
        bound.append(BoundParameter(source_name=raw.strip("[]"), name=name, type=map_param_type(param.type)))

    if not bound:
        return sql, bound

    saved: List[str] = []

    def stash(match: re.Match) -> str:
        saved.append(match.group(0))
        return f"\x00{len(saved) - 1}\x00"

    masked = _STRINGS.sub(stash, sql)
    for param in bound:
        bracketed = re.compile(r"\[\s*" + re.escape(param.source_name) + r"\s*\]", re.I)
        masked = bracketed.sub(param.name, masked)
        if re.fullmatch(r"[A-Za-z_]\w*", param.source_name):
            bare = re.compile(r"(?<![\w.!\]\[])" + re.escape(param.source_name) + r"(?![\w(\]])", re.I)
            masked = bare.sub(param.name, masked)
    return _PLACEHOLDER.sub(lambda m: saved[int(m.group(1))], masked), bound


def refine_parameter_types(
    params: List[BoundParameter],
    sql: str,
    catalog: Optional[SchemaCatalog],
) -> None:
    """Replace ``text`` parameter types with the type of the column they are compared to."""
    if catalog is None:
        return
    column = r"([A-Za-z_]\w*)(?:\.([A-Za-z_]\w*))?"
    for param in params:
        if param.type != "text":
            continue
        pattern = re.compile(
            rf"{column}\s*=\s*{re.escape(param.name)}\b|\b{re.escape(param.name)}\s*=\s*{column}",
            re.I,
        )
        match = pattern.search(sql)
        if not match:
            continue
        if match.group(1):
            first, second = match.group(1), match.group(2)
        else:
            first, second = match.group(3), match.group(4)
        resolved = None
        if second:
            resolved = catalog.column_type(first, second) or catalog.find_column_type(second)
        else:
            resolved = catalog.find_column_type(first)
        if resolved:
            param.type = resolved


# =============================================================================
# Classification
# =============================================================================


def classify(query: QueryDefinition, sql: str, has_parameters: bool) -> QueryClass:
    """Decide the target object shape from type code, hint and statement text."""
    code = query.type_code
    if code == TYPE_CODE_CROSSTAB or re.match(r"\s*TRANSFORM\b", sql, re.I):
        return QueryClass.CROSSTAB
    if code == TYPE_CODE_MAKE_TABLE:
        return QueryClass.MAKE_TABLE
    if code == TYPE_CODE_DELETE:
        return QueryClass.DELETE
    if code == TYPE_CODE_UPDATE:
        return QueryClass.UPDATE
    if code == TYPE_CODE_APPEND:
        return QueryClass.INSERT

    statement = _statement_class(sql)
    if statement is not None:
        return statement
    if query.hint is QueryHint.ACTION:
        logger.debug("Action hint on %s but statement shape not recognised", query.name)
    return QueryClass.PARAMETERIZED_SELECT if has_parameters else QueryClass.SELECT


def _statement_class(sql: str) -> Optional[QueryClass]:
    try:
        tree = sqlglot.parse_one(sql, read="postgres")
    except SqlglotError:
        tree = None

    if isinstance(tree, exp.Insert):
        return QueryClass.INSERT
    if isinstance(tree, exp.Update):
        return QueryClass.UPDATE
    if isinstance(tree, exp.Delete):
        return QueryClass.DELETE
    if isinstance(tree, exp.Select):
        return QueryClass.MAKE_TABLE if tree.args.get("into") else None
    if tree is not None:
        return None

    # Textual fallback when the body does not parse
    head = sql.lstrip().split(None, 1)[0].upper() if sql.strip() else ""
    if head == "INSERT":
        return QueryClass.INSERT
    if head == "UPDATE":
        return QueryClass.UPDATE
    if head == "DELETE":
        return QueryClass.DELETE
    if head == "SELECT" and _find_into(sql) is not None:
        return QueryClass.MAKE_TABLE
    return None


# =============================================================================
# Output columns
# =============================================================================


def infer_output_columns(sql: str, catalog: Optional[SchemaCatalog] = None) -> Optional[List[Tuple[str, str]]]:
    """Output ``(name, type)`` pairs of a select body, or None when unknown.

    Types come from the catalog for direct column references and from explicit
    casts; anything else is ``text``. Unnamed expressions, duplicate names and
    unexpandable ``*`` make the shape unknown.
    """
    try:
        tree = sqlglot.parse_one(sql, read="postgres")
    except SqlglotError as e:
        logger.debug("Output column inference skipped: %s", e)
        return None

    select = tree if isinstance(tree, exp.Select) else tree.find(exp.Select)
    if select is None:
        return None

    aliases = {}
    for table in select.find_all(exp.Table):
        aliases[(table.alias_or_name or "").lower()] = table.name.lower()
    relations = list(dict.fromkeys(aliases.values()))

    columns: List[Tuple[str, str]] = []
    for projection in select.expressions:
        star = isinstance(projection, exp.Star) or (
            isinstance(projection, exp.Column) and isinstance(projection.this, exp.Star)
        )
        if star:
            expanded = _expand_star(projection, aliases, relations, catalog)
            if expanded is None:
                return None
            columns.extend(expanded)
            continue
        if isinstance(projection, exp.Literal):
            return None
        name = _output_name(projection)
        if not name:
            return None
        columns.append((name, _projection_type(projection, aliases, relations, catalog)))

    names = [c[0] for c in columns]
    if not columns or len(set(names)) != len(names):
        return None
    return columns


def _output_name(projection: exp.Expression) -> str:
    name = projection.alias_or_name
    if not name:
        return ""
    identifier = projection.args.get("alias") if isinstance(projection, exp.Alias) else projection.this
    quoted = isinstance(identifier, exp.Identifier) and identifier.quoted
    return name if quoted else name.lower()


def _projection_type(projection, aliases, relations, catalog: Optional[SchemaCatalog]) -> str:
    node = projection.this if isinstance(projection, exp.Alias) else projection
    if isinstance(node, exp.Cast):
        return node.to.sql(dialect="postgres").lower()
    if isinstance(node, exp.Column) and catalog is not None:
        table = aliases.get(node.table.lower()) if node.table else None
        candidates = [table] if table else relations
        for relation in candidates:
            found = catalog.column_type(relation, node.name)
            if found:
                return _usable_type(found)
    return "text"


def _usable_type(data_type: str) -> str:
    if data_type.upper() in ("USER-DEFINED", "ARRAY"):
        return "text"
    return data_type


def _expand_star(projection, aliases, relations, catalog) -> Optional[List[Tuple[str, str]]]:
    if catalog is None:
        return None
    if isinstance(projection, exp.Column) and projection.table:
        targets = [aliases.get(projection.table.lower())]
    else:
        targets = relations
    expanded: List[Tuple[str, str]] = []
    for relation in targets:
        cols = catalog.columns_of(relation) if relation else None
        if cols is None:
            return None
        expanded.extend((c, _usable_type(t)) for c, t in cols.items())
    return expanded


# =============================================================================
# Builders
# =============================================================================


def object_name(schema: Optional[str], name: str) -> str:
    ident = quote_ident(sanitize_name(name))
    return f"{quote_ident(schema)}.{ident}" if schema else ident


def _signature(params: Sequence[BoundParameter]) -> str:
    return ", ".join(p.declaration for p in params)


def build_view(schema: Optional[str], name: str, body: str) -> str:
    return f"CREATE OR REPLACE VIEW {object_name(schema, name)} AS\n{body}"


def build_select_function(
    schema: Optional[str],
    name: str,
    params: Sequence[BoundParameter],
    body: str,
    columns: Optional[List[Tuple[str, str]]],
) -> str:
    target = object_name(schema, name)
    if columns:
        returns = "RETURNS TABLE(" + ", ".join(f"{quote_ident(c)} {t}" for c, t in columns) + ")"
        projection = ", ".join(f"_q.{quote_ident(c)}::{t}" for c, t in columns)
        body = f"SELECT {projection} FROM (\n{body}\n) AS _q"
    else:
        returns = "RETURNS SETOF record"
    return (
        f"CREATE OR REPLACE FUNCTION {target}({_signature(params)})\n"
        f"{returns} AS $$\n{body}\n$$ LANGUAGE SQL STABLE"
    )


def build_action_function(schema: Optional[str], name: str, params: Sequence[BoundParameter], body: str) -> str:
    return (
        f"CREATE OR REPLACE FUNCTION {object_name(schema, name)}({_signature(params)})\n"
        f"RETURNS integer AS $$\n"
        f"DECLARE _count integer;\n"
        f"BEGIN\n"
        f"  {body};\n"
        f"  GET DIAGNOSTICS _count = ROW_COUNT;\n"
        f"  RETURN _count;\n"
        f"END;\n"
        f"$$ LANGUAGE plpgsql VOLATILE"
    )


_INTO = re.compile(r'\bINTO\s+((?:"[^"]+"|[A-Za-z_][\w$]*)(?:\s*\.\s*(?:"[^"]+"|[A-Za-z_][\w$]*))?)\s+', re.I)


def _find_into(sql: str) -> Optional[re.Match]:
    if not re.match(r"\s*SELECT\b", sql, re.I):
        return None
    return _INTO.search(sql)


def build_make_table_function(
    schema: Optional[str],
    name: str,
    params: Sequence[BoundParameter],
    body: str,
) -> Optional[str]:
    match = _find_into(body)
    if match is None:
        return None
    target = match.group(1)
    select = body[:match.start()] + body[match.end():]
    return (
        f"CREATE OR REPLACE FUNCTION {object_name(schema, name)}({_signature(params)})\n"
        f"RETURNS integer AS $$\n"
        f"DECLARE _count integer;\n"
        f"BEGIN\n"
        f"  DROP TABLE IF EXISTS {target};\n"
        f"  CREATE TABLE {target} AS\n"
        f"  {select.strip()};\n"
        f"  GET DIAGNOSTICS _count = ROW_COUNT;\n"
        f"  RETURN _count;\n"
        f"END;\n"
        f"$$ LANGUAGE plpgsql VOLATILE"
    )


def commented(sql: str, header: str) -> str:
    return f"-- {header}\n-- " + sql.replace("\n", "\n-- ")


def drop_statement(kind: ObjectKind, schema: Optional[str], name: str, params: Sequence[BoundParameter] = ()) -> Optional[str]:
    """Targeted (non-cascading) drop used when a replacement changes an object's shape."""
    if kind is ObjectKind.VIEW:
        return f"DROP VIEW IF EXISTS {object_name(schema, name)}"
    if kind is ObjectKind.FUNCTION:
        types = ", ".join(p.type for p in params)
        return f"DROP FUNCTION IF EXISTS {object_name(schema, name)}({types})"
    return None


def needs_custom_aggregates(sql: str) -> bool:
    return bool(re.search(r"\b(first_agg|last_agg)\s*\(", sql, re.I))


def aggregate_preamble(schema: Optional[str]) -> List[str]:
    """Idempotent creation of the first_agg/last_agg aggregates."""
    schema = schema or "public"
    target = quote_ident(schema)
    statements = []
    for agg, body in (("first_agg", "SELECT COALESCE($1, $2)"), ("last_agg", "SELECT $2")):
        statements.append(
            "DO $$ BEGIN\n"
            f"  IF NOT EXISTS (SELECT 1 FROM pg_proc WHERE proname = '{agg}_sfunc' "
            f"AND pronamespace = '{schema}'::regnamespace) THEN\n"
            f"    CREATE FUNCTION {target}.{agg}_sfunc(anyelement, anyelement) RETURNS anyelement "
            f"AS '{body}' LANGUAGE SQL IMMUTABLE STRICT;\n"
            f"    CREATE AGGREGATE {target}.{agg}(anyelement) (SFUNC = {target}.{agg}_sfunc, STYPE = anyelement);\n"
            "  END IF;\n"
            "END $$"
        )
    return statements


def synthesize(
    query: QueryDefinition,
    body: str,
    params: List[BoundParameter],
    schema: Optional[str] = None,
    catalog: Optional[SchemaCatalog] = None,
) -> Synthesis:
    """Build the DDL statements for one translated query body."""
    query_class = classify(query, body, bool(params))
    name = query.name
    statements: List[str] = []
    if needs_custom_aggregates(body):
        statements.extend(aggregate_preamble(schema))

    if query_class is QueryClass.CROSSTAB:
        return Synthesis(
            kind=ObjectKind.NONE,
            statements=[commented(body, "Crosstab query: requires manual conversion")],
            warnings=["Crosstab queries require manual conversion (tablefunc crosstab or conditional aggregation)"],
        )

    if query_class is QueryClass.MAKE_TABLE:
        built = build_make_table_function(schema, name, params, body)
        if built is None:
            return Synthesis(
                kind=ObjectKind.NONE,
                statements=[commented(query.sql, "Make-table query could not be converted")],
                warnings=["Make-table query: could not find the INTO target table"],
            )
        statements.append(built)
        return Synthesis(
            kind=ObjectKind.FUNCTION,
            statements=statements,
            drop_statement=drop_statement(ObjectKind.FUNCTION, schema, name, params),
        )

    if query_class.is_action:
        statements.append(build_action_function(schema, name, params, body))
        return Synthesis(
            kind=ObjectKind.FUNCTION,
            statements=statements,
            drop_statement=drop_statement(ObjectKind.FUNCTION, schema, name, params),
        )

    columns = infer_output_columns(body, catalog)
    if query_class is QueryClass.PARAMETERIZED_SELECT:
        warnings = []
        if columns is None:
            warnings.append(
                "Could not infer output columns; function returns SETOF record and callers "
                "must supply a column definition list"
            )
        statements.append(build_select_function(schema, name, params, body, columns))
        return Synthesis(
            kind=ObjectKind.FUNCTION,
            statements=statements,
            warnings=warnings,
            output_columns=[c for c, _ in columns] if columns else None,
            drop_statement=drop_statement(ObjectKind.FUNCTION, schema, name, params),
        )

    statements.append(build_view(schema, name, body))
    return Synthesis(
        kind=ObjectKind.VIEW,
        statements=statements,
        output_columns=[c for c, _ in columns] if columns else None,
        drop_statement=drop_statement(ObjectKind.VIEW, schema, name),
    )
