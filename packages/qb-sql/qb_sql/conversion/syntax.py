"""Syntax rewriter: legacy query dialect -> PostgreSQL.

Every rewrite runs on a masked copy of the SQL in which quoted literals,
bracketed identifiers and comments are replaced by placeholders, so operators
or keywords that happen to occur inside a string are never touched.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from .names import RESERVED_WORDS, quote_ident, sanitize_name

_PLACEHOLDER = re.compile(r"\x00(\d+)\x00")

# Literal tokens of the source dialect: 'str', "str", [ident], comments
_SOURCE_LITERALS = re.compile(
    r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|\[[^\]]*\]|/\*.*?\*/|--[^\n]*",
    re.S,
)
# Literal tokens of the target dialect: 'str' and comments only
_TARGET_LITERALS = re.compile(r"'(?:[^']|'')*'|/\*.*?\*/|--[^\n]*", re.S)

# Functions that are built in (or created by the aggregate preamble under the
# search path) and must never be schema-qualified.
BUILTIN_FUNCTIONS = frozenset({
    # aggregates
    "count", "sum", "avg", "min", "max", "array_agg", "string_agg", "bool_and",
    "bool_or", "stddev_samp", "stddev_pop", "var_samp", "var_pop",
    # string
    "length", "substring", "left", "right", "upper", "lower", "trim", "ltrim",
    "rtrim", "position", "strpos", "replace", "reverse", "repeat", "lpad",
    "rpad", "ascii", "chr", "initcap", "concat", "concat_ws", "overlay",
    "translate", "encode", "decode", "md5", "format", "to_hex",
    "regexp_replace", "regexp_match", "regexp_matches", "split_part", "btrim",
    # numeric
    "floor", "trunc", "abs", "round", "sign", "sqrt", "ln", "exp", "ceil",
    "ceiling", "mod", "power", "random", "log", "pi", "degrees", "radians",
    "div", "greatest", "least", "atan", "cos", "sin", "tan",
    # date/time
    "extract", "make_date", "make_time", "make_timestamp", "make_interval",
    "date_part", "date_trunc", "age", "to_char", "to_date", "to_timestamp",
    "to_number", "now", "clock_timestamp", "statement_timestamp", "timeofday",
    # null / cast / conditional
    "coalesce", "nullif", "cast", "exists",
    # json
    "json_agg", "jsonb_agg", "json_build_object", "jsonb_build_object",
    "row_to_json", "to_json", "to_jsonb",
    # window
    "row_number", "rank", "dense_rank", "lag", "lead", "first_value",
    "last_value", "ntile", "percent_rank", "cume_dist", "nth_value",
    # arrays / sets
    "array_length", "unnest", "array_to_string", "generate_series",
    # runtime
    "current_setting", "set_config", "pg_typeof",
})

# Words that may precede "(" without being a function call
_NON_FUNCTION_WORDS = RESERVED_WORDS | frozenset({
    "by", "set", "values", "insert", "update", "delete", "view", "function",
    "alter", "drop", "begin", "return", "returns", "declare", "if",
    "between", "over", "partition", "filter", "recursive", "interval",
    "language", "stable", "immutable", "volatile", "row", "exists",
    "numeric", "decimal", "varchar", "char", "character", "timestamp", "time",
    "integer", "bigint", "boolean", "real", "text", "date", "double",
    "precision",
})

# Words that can follow a table reference but are never its alias
_CLAUSE_WORDS = frozenset({
    "where", "inner", "left", "right", "full", "cross", "join", "on", "group",
    "order", "having", "union", "limit", "offset", "set", "values", "select",
    "natural", "outer", "using", "window", "into", "from", "returning",
    "except", "intersect", "for", "fetch", "lateral", "and", "or", "when",
    "then", "else", "end", "with", "as", "default",
})

# Functions whose argument syntax uses the FROM keyword
_FROM_SYNTAX_FUNCTIONS = frozenset({"extract", "substring", "trim", "overlay", "position"})

_IDENT = r'(?:"(?:[^"]|"")+"|[A-Za-z_][A-Za-z0-9_$]*)'
_TABLE_KEYWORD = re.compile(r"\b(FROM|JOIN|INTO|UPDATE)\s+", re.I)
_TABLE_REF = re.compile(rf"({_IDENT})(\s*\.\s*{_IDENT})?")
_ALIAS = re.compile(rf"(\s+AS)?\s+({_IDENT})", re.I)
_LEADING_PARENS = re.compile(r"(?:\(\s*)+(?!SELECT\b)", re.I)
_LIST_COMMA = re.compile(r"\s*,\s*")
_FUNCTION_CALL = re.compile(r'(?<![\w$.":])([A-Za-z_][A-Za-z0-9_]*)(\s*)\(')

_TOP = re.compile(r"\bSELECT(\s+DISTINCT)?\s+TOP\s+(\d+)(\s+PERCENT)?\s+", re.I)
_DATE_LITERAL = re.compile(r"#([^#\n]+)#")
_DELETE_TARGET = re.compile(r"\bDELETE\s+(?!FROM\b)\S+\s+FROM\b", re.I)
_LIKE_SLOT = re.compile(r"\b(?:A?LIKE)\s+\x00(\d+)\x00", re.I)

_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%m/%d/%y", "%d-%b-%Y", "%B %d, %Y")
_TIME_FORMATS = ("%H:%M:%S", "%H:%M", "%I:%M:%S %p", "%I:%M %p")


# =============================================================================
# Masking
# =============================================================================


def _mask(sql: str, pattern: re.Pattern) -> Tuple[str, List[str]]:
    saved: List[str] = []

    def stash(match: re.Match) -> str:
        saved.append(match.group(0))
        return f"\x00{len(saved) - 1}\x00"

    return pattern.sub(stash, sql), saved


def _unmask(sql: str, saved: List[str]) -> str:
    return _PLACEHOLDER.sub(lambda m: saved[int(m.group(1))], sql)


def _on_code(sql: str, pattern: re.Pattern, fn: Callable[[str], str]) -> str:
    masked, saved = _mask(sql, pattern)
    return _unmask(fn(masked), saved)


# =============================================================================
# Dialect rewrite
# =============================================================================


def rewrite_syntax(sql: str) -> str:
    """Rewrite legacy dialect constructs into target syntax.

    Handles bracketed identifiers, ``TOP n``, ``DISTINCTROW``, ``#date#``
    literals, double-quoted strings, ``&`` concatenation, ``*``/``?`` LIKE
    wildcards, boolean and date keywords, ``Mod`` and the ``DELETE t.* FROM``
    form. A trailing semicolon is dropped.
    """
    masked, saved = _mask(sql, _SOURCE_LITERALS)
    like_slots = {int(m.group(1)) for m in _LIKE_SLOT.finditer(masked)}

    masked = re.sub(r"\bDISTINCTROW\b", "DISTINCT", masked, flags=re.I)
    masked = _DELETE_TARGET.sub("DELETE FROM", masked)
    masked = _rewrite_top(masked)
    masked = re.sub(r"\bTrue\b", "true", masked, flags=re.I)
    masked = re.sub(r"\bFalse\b", "false", masked, flags=re.I)
    masked = re.sub(r"(?<![\w.])Now\s*\(\s*\)", "CURRENT_TIMESTAMP", masked, flags=re.I)
    masked = re.sub(r"(?<![\w.])Date\s*\(\s*\)", "CURRENT_DATE", masked, flags=re.I)
    masked = re.sub(r"(?<![\w.])Time\s*\(\s*\)", "CURRENT_TIME", masked, flags=re.I)
    masked = _DATE_LITERAL.sub(lambda m: date_literal(m.group(1)), masked)
    masked = re.sub(r"\s*&\s*", " || ", masked)
    masked = re.sub(r"\bMod\b", "%", masked, flags=re.I)
    masked = re.sub(r"\bALike\b", "LIKE", masked, flags=re.I)
    masked = masked.strip().rstrip(";").rstrip()

    restored = []
    for index, token in enumerate(saved):
        token = _rewrite_literal(token)
        if index in like_slots and token.startswith("'"):
            token = like_pattern(token)
        restored.append(token)
    return _unmask(masked, restored)


def _rewrite_literal(token: str) -> str:
    if token.startswith('"'):
        body = token[1:-1].replace('""', '"').replace("'", "''")
        return f"'{body}'"
    if token.startswith("["):
        return bracket_identifier(token)
    return token


def bracket_identifier(token: str) -> str:
    """``[Order Details]`` -> ``order_details``; ``[Order]`` -> ``"order"``."""
    inner = token.strip()[1:-1] if token.strip().startswith("[") else token
    name = sanitize_name(inner)
    if not name:
        return '"' + inner.replace('"', '""') + '"'
    return quote_ident(name)


def like_pattern(literal: str) -> str:
    """Convert ``*``/``?``/``#`` wildcards in a single-quoted LIKE pattern."""
    body = literal[1:-1]
    body = body.replace("*", "%").replace("?", "_").replace("#", "_")
    return f"'{body}'"


def date_literal(text: str) -> str:
    """Render the content of a ``#...#`` literal as a typed target literal."""
    text = text.strip()
    date_part, _, time_part = text.partition(" ")
    parsed_date = _parse(date_part, _DATE_FORMATS)
    if parsed_date is None:
        parsed_time = _parse(text, _TIME_FORMATS)
        if parsed_time is not None:
            return f"'{parsed_time:%H:%M:%S}'::time"
        return f"'{text}'::date"
    if not time_part:
        return f"'{parsed_date:%Y-%m-%d}'::date"
    parsed_time = _parse(time_part.strip(), _TIME_FORMATS)
    if parsed_time is None:
        return f"'{parsed_date:%Y-%m-%d} {time_part.strip()}'::timestamp"
    return f"'{parsed_date:%Y-%m-%d} {parsed_time:%H:%M:%S}'::timestamp"


def _parse(text: str, formats: Iterable[str]) -> Optional[datetime]:
    for fmt in formats:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _rewrite_top(masked: str) -> str:
    """Move ``SELECT TOP n`` to a ``LIMIT n`` on the same query level."""
    matches = list(_TOP.finditer(masked))
    for match in reversed(matches):
        distinct = match.group(1) or ""
        count = match.group(2)
        percent = bool(match.group(3))
        head = masked[:match.start()] + "SELECT" + distinct + " "
        if percent:
            masked = head + f"/* TOP {count} PERCENT */ " + masked[match.end():]
            continue
        close = _enclosing_close(masked, match.start())
        if close is None:
            body = masked[match.end():].rstrip().rstrip(";").rstrip()
            masked = head + body + f" LIMIT {count}"
        else:
            masked = head + masked[match.end():close].rstrip() + f" LIMIT {count}" + masked[close:]
    return masked


def _enclosing_close(masked: str, pos: int) -> Optional[int]:
    """Index of the ``)`` that closes the parenthesis enclosing ``pos``."""
    depth = 0
    for i in range(pos - 1, -1, -1):
        ch = masked[i]
        if ch == ")":
            depth += 1
        elif ch == "(":
            if depth == 0:
                break
            depth -= 1
    else:
        return None
    depth = 0
    for j in range(pos, len(masked)):
        ch = masked[j]
        if ch == "(":
            depth += 1
        elif ch == ")":
            if depth == 0:
                return j
            depth -= 1
    return None


def _enclosing_call(masked: str, pos: int) -> Optional[str]:
    """Lowercased name of the function whose argument list contains ``pos``."""
    depth = 0
    for i in range(pos - 1, -1, -1):
        ch = masked[i]
        if ch == ")":
            depth += 1
        elif ch == "(":
            if depth == 0:
                match = re.search(r"([A-Za-z_][A-Za-z0-9_]*)\s*$", masked[:i])
                return match.group(1).lower() if match else None
            depth -= 1
    return None


def strip_parameters_clause(sql: str) -> str:
    """Remove a leading ``PARAMETERS ... ;`` declaration."""
    masked, saved = _mask(sql, _SOURCE_LITERALS)
    masked = re.sub(r"^\s*PARAMETERS\b[^;]*;\s*", "", masked, flags=re.I)
    return _unmask(masked, saved)


# =============================================================================
# Schema qualification
# =============================================================================


def qualify_tables(sql: str, schema: Optional[str]) -> str:
    """Schema-qualify unqualified table references.

    References after FROM, JOIN and UPDATE that carry no alias get one equal to
    the bare name, so column references qualified by the table name keep
    resolving. INTO targets are qualified without an alias.
    """
    if not schema:
        return sql
    prefix = quote_ident(schema)
    return _on_code(sql, _TARGET_LITERALS, lambda masked: _qualify_tables(masked, prefix))


def _qualify_tables(masked: str, prefix: str) -> str:
    out: List[str] = []
    pos = 0
    for keyword_match in _TABLE_KEYWORD.finditer(masked):
        if keyword_match.start() < pos:
            continue
        keyword = keyword_match.group(1).upper()
        if keyword == "FROM":
            if _enclosing_call(masked, keyword_match.start()) in _FROM_SYNTAX_FUNCTIONS:
                continue
            if re.search(r"\bDISTINCT\s*$", masked[:keyword_match.start()], re.I):
                continue
        out.append(masked[pos:keyword_match.end()])
        pos = keyword_match.end()

        while True:
            lead = _LEADING_PARENS.match(masked, pos)
            if lead and keyword in ("FROM", "JOIN"):
                out.append(lead.group(0))
                pos = lead.end()
            ref = _TABLE_REF.match(masked, pos)
            if ref is None:
                break
            name, qualifier = ref.group(1), ref.group(2)
            follows_paren = masked[ref.end():].lstrip().startswith("(") and keyword != "INTO"
            if qualifier or follows_paren or name.lower() in _CLAUSE_WORDS:
                out.append(ref.group(0))
                pos = ref.end()
                if not qualifier:
                    break
            else:
                out.append(f"{prefix}.{name}")
                pos = ref.end()
                alias = _ALIAS.match(masked, pos)
                if alias and alias.group(2).lower() not in _CLAUSE_WORDS:
                    out.append(alias.group(0))
                    pos = alias.end()
                elif keyword != "INTO":
                    out.append(f" {name}")
            if keyword != "FROM":
                break
            comma = _LIST_COMMA.match(masked, pos)
            if comma is None:
                break
            out.append(comma.group(0))
            pos = comma.end()

    out.append(masked[pos:])
    return "".join(out)


def qualify_functions(sql: str, schema: Optional[str], exclude: Iterable[str] = ()) -> str:
    """Schema-qualify calls to non-builtin functions (translated user code)."""
    if not schema:
        return sql
    prefix = quote_ident(schema)
    skip = BUILTIN_FUNCTIONS | _NON_FUNCTION_WORDS | {e.lower() for e in exclude}

    def qualify(match: re.Match) -> str:
        name = match.group(1)
        if name.lower() in skip:
            return match.group(0)
        return f"{prefix}.{name.lower()}{match.group(2)}("

    return _on_code(sql, _TARGET_LITERALS, lambda masked: _FUNCTION_CALL.sub(qualify, masked))


# =============================================================================
# State comparisons
# =============================================================================

_STATE_SUBQUERY = r"\(SELECT value FROM [\w.\"]+ WHERE [^()]*\([^()]*\)[^()]*\)"
_COMPARE_OPS = r"(?:=|<>|!=|<=|>=|<|>)"
_COLUMN = r'((?:"(?:[^"]|"")+"|[A-Za-z_][\w$]*)(?:\.(?:"(?:[^"]|"")+"|[A-Za-z_][\w$]*))?)'


def cast_state_comparisons(sql: str) -> str:
    """Cast columns compared against a runtime-state subquery to text.

    State values are stored as text; comparing e.g. an integer key column
    against them would otherwise fail with an operator mismatch.
    """
    left = re.compile(rf"{_COLUMN}(\s*{_COMPARE_OPS}\s*)(?={_STATE_SUBQUERY})")
    right = re.compile(rf"(?<=\))(\s*{_COMPARE_OPS}\s*){_COLUMN}(?![\w.(:])")

    def cast_left(match: re.Match) -> str:
        if match.group(1).lower() in RESERVED_WORDS:
            return match.group(0)
        return f"{match.group(1)}::text{match.group(2)}"

    sql = left.sub(cast_left, sql)

    # column on the right of the subquery: only where the preceding ")" closes one
    out: List[str] = []
    pos = 0
    for match in re.finditer(_STATE_SUBQUERY, sql):
        out.append(sql[pos:match.end()])
        pos = match.end()
        tail = right.match(sql, pos)
        if tail and tail.group(2).lower() not in RESERVED_WORDS:
            out.append(f"{tail.group(1)}{tail.group(2)}::text")
            pos = tail.end()
    out.append(sql[pos:])
    return "".join(out)
