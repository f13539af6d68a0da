"""Identifier and argument-list helpers used across the converter."""

from __future__ import annotations

import re
from typing import List, Optional

# PostgreSQL reserved key words (cannot be used as bare identifiers).
RESERVED_WORDS = frozenset({
    "all", "analyse", "analyze", "and", "any", "array", "as", "asc",
    "asymmetric", "authorization", "binary", "both", "case", "cast", "check",
    "collate", "collation", "column", "concurrently", "constraint", "create",
    "cross", "current_catalog", "current_date", "current_role",
    "current_schema", "current_time", "current_timestamp", "current_user",
    "default", "deferrable", "desc", "distinct", "do", "else", "end",
    "except", "false", "fetch", "for", "foreign", "freeze", "from", "full",
    "grant", "group", "having", "ilike", "in", "initially", "inner",
    "intersect", "into", "is", "isnull", "join", "lateral", "leading", "left",
    "like", "limit", "localtime", "localtimestamp", "natural", "not",
    "notnull", "null", "offset", "on", "only", "or", "order", "outer",
    "overlaps", "placing", "primary", "references", "returning", "right",
    "select", "session_user", "similar", "some", "symmetric", "system_user",
    "table", "tablesample", "then", "to", "trailing", "true", "union",
    "unique", "user", "using", "variadic", "verbose", "when", "where",
    "window", "with",
})

_BARE_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_$]*$")

# Legacy parameter type name -> target type
PARAM_TYPE_MAP = {
    "boolean": "boolean",
    "yesno": "boolean",
    "byte": "integer",
    "integer": "integer",
    "short": "integer",
    "long": "bigint",
    "currency": "numeric(19,4)",
    "single": "real",
    "double": "double precision",
    "ieeedouble": "double precision",
    "date": "date",
    "datetime": "timestamp",
    "text": "text",
    "memo": "text",
    "value": "text",
}


def sanitize_name(name: str) -> str:
    """Lowercase, spaces to underscores, drop anything outside [a-z0-9_].

    ``"Order Details"`` -> ``"order_details"``; ``"Qty/Unit"`` -> ``"qtyunit"``.
    """
    if not name:
        return ""
    text = name.strip().strip("[]").lower()
    text = re.sub(r"\s+", "_", text)
    return re.sub(r"[^a-z0-9_]", "", text)


def quote_ident(name: str) -> str:
    """Render an already-sanitized name, quoting only when it has to be."""
    if name in RESERVED_WORDS or not _BARE_IDENTIFIER.match(name):
        return '"' + name.replace('"', '""') + '"'
    return name


def param_name(name: str) -> str:
    """Target-side name for a declared query parameter."""
    return "p_" + sanitize_name(name)


def map_param_type(access_type: Optional[str]) -> str:
    """Map a legacy parameter type name to a target type (default ``text``)."""
    if not access_type:
        return "text"
    key = re.sub(r"[\s_]", "", access_type).lower()
    return PARAM_TYPE_MAP.get(key, "text")


def find_close_paren(sql: str, open_idx: int) -> int:
    """Index of the parenthesis matching the one at ``open_idx``, or -1.

    Skips over quoted strings and bracketed identifiers.
    """
    depth = 0
    i = open_idx
    n = len(sql)
    while i < n:
        ch = sql[i]
        if ch in ("'", '"'):
            i = skip_quoted(sql, i)
            continue
        if ch == "[":
            end = sql.find("]", i + 1)
            i = n if end == -1 else end + 1
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def parse_arguments(args: str) -> List[str]:
    """Split a function argument list on top-level commas.

    >>> parse_arguments("a, IIf(b, c, d), 'x,y'")
    ['a', 'IIf(b, c, d)', "'x,y'"]
    """
    result: List[str] = []
    if not args.strip():
        return result
    depth = 0
    start = 0
    i = 0
    n = len(args)
    while i < n:
        ch = args[i]
        if ch in ("'", '"'):
            i = skip_quoted(args, i)
            continue
        if ch == "[":
            end = args.find("]", i + 1)
            i = n if end == -1 else end + 1
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            result.append(args[start:i].strip())
            start = i + 1
        i += 1
    result.append(args[start:].strip())
    return result


def skip_quoted(text: str, i: int) -> int:
    """Index just past the quoted literal starting at ``i`` (doubled quotes escape)."""
    quote = text[i]
    i += 1
    n = len(text)
    while i < n:
        if text[i] == quote:
            if i + 1 < n and text[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return n


def unquote_literal(text: str) -> str:
    """Strip one layer of single or double quotes from a literal argument."""
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1].replace(text[0] * 2, text[0])
    return text
