"""Function mapper: rewrites legacy function calls into target expressions.

Calls are translated innermost-first by recursive descent over the argument
lists, so nested calls (``Nz(IIf(Len(x) > 0, x, Null), '')``) come out fully
translated in a single pass. Quoted literals, bracketed identifiers and
comments are copied through untouched.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List

from .function_map import FUNCTION_MAP, UNPORTABLE_FUNCTIONS
from .names import skip_quoted, find_close_paren, parse_arguments

logger = logging.getLogger(__name__)

_CALL = re.compile(r"(?<![\w$.\]\"])([A-Za-z_][A-Za-z0-9_]*\$?)\s*\(")


@dataclass
class FunctionTranslation:
    """Result of :func:`translate_functions`."""
    sql: str
    warnings: List[str] = field(default_factory=list)
    unmapped: List[str] = field(default_factory=list)


def translate_functions(sql: str) -> FunctionTranslation:
    """Translate every recognised legacy call in ``sql``.

    Calls with no portable equivalent, or with an argument count the rule does
    not accept, are kept as written behind an ``/* UNMAPPED: ... */`` marker and
    reported as warnings. Unknown names (user functions) pass through.
    """
    result = FunctionTranslation(sql="")
    result.sql = _translate(sql, result)
    return result


def _translate(sql: str, result: FunctionTranslation) -> str:
    out: List[str] = []
    i = 0
    n = len(sql)
    while i < n:
        ch = sql[i]
        if ch in ("'", '"'):
            end = skip_quoted(sql, i)
            out.append(sql[i:end])
            i = end
            continue
        if ch == "[":
            end = sql.find("]", i + 1)
            end = n if end == -1 else end + 1
            out.append(sql[i:end])
            i = end
            continue
        if sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = n if end == -1 else end + 2
            out.append(sql[i:end])
            i = end
            continue

        match = _CALL.match(sql, i)
        if match is None:
            out.append(ch)
            i += 1
            continue

        name = match.group(1)
        key = name.lower()
        open_idx = match.end() - 1
        if key not in FUNCTION_MAP and key not in UNPORTABLE_FUNCTIONS:
            # Unknown call: keep the name, keep scanning inside its arguments
            out.append(sql[i:match.end()])
            i = match.end()
            continue

        close_idx = find_close_paren(sql, open_idx)
        if close_idx == -1:
            logger.debug("Unbalanced parentheses after %s; leaving remainder as-is", name)
            out.append(sql[i:])
            break

        args = [_translate(arg, result) for arg in parse_arguments(sql[open_idx + 1:close_idx])]
        out.append(_render_call(name, args, result))
        i = close_idx + 1

    return "".join(out)


def _render_call(name: str, args: List[str], result: FunctionTranslation) -> str:
    key = name.lower()
    rule = FUNCTION_MAP.get(key)
    if rule is not None and rule.accepts(len(args)):
        return rule.render(args)

    if rule is None:
        reason = "no portable equivalent"
    else:
        reason = f"unsupported argument count {len(args)}"
    result.warnings.append(f"Unmapped function {name}(): {reason}; left for manual conversion")
    if key not in result.unmapped:
        result.unmapped.append(key)
    return f"/* UNMAPPED: {name} */ {name}({', '.join(args)})"
