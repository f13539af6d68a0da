"""Reference resolver: live-widget and session-variable references.

Three reference shapes are recognised:

- ``[Forms]![frmX]![ctlY]`` / ``Forms!frmX!ctlY`` / ``[Reports]!...``:
  resolved exactly through the control mapping.
- ``[Form]![ctlY]`` / ``Parent!ctlY`` / ``Me!ctlY``: scoped to "the current
  form", so the control name is looked up across every mapped form.
- ``[TempVars]![name]`` / ``TempVars("name")``: session variables, stored under
  the reserved ``_tempvars`` table name.

Each resolved reference becomes a scalar subquery against the runtime state
table filtered by the transaction-local session setting. Without a session
setting the filter matches no rows and the subquery yields NULL.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..execution.errors import UnresolvedReference
from ..mapping import ControlMapping
from .names import sanitize_name
from .syntax import _mask, _unmask

logger = logging.getLogger(__name__)

STATE_TABLE = "shared.runtime_state"
SESSION_SETTING = "app.session_id"
TEMPVARS_TABLE = "_tempvars"

_NAME = r"(?:\[([^\]]+)\]|([A-Za-z_]\w*))"

_QUALIFIED = re.compile(
    rf"(?<![\w\]])\[?(Forms|Reports)\]?\s*!\s*{_NAME}\s*[!.]\s*{_NAME}",
    re.I,
)
_SCOPED = re.compile(rf"(?<![\w\]!])\[?(Form|Parent|Me)\]?\s*!\s*{_NAME}", re.I)
_TEMPVAR_BANG = re.compile(rf"(?<![\w\]])\[?TempVars\]?\s*!\s*{_NAME}", re.I)
_TEMPVAR_CALL = re.compile(
    r"(?<![\w\]])\[?TempVars\]?(?:\.Item)?\s*\(\s*\x00(\d+)\x00\s*\)",
    re.I,
)
# String literals and comments are masked before resolution; a TempVars call
# sees its masked name argument.
_LITERALS = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|/\*.*?\*/|--[^\n]*", re.S)


def state_subquery(
    table: str,
    column: str,
    setting: str = SESSION_SETTING,
    state_table: str = STATE_TABLE,
) -> str:
    """Scalar subquery reading one runtime-state value for the active session."""
    return (
        f"(SELECT value FROM {state_table} "
        f"WHERE session_id = current_setting('{setting}', true) "
        f"AND table_name = '{table}' "
        f"AND column_name = '{column}')"
    )


@dataclass
class Resolution:
    """Result of :meth:`ReferenceResolver.resolve`."""
    sql: str
    resolved: List[Tuple[str, str]] = field(default_factory=list)
    unresolved: List[UnresolvedReference] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def _add_resolved(self, pair: Tuple[str, str]) -> None:
        if pair not in self.resolved:
            self.resolved.append(pair)


class ReferenceResolver:
    """Rewrites widget and session-variable references into state subqueries."""

    def __init__(
        self,
        mapping: Optional[ControlMapping] = None,
        setting: str = SESSION_SETTING,
        state_table: str = STATE_TABLE,
    ):
        self.mapping = mapping if mapping is not None else ControlMapping()
        self.setting = setting
        self.state_table = state_table

    def subquery(self, table: str, column: str) -> str:
        return state_subquery(table, column, self.setting, self.state_table)

    def resolve(self, sql: str) -> Resolution:
        result = Resolution(sql=sql)
        text, saved = _mask(sql, _LITERALS)
        text = _QUALIFIED.sub(lambda m: self._qualified(m, result), text)
        text = _SCOPED.sub(lambda m: self._scoped(m, result), text)
        text = _TEMPVAR_BANG.sub(lambda m: self._tempvar(_pick(m, 1), result), text)
        text = _TEMPVAR_CALL.sub(lambda m: self._tempvar(_unquote(saved[int(m.group(1))]), result), text)
        result.sql = _unmask(text, saved)
        return result

    def _qualified(self, match: re.Match, result: Resolution) -> str:
        collection = match.group(1)
        form = _pick(match, 2)
        control = _pick(match, 4)
        binding = self.mapping.lookup(form, control)
        if binding is None:
            return self._unresolved(f"{collection}!{form}!{control}", "no mapping for form control", result)
        result._add_resolved(binding.target)
        return self.subquery(binding.table, binding.column)

    def _scoped(self, match: re.Match, result: Resolution) -> str:
        scope = match.group(1)
        control = _pick(match, 2)
        candidates = self.mapping.find_control(control)
        if not candidates:
            return self._unresolved(f"{scope}!{control}", "control not found on any mapped form", result)
        binding = candidates[0]
        targets = {c.target for c in candidates}
        if len(targets) > 1:
            result.warnings.append(
                f"Ambiguous reference {scope}!{control}: matches {len(candidates)} forms; "
                f"using {binding.form}.{binding.control} -> {binding.table}.{binding.column}"
            )
        result._add_resolved(binding.target)
        return self.subquery(binding.table, binding.column)

    def _tempvar(self, name: str, result: Resolution) -> str:
        column = sanitize_name(name)
        result._add_resolved((TEMPVARS_TABLE, column))
        return self.subquery(TEMPVARS_TABLE, column)

    def _unresolved(self, reference: str, reason: str, result: Resolution) -> str:
        issue = UnresolvedReference(reference, reason)
        result.unresolved.append(issue)
        result.warnings.append(str(issue))
        logger.debug("Unresolved reference %s (%s)", reference, reason)
        safe = reference.replace("*/", "* /")
        return f"NULL /* UNRESOLVED: {safe} */"


def _pick(match: re.Match, group: int) -> str:
    """Value of a bracketed-or-bare name pair starting at ``group``."""
    return match.group(group) if match.group(group) is not None else match.group(group + 1)


def _unquote(literal: str) -> str:
    quote = literal[0]
    return literal[1:-1].replace(quote * 2, quote)
