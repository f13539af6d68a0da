"""Control -> column mapping.

Maps a ``(form, control)`` pair to the ``(table, column)`` it edits or
displays. The reference resolver uses it to turn live-widget references into
runtime-state subqueries; the UI uses the reverse lookup to auto-tag widgets
whose values must be synced.

All keys are case-folded through :func:`sanitize_name`, so ``frmCustomers``
and ``[FRMCUSTOMERS]`` name the same form.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .conversion.names import sanitize_name

logger = logging.getLogger(__name__)

MAPPING_TABLE = "shared.control_column_map"


@dataclass(frozen=True)
class ControlBinding:
    form: str
    control: str
    table: str
    column: str

    @classmethod
    def create(cls, form: str, control: str, table: str, column: str) -> "ControlBinding":
        return cls(
            form=sanitize_name(form),
            control=sanitize_name(control),
            table=sanitize_name(table),
            column=sanitize_name(column),
        )

    @property
    def target(self) -> Tuple[str, str]:
        return (self.table, self.column)


class ControlMapping:
    """In-memory, case-folded control mapping.

    Insertion order is preserved; when a 2-part reference matches controls on
    several forms, the first binding added wins. Safe to share between
    import workers: writes hold a lock and reads iterate over a snapshot.
    """

    def __init__(self, bindings: Iterable[ControlBinding] = ()):
        self._bindings: Dict[Tuple[str, str], ControlBinding] = {}
        self._lock = threading.RLock()
        for binding in bindings:
            self.add(binding)

    def add(self, binding: ControlBinding) -> None:
        with self._lock:
            self._bindings[(binding.form, binding.control)] = binding

    def replace_form(self, form: str, bindings: Iterable[ControlBinding]) -> None:
        """Drop every binding of ``form`` and add ``bindings`` in its place."""
        form_key = sanitize_name(form)
        bindings = list(bindings)
        with self._lock:
            for key in [k for k in self._bindings if k[0] == form_key]:
                del self._bindings[key]
            for binding in bindings:
                self.add(binding)

    def _snapshot(self) -> List[ControlBinding]:
        with self._lock:
            return list(self._bindings.values())

    def lookup(self, form: str, control: str) -> Optional[ControlBinding]:
        key = (sanitize_name(form), sanitize_name(control))
        with self._lock:
            return self._bindings.get(key)

    def find_control(self, control: str) -> List[ControlBinding]:
        """All bindings for a control name on any form, in insertion order."""
        key = sanitize_name(control)
        return [b for b in self._snapshot() if b.control == key]

    def bindings_for_column(self, table: str, column: str) -> List[ControlBinding]:
        """Reverse lookup: every control bound to ``(table, column)``."""
        target = (sanitize_name(table), sanitize_name(column))
        return [b for b in self._snapshot() if b.target == target]

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)

    def __iter__(self) -> Iterator[ControlBinding]:
        return iter(self._snapshot())

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        return self.lookup(*key) is not None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ControlMapping":
        """Build from ``{"form.control": {"table": ..., "column": ...}}``."""
        bindings = []
        for key, target in data.items():
            form, _, control = key.partition(".")
            if not control:
                raise ValueError(f"Mapping key must be 'form.control', got {key!r}")
            bindings.append(ControlBinding.create(form, control, target["table"], target["column"]))
        return cls(bindings)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {
            f"{b.form}.{b.control}": {"table": b.table, "column": b.column}
            for b in self._snapshot()
        }

    def describe(self) -> str:
        """One ``form.control -> table.column`` line per binding (prompt context)."""
        return "\n".join(
            f"{b.form}.{b.control} → {b.table}.{b.column}" for b in self._snapshot()
        )


def bindings_from_definition(name: str, definition: Any) -> List[ControlBinding]:
    """Derive control bindings from a form or report definition.

    - bound control (has ``field``): record source table + field column
    - expression control (control source starting with ``=``): skipped
    - unbound control: form name as pseudo-table, control name as column

    Controls are collected from every section carrying a ``controls`` list.
    """
    if isinstance(definition, str):
        try:
            definition = json.loads(definition)
        except ValueError:
            logger.warning("Unparseable definition for %s; no control bindings derived", name)
            return []
    if not isinstance(definition, Mapping):
        return []

    form = sanitize_name(name)
    record_source = sanitize_name(
        definition.get("record-source") or definition.get("record_source") or ""
    )

    controls: List[Mapping[str, Any]] = []
    for section in definition.values():
        if isinstance(section, Mapping) and isinstance(section.get("controls"), list):
            controls.extend(c for c in section["controls"] if isinstance(c, Mapping))

    bindings: List[ControlBinding] = []
    for control in controls:
        control_name = sanitize_name(str(control.get("name") or control.get("id") or ""))
        if not control_name:
            continue
        field_name = control.get("field")
        source = control.get("control-source") or control.get("control_source")
        if field_name:
            bindings.append(ControlBinding(form, control_name, record_source or form, sanitize_name(field_name)))
        elif isinstance(source, str) and source.startswith("="):
            continue
        else:
            bindings.append(ControlBinding(form, control_name, form, control_name))
    return bindings


def live_synced_controls(mapping: ControlMapping, resolved: Iterable[Tuple[str, str]]) -> List[ControlBinding]:
    """Controls whose values must be synced because a query reads their column."""
    seen = set()
    result = []
    for table, column in resolved:
        for binding in mapping.bindings_for_column(table, column):
            key = (binding.form, binding.control)
            if key not in seen:
                seen.add(key)
                result.append(binding)
    return result


class ControlMappingRepository:
    """Reads and writes ``shared.control_column_map`` through a database executor."""

    def __init__(self, executor, table: str = MAPPING_TABLE):
        self.executor = executor
        self.table = table

    def load(self) -> ControlMapping:
        rows = self.executor.execute(
            f"SELECT form_name, control_name, table_name, column_name "
            f"FROM {self.table} ORDER BY form_name, control_name"
        )
        return ControlMapping(
            ControlBinding(r["form_name"], r["control_name"], r["table_name"], r["column_name"])
            for r in rows
        )

    def replace_form(self, form: str, bindings: List[ControlBinding]) -> int:
        """Atomically replace all bindings stored for ``form``."""
        form_key = sanitize_name(form)
        steps: List[Tuple[str, tuple]] = [
            (f"DELETE FROM {self.table} WHERE form_name = %s", (form_key,)),
        ]
        for b in bindings:
            steps.append((
                f"INSERT INTO {self.table} (form_name, control_name, table_name, column_name) "
                f"VALUES (%s, %s, %s, %s) "
                f"ON CONFLICT (form_name, control_name) DO UPDATE "
                f"SET table_name = EXCLUDED.table_name, column_name = EXCLUDED.column_name",
                (b.form, b.control, b.table, b.column),
            ))
        self.executor.run_transaction(steps)
        logger.debug("Stored %d control bindings for %s", len(bindings), form_key)
        return len(bindings)
