"""Target schema catalog: tables, views, columns and functions.

Used for output-column typing during DDL synthesis, for parameter type
refinement, and as the schema snapshot handed to the fallback corrector.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class FunctionInfo:
    name: str
    arguments: str = ""
    returns: str = ""


@dataclass
class SchemaCatalog:
    """Snapshot of one schema. Names are stored lowercased."""
    schema: str = "public"
    columns: Dict[str, Dict[str, str]] = field(default_factory=dict)
    views: set = field(default_factory=set)
    functions: List[FunctionInfo] = field(default_factory=list)

    def add_table(self, name: str, columns: Dict[str, str], is_view: bool = False) -> None:
        key = name.lower()
        self.columns[key] = {c.lower(): t for c, t in columns.items()}
        if is_view:
            self.views.add(key)

    def has_relation(self, name: str) -> bool:
        return name.lower() in self.columns

    def columns_of(self, table: str) -> Optional[Dict[str, str]]:
        return self.columns.get(table.lower())

    def column_type(self, table: str, column: str) -> Optional[str]:
        cols = self.columns_of(table)
        if cols is None:
            return None
        return cols.get(column.lower())

    def find_column_type(self, column: str) -> Optional[str]:
        """Type of ``column`` if every relation that has it agrees on one type."""
        types = {cols[column.lower()] for cols in self.columns.values() if column.lower() in cols}
        if len(types) == 1:
            return types.pop()
        return None

    def describe(self) -> str:
        """Compact text snapshot: one ``name: col type, ...`` line per relation."""
        lines = []
        for name in sorted(self.columns):
            cols = ", ".join(f"{c} {t}" for c, t in self.columns[name].items())
            suffix = " (view)" if name in self.views else ""
            lines.append(f"{name}{suffix}: {cols}")
        return "\n".join(lines)

    def describe_functions(self) -> str:
        return "\n".join(
            f"{f.name}({f.arguments}) -> {f.returns}" for f in sorted(self.functions, key=lambda f: f.name)
        )


def load_catalog(executor, schema: str = "public") -> SchemaCatalog:
    """Read the catalog of ``schema`` through a database executor."""
    catalog = SchemaCatalog(schema=schema)

    rows = executor.execute(
        """
        SELECT c.table_name, c.column_name, c.data_type, t.table_type
        FROM information_schema.columns c
        JOIN information_schema.tables t
          ON t.table_schema = c.table_schema AND t.table_name = c.table_name
        WHERE c.table_schema = %s
        ORDER BY c.table_name, c.ordinal_position
        """,
        (schema,),
    )
    grouped: Dict[str, Dict[str, str]] = {}
    views = set()
    for row in rows:
        grouped.setdefault(row["table_name"], {})[row["column_name"]] = row["data_type"]
        if row["table_type"] == "VIEW":
            views.add(row["table_name"])
    for name, cols in grouped.items():
        catalog.add_table(name, cols, is_view=name in views)

    rows = executor.execute(
        """
        SELECT p.proname AS name,
               pg_get_function_arguments(p.oid) AS arguments,
               pg_get_function_result(p.oid) AS returns
        FROM pg_proc p
        JOIN pg_namespace n ON n.oid = p.pronamespace
        WHERE n.nspname = %s
        ORDER BY p.proname
        """,
        (schema,),
    )
    catalog.functions = [
        FunctionInfo(r["name"], r.get("arguments") or "", r.get("returns") or "") for r in rows
    ]
    logger.debug(
        "Loaded catalog for %s: %d relations, %d functions",
        schema, len(catalog.columns), len(catalog.functions),
    )
    return catalog
