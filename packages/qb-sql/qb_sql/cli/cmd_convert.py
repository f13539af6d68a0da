"""qb convert: offline translation of one query file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Tuple

import click


def _parse_parameter(text: str):
    from qb_sql.schemas import QueryParameter

    name, _, type_name = text.partition(":")
    return QueryParameter(name=name.strip(), type=type_name.strip() or "Text")


@click.command()
@click.argument("sql_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--name", default=None, help="Object name (default: file stem).")
@click.option("--schema", default=None, help="Target schema used to qualify tables and functions.")
@click.option("--mapping", "mapping_file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Control mapping JSON: {\"form.control\": {\"table\": ..., \"column\": ...}}.")
@click.option("-p", "--parameter", "parameters", multiple=True,
              help="Declared parameter NAME[:TYPE] (repeatable).")
@click.option("--json", "as_json", is_flag=True, help="Print the conversion result as JSON.")
@click.pass_context
def convert(
    ctx: click.Context,
    sql_file: str,
    name: str | None,
    schema: str | None,
    mapping_file: str | None,
    parameters: Tuple[str, ...],
    as_json: bool,
) -> None:
    """Translate an Access query into PostgreSQL DDL without touching a database.

    Example:
        qb convert qryOrders.sql --schema app --mapping controls.json
        qb convert qryByDate.sql -p "Start Date:DateTime" --json
    """
    from rich.syntax import Syntax

    from qb_sql.conversion import convert_query
    from qb_sql.schemas import QueryDefinition

    from ._common import console, load_mapping, print_header, print_warnings

    path = Path(sql_file)
    query = QueryDefinition(
        name=name or path.stem,
        sql=path.read_text(),
        parameters=tuple(_parse_parameter(p) for p in parameters),
    )
    result = convert_query(query, schema=schema, mapping=load_mapping(mapping_file))

    if as_json:
        click.echo(json.dumps({
            "name": result.object_name,
            "kind": result.object_kind.value,
            "ddl": result.ddl,
            "statements": result.statements,
            "warnings": result.warnings,
            "resolved_references": [list(r) for r in result.resolved_references],
            "output_columns": result.output_columns,
            "unmapped_functions": result.unmapped_functions,
        }, indent=2))
        return

    print_header(f"{result.object_name} ({result.object_kind.value})")
    if result.ddl:
        console.print(Syntax(result.ddl, "sql", word_wrap=True))
    if result.resolved_references:
        refs = ", ".join(f"{t}.{c}" for t, c in result.resolved_references)
        console.print(f"  Live references: {refs}", markup=False)
    print_warnings(result.warnings)
