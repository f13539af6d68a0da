"""QueryBridge CLI: convert and import legacy queries into PostgreSQL.

Usage: qb <command> [options]
"""

from __future__ import annotations

import click


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-essential output.")
@click.pass_context
def main(ctx: click.Context, verbose: bool, quiet: bool) -> None:
    """QueryBridge: Access query conversion and dependency-ordered import."""
    import logging

    from dotenv import load_dotenv

    load_dotenv(".env")

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(message)s")
    elif quiet:
        logging.basicConfig(level=logging.WARNING)
    else:
        logging.basicConfig(level=logging.INFO, format="%(message)s")


# --- Lazy command registration (keeps `qb --help` fast) ---

def _register_commands() -> None:
    """Import and register all sub-commands."""
    from .cmd_convert import convert
    from .cmd_import import import_batch
    from .cmd_setup import setup

    main.add_command(convert)
    main.add_command(import_batch)
    main.add_command(setup)


_register_commands()
