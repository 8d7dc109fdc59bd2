"""
CLI: ``caseflow db`` - database management commands.
"""

from __future__ import annotations

import typer

from caseflow.cli.utils import console, output
from caseflow.core.connection import create_connection
from caseflow.core.schema import CORE_TABLES
from caseflow.core.settings import get_settings

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL or path"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Initialise database schema (create tables)."""
    conn, info = create_connection(database or get_settings().database_url, init_schema=True)
    conn.close()
    output(
        {
            "backend": info.backend,
            "persistent": info.persistent,
            "path": info.resolved_path or info.url,
            "tables": ", ".join(CORE_TABLES.values()),
        },
        as_json=json_out,
        title="Database Init",
    )
    if not json_out:
        console.print("[green]Schema ready.[/green]")
