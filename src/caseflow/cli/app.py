"""
Root Typer application for the caseflow CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from caseflow.core.logging import configure_logging
from caseflow.core.settings import get_settings

app = Typer(
    name="caseflow",
    help="caseflow - job execution, credits and quotas for case processing.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from caseflow import __version__

        typer.echo(f"caseflow {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """caseflow CLI - maintain jobs, credits and quotas."""
    settings = get_settings()
    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        json_format=settings.log_format == "json",
        service="caseflow-cli",
    )


# ── Sub-command registration ─────────────────────────────────────────────

from caseflow.cli.credits import app as credits_app  # noqa: E402
from caseflow.cli.db import app as db_app  # noqa: E402
from caseflow.cli.jobs import app as jobs_app  # noqa: E402
from caseflow.cli.quota import app as quota_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(jobs_app, name="jobs", help="Job maintenance and status.")
app.add_typer(credits_app, name="credits", help="Prepaid credit ledger.")
app.add_typer(quota_app, name="quota", help="Usage quotas.")
