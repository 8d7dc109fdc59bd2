"""
CLI: ``caseflow jobs`` - job maintenance and status.
"""

from __future__ import annotations

import typer

from caseflow.cli.utils import console, fail, get_connection, output
from caseflow.core.settings import get_settings
from caseflow.execution.models import JobType
from caseflow.execution.repository import JobRepository

app = typer.Typer(no_args_is_help=True)


@app.command("requeue-stale")
def requeue_stale(
    database: str | None = typer.Option(None, "--database", "-d"),
    minutes: int | None = typer.Option(None, "--minutes", "-m", help="Stale threshold override"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Flip jobs stuck in 'processing' back to 'queued'."""
    threshold = minutes if minutes is not None else get_settings().stale_threshold_minutes
    repo = JobRepository(get_connection(database), stale_threshold_minutes=threshold)
    counts = repo.requeue_all_stale()
    output({**counts, "total": sum(counts.values())}, as_json=json_out, title="Requeued Stale Jobs")


@app.command()
def counts(
    case_id: str = typer.Argument(..., help="Case to report on"),
    job_type: str | None = typer.Option(None, "--type", "-t", help="extraction | ai_analysis | claim_suggestion"),
    failures: int = typer.Option(0, "--failures", "-f", help="Also list the N most recent failures"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show job counts by status for a case."""
    try:
        parsed_type = JobType(job_type) if job_type else None
    except ValueError:
        fail(f"Unknown job type: {job_type}", code="INVALID_TYPE")
        return

    repo = JobRepository(get_connection(database))
    output(repo.count_by_status(case_id, parsed_type), as_json=json_out, title=f"Jobs for {case_id}")

    if failures > 0:
        recent = repo.recent_failures(case_id, limit=failures, job_type=parsed_type)
        if not json_out:
            console.print()
        output(recent, as_json=json_out, title="Recent Failures")
