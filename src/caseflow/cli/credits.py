"""
CLI: ``caseflow credits`` - prepaid credit balance and grants.
"""

from __future__ import annotations

import typer

from caseflow.billing.ledger import CreditLedger
from caseflow.billing.packs import ProcessingPack, grant_processing_pack
from caseflow.cli.utils import console, fail, get_connection, output

app = typer.Typer(no_args_is_help=True)


@app.command()
def balance(
    user_id: str = typer.Argument(..., help="User id"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a user's cached balance and the ledger sum."""
    ledger = CreditLedger(get_connection(database))
    cached = ledger.get_balance(user_id)
    total = ledger.ledger_sum(user_id)
    output(
        {"user_id": user_id, "balance": cached, "ledger_sum": total, "consistent": cached == total},
        as_json=json_out,
        title="Credit Balance",
    )


@app.command()
def grant(
    user_id: str = typer.Argument(..., help="User id"),
    event_id: str = typer.Option(..., "--event-id", "-e", help="Payment event id (idempotency key)"),
    pack: str = typer.Option(ProcessingPack.OVERLIMIT_200.value, "--pack", "-p", help="overlimit_200 | plus_600"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Grant a processing pack for a confirmed payment."""
    try:
        parsed = ProcessingPack(pack)
    except ValueError:
        fail(f"Unknown pack: {pack}", code="INVALID_PACK")
        return

    result = grant_processing_pack(CreditLedger(get_connection(database)), user_id, parsed, event_id)
    output(result, as_json=json_out, title="Pack Grant")
    if result.already_granted and not json_out:
        console.print("[yellow]Already granted for this event; nothing changed.[/yellow]")


@app.command()
def history(
    user_id: str = typer.Argument(..., help="User id"),
    limit: int = typer.Option(10, "--limit", "-n"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List recent ledger entries, newest first."""
    ledger = CreditLedger(get_connection(database))
    output(ledger.recent_entries(user_id, limit=limit), as_json=json_out, title=f"Ledger for {user_id}")
