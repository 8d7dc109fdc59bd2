"""
CLI: ``caseflow quota`` - usage and remaining headroom.
"""

from __future__ import annotations

import typer

from caseflow.billing.entitlements import Entitlements, StaticEntitlementResolver, SubscriptionTier
from caseflow.billing.ledger import CreditLedger
from caseflow.billing.quota import QuotaEngine
from caseflow.billing.usage import UsageLog
from caseflow.cli.utils import console, fail, get_connection, output

app = typer.Typer(no_args_is_help=True)


@app.command()
def usage(
    user_id: str = typer.Argument(..., help="User id"),
    tier: str = typer.Option(SubscriptionTier.FREE.value, "--tier", "-t", help="free | trial | core | pro | premium"),
    comped: bool = typer.Option(False, "--comped", help="Treat the user as comped"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show this period's usage and what remains under a tier."""
    try:
        entitlements = Entitlements.comped() if comped else Entitlements(tier=SubscriptionTier(tier))
    except ValueError:
        fail(f"Unknown tier: {tier}", code="INVALID_TIER")
        return

    conn = get_connection(database)
    engine = QuotaEngine(
        CreditLedger(conn),
        UsageLog(conn),
        StaticEntitlementResolver({user_id: entitlements}),
    )
    output(engine.get_usage(user_id), as_json=json_out, title="Usage")
    if not json_out:
        console.print()
    output(engine.get_quota_remaining(user_id), as_json=json_out, title="Remaining")
