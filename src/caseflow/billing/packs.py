"""Processing packs - prepaid credit bundles granted on payment confirmation."""

from __future__ import annotations

from enum import Enum

from caseflow.billing.ledger import CreditLedger, GrantResult
from caseflow.core.logging import get_logger

logger = get_logger(__name__)


class ProcessingPack(str, Enum):
    OVERLIMIT_200 = "overlimit_200"
    PLUS_600 = "plus_600"

    @property
    def credits(self) -> int:
        return PACK_CREDITS[self]


PACK_CREDITS: dict[ProcessingPack, int] = {
    ProcessingPack.OVERLIMIT_200: 200,
    ProcessingPack.PLUS_600: 600,
}


def pack_job_key(event_id: str) -> str:
    """Ledger key for a payment event; one grant per event id."""
    return f"pack_purchase:{event_id}"


def grant_processing_pack(
    ledger: CreditLedger,
    user_id: str,
    pack: ProcessingPack | str,
    event_id: str,
) -> GrantResult:
    """Credit a purchased pack, keyed by the payment event's own id.

    Re-delivery of the same payment event returns the original grant with
    ``already_granted=True``.

    Raises:
        ValueError: If ``pack`` is not a known pack name
    """
    pack = ProcessingPack(pack)
    result = ledger.add_pack_credits(user_id, pack.credits, job_key=pack_job_key(event_id))
    logger.info(
        "packs.granted",
        user_id=user_id,
        pack=pack.value,
        event_id=event_id,
        already_granted=result.already_granted,
        new_balance=result.new_balance,
    )
    return result


__all__ = ["ProcessingPack", "PACK_CREDITS", "pack_job_key", "grant_processing_pack"]
