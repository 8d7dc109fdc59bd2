"""Tests for processing pack grants."""

from __future__ import annotations

import pytest

from caseflow.billing.packs import PACK_CREDITS, ProcessingPack, grant_processing_pack, pack_job_key


def test_pack_sizes():
    assert ProcessingPack.OVERLIMIT_200.credits == 200
    assert ProcessingPack.PLUS_600.credits == 600
    assert set(PACK_CREDITS) == set(ProcessingPack)


def test_job_key_is_derived_from_event():
    assert pack_job_key("evt_123") == "pack_purchase:evt_123"


def test_grant_credits_balance(ledger):
    result = grant_processing_pack(ledger, "u-1", "plus_600", "evt_1")
    assert result.new_balance == 600
    assert result.already_granted is False


def test_redelivered_event_grants_once(ledger):
    grant_processing_pack(ledger, "u-1", ProcessingPack.OVERLIMIT_200, "evt_1")
    again = grant_processing_pack(ledger, "u-1", ProcessingPack.OVERLIMIT_200, "evt_1")
    assert again.already_granted is True
    assert ledger.get_balance("u-1") == 200
    assert ledger.ledger_sum("u-1") == 200


def test_unknown_pack(ledger):
    with pytest.raises(ValueError):
        grant_processing_pack(ledger, "u-1", "mega_9000", "evt_1")
