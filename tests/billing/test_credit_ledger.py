"""Tests for CreditLedger idempotency and balance consistency."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from caseflow.billing.ledger import MAX_ERROR_LENGTH, CreditReason


def _fund(ledger, user_id="u-1", credits=5, event="evt-1"):
    return ledger.add_pack_credits(user_id, credits, f"pack_purchase:{event}")


class TestConsume:
    def test_consume_once(self, ledger):
        _fund(ledger, credits=3)
        result = ledger.consume_or_throw("u-1", "ai_call", "analyze:ev-1")
        assert result.consumed is True
        assert result.already_consumed is False
        assert result.remaining == 2

    def test_double_consume_is_idempotent(self, ledger):
        _fund(ledger, credits=3)
        first = ledger.consume_or_throw("u-1", "ai_call", "analyze:ev-1")
        second = ledger.consume_or_throw("u-1", "ai_call", "analyze:ev-1")
        assert second.consumed is True
        assert second.already_consumed is True
        assert second.ledger_id == first.ledger_id
        assert ledger.get_balance("u-1") == 2

    def test_insufficient_balance(self, ledger):
        result = ledger.consume_or_throw("u-1", "ai_call", "analyze:ev-1")
        assert result.consumed is False
        assert result.ledger_id is None
        assert result.remaining == 0
        assert ledger.recent_entries("u-1") == []

    def test_quantity(self, ledger):
        _fund(ledger, credits=10)
        result = ledger.consume_or_throw("u-1", "ocr_page", "extract:ev-1", quantity=4, case_id="case-1")
        assert result.remaining == 6
        entry = next(e for e in ledger.recent_entries("u-1") if e.reason == CreditReason.CONSUME)
        assert entry.delta == -4
        assert entry.case_id == "case-1"


class TestRefund:
    def test_refund_without_consume_is_noop(self, ledger):
        result = ledger.refund_if_needed("u-1", "ai_call", "analyze:ev-1", error="boom")
        assert result.refunded is False
        assert ledger.get_balance("u-1") == 0
        assert ledger.ledger_sum("u-1") == 0

    def test_repeated_refund_credits_once(self, ledger):
        _fund(ledger, credits=2)
        ledger.consume_or_throw("u-1", "ai_call", "analyze:ev-1")
        first = ledger.refund_if_needed("u-1", "ai_call", "analyze:ev-1", error="timeout")
        second = ledger.refund_if_needed("u-1", "ai_call", "analyze:ev-1", error="timeout")

        assert first.refunded is True and first.already_refunded is False
        assert second.refunded is True and second.already_refunded is True
        assert second.ledger_id == first.ledger_id
        assert ledger.get_balance("u-1") == 2

    def test_refund_error_truncated(self, ledger):
        _fund(ledger, credits=1)
        ledger.consume_or_throw("u-1", "ai_call", "analyze:ev-1")
        ledger.refund_if_needed("u-1", "ai_call", "analyze:ev-1", error="e" * 2000)
        refund = next(e for e in ledger.recent_entries("u-1") if e.reason == CreditReason.REFUND_FAILURE)
        assert len(refund.error) == MAX_ERROR_LENGTH


class TestPackCredits:
    def test_grant_is_idempotent_per_event(self, ledger):
        first = _fund(ledger, credits=200, event="evt-9")
        second = _fund(ledger, credits=200, event="evt-9")
        assert first.new_balance == 200
        assert second.already_granted is True
        assert second.ledger_id == first.ledger_id
        assert ledger.get_balance("u-1") == 200

    def test_distinct_events_stack(self, ledger):
        _fund(ledger, credits=200, event="evt-1")
        _fund(ledger, credits=600, event="evt-2")
        assert ledger.get_balance("u-1") == 800

    def test_sets_last_purchase(self, ledger):
        assert ledger.last_pack_purchase_at("u-1") is None
        _fund(ledger)
        assert ledger.last_pack_purchase_at("u-1") is not None

    @pytest.mark.parametrize("credits", [0, -5])
    def test_rejects_non_positive(self, ledger, credits):
        with pytest.raises(ValueError):
            ledger.add_pack_credits("u-1", credits, "pack_purchase:bad")


class TestConsistency:
    def test_balance_matches_ledger_sum(self, ledger):
        _fund(ledger, credits=5, event="a")
        for i in range(4):
            ledger.consume_or_throw("u-1", "ai_call", f"job-{i}")
        ledger.refund_if_needed("u-1", "ai_call", "job-1")
        ledger.refund_if_needed("u-1", "ai_call", "job-1")
        ledger.consume_or_throw("u-1", "ai_call", "job-0")
        _fund(ledger, credits=3, event="b")

        assert ledger.get_balance("u-1") == 5 - 4 + 1 + 3
        assert ledger.get_balance("u-1") == ledger.ledger_sum("u-1")

    def test_users_are_isolated(self, ledger):
        _fund(ledger, "u-1", credits=5, event="a")
        _fund(ledger, "u-2", credits=1, event="b")
        ledger.consume_or_throw("u-2", "ai_call", "job-x")
        assert ledger.get_balance("u-1") == 5
        assert ledger.get_balance("u-2") == 0

    def test_recent_entries_newest_first(self, ledger, clock):
        with patch("caseflow.billing.ledger.utcnow", clock):
            _fund(ledger, credits=2)
            clock.advance(seconds=1)
            ledger.consume_or_throw("u-1", "ai_call", "job-a")
        entries = ledger.recent_entries("u-1")
        assert [e.reason for e in entries] == [CreditReason.CONSUME, CreditReason.PACK_PURCHASE]
        assert entries[0].to_dict()["reason"] == "consume"
