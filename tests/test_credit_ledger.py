"""
tests/test_credit_ledger.py

Unit tests for cost calculation and the CreditLedger.

Coverage
--------
- Cost monotonic in page count and never below the base rate
- Multipliers, schema surcharge and rounding
- Invalid inputs
- Deduct then refund restores the balance, also around unrelated entries
- Refund against a missing account reports failure
- Overdraw protection, including concurrent debits
- Fail-closed balance checks
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from app.acquisition.credits import BASE_COST_PER_PAGE, REFUND_PREFIX, CreditLedger, calculate_cost
from app.scraping.config.models import BackendId, Depth
from tests.fakes import InMemoryBillingStore


# ---------------------------------------------------------------------------
# calculate_cost
# ---------------------------------------------------------------------------


class TestCalculateCost:
    @pytest.mark.parametrize("backend", list(BackendId))
    @pytest.mark.parametrize("depth", list(Depth))
    def test_monotonic_in_pages_and_at_least_base(self, backend: BackendId, depth: Depth) -> None:
        previous = 0
        for pages in range(0, 30):
            cost = calculate_cost(backend, pages, depth=depth)
            assert cost >= previous
            assert cost >= BASE_COST_PER_PAGE[backend.value] * pages
            previous = cost

    def test_static_pages_are_free(self) -> None:
        assert calculate_cost(BackendId.STATIC, 50, depth=Depth.DEEP) == 0

    def test_depth_multiplier_rounds_up(self) -> None:
        assert calculate_cost(BackendId.RENDER, 3, depth=Depth.STANDARD) == 5

    def test_premium_and_depth_multiply(self) -> None:
        assert calculate_cost(BackendId.MANAGED_API, 2, depth=Depth.DEEP, premium=True) == 18

    def test_schema_surcharge_applies_per_page(self) -> None:
        assert calculate_cost(BackendId.STATIC, 3, extract_schema=True) == 2
        assert calculate_cost(BackendId.RENDER, 2, extract_schema=True) == 3

    def test_accepts_string_ids(self) -> None:
        assert calculate_cost("managed_api", 1, depth="quick") == 3

    def test_zero_pages_cost_nothing(self) -> None:
        assert calculate_cost(BackendId.MANAGED_API, 0, premium=True) == 0

    def test_unknown_backend_raises(self) -> None:
        with pytest.raises(ValueError):
            calculate_cost("carrier-pigeon", 1)

    def test_negative_pages_raise(self) -> None:
        with pytest.raises(ValueError):
            calculate_cost(BackendId.RENDER, -1)


# ---------------------------------------------------------------------------
# CreditLedger
# ---------------------------------------------------------------------------


class TestCreditLedger:
    @pytest.mark.asyncio
    async def test_deduct_then_refund_restores_balance(self) -> None:
        billing = InMemoryBillingStore({"user-1": 10})
        ledger = CreditLedger(billing)

        assert await ledger.deduct_credits("user-1", 4, "render extraction", {"session_id": "s1"})
        assert billing.balances["user-1"] == 6
        assert await ledger.refund_credits("user-1", 4, "extraction failures")

        assert billing.balances["user-1"] == 10
        assert [item.amount for item in billing.transactions] == [4, -4]
        assert billing.transactions[1].reason == f"{REFUND_PREFIX}extraction failures"
        assert billing.transactions[0].metadata == {"session_id": "s1"}

    @pytest.mark.asyncio
    async def test_refund_restores_only_its_own_deduction_around_unrelated_entries(self) -> None:
        billing = InMemoryBillingStore({"user-1": 20})
        ledger = CreditLedger(billing)

        assert await ledger.deduct_credits("user-1", 5, "render extraction", {"session_id": "s1"})
        assert await ledger.deduct_credits("user-1", 3, "managed extraction", {"session_id": "s2"})
        assert await ledger.refund_credits("user-1", 2, "managed failures", {"session_id": "s2"})
        assert await ledger.refund_credits("user-1", 5, "render failures", {"session_id": "s1"})

        assert billing.balances["user-1"] == 20 - 3 + 2
        assert [item.amount for item in billing.transactions] == [5, 3, -2, -5]
        assert [item.balance for item in billing.transactions] == [15, 12, 14, 19]
        assert [item.reason.startswith(REFUND_PREFIX) for item in billing.transactions] == [
            False,
            False,
            True,
            True,
        ]
        assert [item.metadata["session_id"] for item in billing.transactions] == ["s1", "s2", "s2", "s1"]

    @pytest.mark.asyncio
    async def test_refund_without_account_reports_failure(self, caplog) -> None:
        billing = InMemoryBillingStore()
        billing.closed_accounts.add("user-1")
        ledger = CreditLedger(billing)

        with caplog.at_level(logging.INFO, logger="app.acquisition.credits"):
            refunded = await ledger.refund_credits("user-1", 4, "extraction failures")

        assert refunded is False
        assert billing.transactions == []
        assert "credit_refund_rejected" in caplog.text
        assert "credits_refunded" not in caplog.text

    @pytest.mark.asyncio
    async def test_overdraw_is_refused(self) -> None:
        billing = InMemoryBillingStore({"user-1": 3})
        ledger = CreditLedger(billing)

        assert await ledger.deduct_credits("user-1", 4, "too much") is False
        assert billing.balances["user-1"] == 3
        assert billing.transactions == []

    @pytest.mark.asyncio
    async def test_concurrent_debits_never_overdraw(self) -> None:
        billing = InMemoryBillingStore({"user-1": 5})
        ledger = CreditLedger(billing)

        outcomes = await asyncio.gather(
            *(ledger.deduct_credits("user-1", 1, f"page {index}") for index in range(10))
        )

        assert outcomes.count(True) == 5
        assert billing.balances["user-1"] == 0

    @pytest.mark.asyncio
    async def test_negative_and_zero_amounts(self) -> None:
        billing = InMemoryBillingStore({"user-1": 5})
        ledger = CreditLedger(billing)

        assert await ledger.deduct_credits("user-1", -1, "bogus") is False
        assert await ledger.deduct_credits("user-1", 0, "free") is True
        assert await ledger.refund_credits("user-1", -2, "bogus") is False
        assert billing.transactions == []

    @pytest.mark.asyncio
    async def test_balance_check(self) -> None:
        ledger = CreditLedger(InMemoryBillingStore({"user-1": 5}))

        enough = await ledger.check_sufficient_credits("user-1", 5)
        short = await ledger.check_sufficient_credits("user-1", 6)

        assert (enough.sufficient, enough.balance) == (True, 5)
        assert (short.sufficient, short.balance) == (False, 5)

    @pytest.mark.asyncio
    async def test_balance_check_fails_closed(self) -> None:
        billing = InMemoryBillingStore({"user-1": 100})
        billing.fail_lookups = True

        check = await CreditLedger(billing).check_sufficient_credits("user-1", 1)

        assert check.sufficient is False
        assert check.balance == 0

    @pytest.mark.asyncio
    async def test_store_failure_during_debit_reports_failure(self) -> None:
        billing = InMemoryBillingStore({"user-1": 100})
        billing.fail_writes = True

        assert await CreditLedger(billing).deduct_credits("user-1", 1, "render") is False
