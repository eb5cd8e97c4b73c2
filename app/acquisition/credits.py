"""
app/acquisition/credits.py

Credit cost calculation and the atomic debit/refund ledger.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import defaultdict
from typing import Any

from app.domain.intelligence import CreditCheck
from app.scraping.config.models import BackendId, Depth
from app.scraping.logging_utils import log_event
from app.scraping.storage.base import BillingStore

logger = logging.getLogger(__name__)

BASE_COST_PER_PAGE: dict[str, float] = {
    BackendId.STATIC.value: 0.0,
    BackendId.RENDER.value: 1.0,
    BackendId.MANAGED_API.value: 3.0,
}
DEPTH_MULTIPLIERS: dict[Depth, float] = {
    Depth.QUICK: 1.0,
    Depth.STANDARD: 1.5,
    Depth.DEEP: 2.0,
}
PREMIUM_MULTIPLIER = 1.5
SCHEMA_SURCHARGE_PER_PAGE = 0.5
REFUND_PREFIX = "refund: "


def calculate_cost(
    backend_id: BackendId | str,
    page_count: int,
    *,
    depth: Depth | str = Depth.QUICK,
    premium: bool = False,
    extract_schema: bool = False,
) -> int:
    """
    Credits charged for running ``backend_id`` over ``page_count`` pages.

    Always rounded up so the platform never under-charges.
    """

    key = backend_id.value if isinstance(backend_id, BackendId) else str(backend_id)
    if key not in BASE_COST_PER_PAGE:
        raise ValueError(f"Unknown backend for cost lookup: {backend_id!r}")
    if page_count < 0:
        raise ValueError("page_count must be >= 0")

    depth_value = depth if isinstance(depth, Depth) else Depth(str(depth))
    cost = BASE_COST_PER_PAGE[key] * page_count * DEPTH_MULTIPLIERS[depth_value]
    if premium:
        cost *= PREMIUM_MULTIPLIER
    if extract_schema:
        cost += SCHEMA_SURCHARGE_PER_PAGE * page_count
    # Avoid float noise such as 4.000000000000001 charging an extra credit.
    return int(math.ceil(round(cost, 6)))


class CreditLedger:
    """
    Balance checks, debits and refunds against a billing store.

    Deductions for one user are serialized in-process by a per-user lock;
    the store's conditional update guards against other processes.
    """

    def __init__(self, billing: BillingStore) -> None:
        self._billing = billing
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def check_sufficient_credits(self, user_id: str, required: int) -> CreditCheck:
        try:
            balance = await self._billing.get_user_balance(user_id)
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "credit_balance_lookup_failed",
                user_id=user_id,
                required=required,
                error=str(exc),
            )
            return CreditCheck(sufficient=False, balance=0)
        return CreditCheck(sufficient=balance >= required, balance=balance)

    async def deduct_credits(
        self,
        user_id: str,
        amount: int,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        if amount < 0:
            log_event(logger, logging.WARNING, "credit_deduct_rejected", user_id=user_id, amount=amount)
            return False
        if amount == 0:
            return True

        async with self._locks[user_id]:
            try:
                balance = await self._billing.record_transaction(
                    user_id,
                    amount,
                    description,
                    dict(metadata or {}),
                )
            except Exception as exc:
                log_event(
                    logger,
                    logging.ERROR,
                    "credit_deduct_failed",
                    user_id=user_id,
                    amount=amount,
                    error=str(exc),
                )
                return False

        if balance is None:
            log_event(logger, logging.WARNING, "credit_deduct_insufficient", user_id=user_id, amount=amount)
            return False
        log_event(
            logger,
            logging.INFO,
            "credits_deducted",
            user_id=user_id,
            amount=amount,
            balance=balance,
            description=description,
        )
        return True

    async def refund_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        if amount < 0:
            return False
        if amount == 0:
            return True

        async with self._locks[user_id]:
            try:
                balance = await self._billing.record_transaction(
                    user_id,
                    -amount,
                    f"{REFUND_PREFIX}{reason}",
                    dict(metadata or {}),
                )
            except Exception as exc:
                log_event(
                    logger,
                    logging.ERROR,
                    "credit_refund_failed",
                    user_id=user_id,
                    amount=amount,
                    error=str(exc),
                )
                return False

        if balance is None:
            log_event(logger, logging.WARNING, "credit_refund_rejected", user_id=user_id, amount=amount)
            return False
        log_event(logger, logging.INFO, "credits_refunded", user_id=user_id, amount=amount, balance=balance)
        return True
