"""Subscription plan lookup (cached per user) and the checkout contract."""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from simulado.errors import StoreError
from simulado.models import Plan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanOffer:
    plan: Plan
    title: str
    days: int
    monthly_price: Decimal
    months: int

    @property
    def total_price(self) -> Decimal:
        return self.monthly_price * self.months

    @property
    def max_installments(self) -> int:
        return self.months


PLAN_CATALOG: Dict[Plan, PlanOffer] = {
    Plan.MONTHLY: PlanOffer(Plan.MONTHLY, "Premium - Mensal (30 dias)", 30, Decimal("29.90"), 1),
    Plan.QUARTERLY: PlanOffer(Plan.QUARTERLY, "Premium - Trimestral (90 dias)", 90, Decimal("24.90"), 3),
    Plan.SEMIANNUAL: PlanOffer(Plan.SEMIANNUAL, "Premium - Semestral (180 dias)", 180, Decimal("19.90"), 6),
}


def is_premium(plan: Optional[Plan]) -> bool:
    return plan is not None and plan.is_premium


class SubscriptionStatusCache:
    """
    Resolves the user's plan tier once and serves it from memory until invalidated.

    The billing webhook flips the stored plan asynchronously, so a stale `free`
    is expected right after checkout; callers invalidate and re-read.
    """

    def __init__(self, db):
        self.db = db
        self._plans: Dict[str, Plan] = {}
        # survives invalidate(); used only when a lookup fails
        self._last_known: Dict[str, Plan] = {}

    def cached(self, user_id: str) -> Optional[Plan]:
        return self._plans.get(user_id)

    async def get_plan(self, user) -> Plan:
        """Plan for the user; anonymous users are free. Lookup failure keeps the last known plan."""
        if user is None:
            return Plan.FREE
        if user.id in self._plans:
            return self._plans[user.id]
        try:
            plan = await self.db.get_plan(user.id)
        except StoreError as e:
            logger.warning("Plan lookup failed for %s, using last known plan: %s", user.id, e)
            return self._last_known.get(user.id, Plan.FREE)
        self._plans[user.id] = plan
        self._last_known[user.id] = plan
        return plan

    async def is_premium(self, user) -> bool:
        return (await self.get_plan(user)).is_premium

    def invalidate(self, user_id: Optional[str] = None) -> None:
        if user_id is None:
            self._plans.clear()
        else:
            self._plans.pop(user_id, None)

    async def start_checkout(self, user, plan: Plan, return_url: str) -> Optional[str]:
        """
        Ask the billing function for a checkout URL.

        Returns None for anonymous users, when the billing call fails or when no
        URL came back. The plan flag
        only changes later, when the payment webhook fires, so the cached plan
        for this user is dropped.
        """
        if plan not in PLAN_CATALOG:
            raise ValueError(f"Invalid plan for checkout: {plan!r}")
        if user is None:
            return None
        try:
            url = await self.db.create_checkout(plan, return_url.rstrip("/"))
        except StoreError as e:
            logger.error("Checkout for %s (%s) failed: %s", user.id, plan.value, e)
            return None
        self.invalidate(user.id)
        if not url:
            logger.error("Checkout for %s (%s) returned no payment link", user.id, plan.value)
        return url
