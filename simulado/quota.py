"""Daily answer quota for free-plan users."""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo

from simulado.errors import StoreError
from simulado.models import Plan

logger = logging.getLogger(__name__)

DAILY_FREE_LIMIT = 10


class UpsellExit(str, Enum):
    SUBSCRIBE = "subscribe"
    LEAVE = "leave"


@dataclass(frozen=True)
class Upsell:
    """Blocked-action state offered instead of an error."""
    reason: str
    exits: Tuple[UpsellExit, ...] = (UpsellExit.SUBSCRIBE, UpsellExit.LEAVE)


DAILY_LIMIT_UPSELL = Upsell(reason="daily_limit")


class QuotaGate:
    """
    Free users may answer `limit` questions per local day; premium users are
    unlimited. The count is read from the answer log on refresh() and then
    incremented locally on every submit, whether or not the write lands.
    Anonymous users are not tracked and never blocked.
    """

    def __init__(self, limit: int = DAILY_FREE_LIMIT, tz: str = "America/Sao_Paulo", clock: Optional[Callable[[], datetime]] = None):
        self.limit = limit
        self.tz = ZoneInfo(tz)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.plan = Plan.FREE
        self.tracked = False
        self.daily_count = 0
        self.day: Optional[date] = None

    def _today(self) -> date:
        return self._clock().astimezone(self.tz).date()

    def start_of_today(self) -> datetime:
        return datetime.combine(self._today(), time.min, tzinfo=self.tz)

    def _roll_day(self) -> None:
        today = self._today()
        if self.day != today:
            if self.day is not None:
                logger.info("New day, daily answer count reset")
            self.day = today
            self.daily_count = 0

    async def refresh(self, ctx) -> None:
        """Reload plan and today's answer count for the context's user."""
        self._roll_day()
        if ctx.user is None:
            self.tracked = False
            self.plan = Plan.FREE
            self.daily_count = 0
            return
        self.tracked = True
        self.plan = await ctx.plan()
        if self.plan.is_premium:
            return
        try:
            self.daily_count = await ctx.db.count_today_answers(ctx.user.id, self.start_of_today())
        except StoreError as e:
            logger.error("Error counting daily answers, keeping %d: %s", self.daily_count, e)

    @property
    def remaining(self) -> Optional[int]:
        if not self.tracked or self.plan.is_premium:
            return None
        self._roll_day()
        return max(0, self.limit - self.daily_count)

    def can_answer(self) -> bool:
        if not self.tracked or self.plan.is_premium:
            return True
        self._roll_day()
        return self.daily_count < self.limit

    def check(self) -> Optional[Upsell]:
        """None when answering is allowed, otherwise the upsell to show."""
        return None if self.can_answer() else DAILY_LIMIT_UPSELL

    def record_answer(self) -> None:
        if not self.tracked or self.plan.is_premium:
            return
        self._roll_day()
        self.daily_count += 1
