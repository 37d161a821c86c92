"""Debounced estimate of how many questions match the current filters."""
import asyncio
import logging
from typing import Optional

from simulado.errors import StoreError
from simulado.models import FilterCriteria, QueryFilters

logger = logging.getLogger(__name__)


class MatchCounter:
    """
    Asks the backend for a match count once the criteria have been stable for
    `delay` seconds. A newer schedule() cancels the pending one, so only the
    last criteria are ever counted. A failed count leaves `count` untouched.
    """

    def __init__(self, db, delay: float = 0.5):
        self.db = db
        self.delay = delay
        self.count: Optional[int] = None
        self.last_error: Optional[StoreError] = None
        self._pending: Optional[asyncio.Task] = None

    @property
    def is_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def schedule(self, ctx, criteria: FilterCriteria) -> Optional[asyncio.Task]:
        """Restart the debounce window with these criteria. Review modes are not counted."""
        self.cancel()
        if criteria.review_mode is not None:
            return None
        self._pending = asyncio.ensure_future(self._run(criteria.snapshot(), ctx.user_id))
        return self._pending

    def cancel(self) -> None:
        if self.is_pending:
            self._pending.cancel()
        self._pending = None

    async def _run(self, criteria: FilterCriteria, user_id: Optional[str]) -> Optional[int]:
        await asyncio.sleep(self.delay)
        try:
            count = await self.db.query_count(
                QueryFilters.from_criteria(criteria),
                user_id=user_id,
                only_wrong=criteria.only_wrong,
                only_not_answered=criteria.only_not_answered,
            )
        except StoreError as e:
            logger.warning("Keeping previous match count after error: %s", e)
            self.last_error = e
            return self.count
        self.last_error = None
        self.count = count
        return count

    async def settle(self) -> Optional[int]:
        """Wait for the pending estimate, if any, and return the displayed count."""
        task = self._pending
        if task is not None:
            await asyncio.wait([task])
        return self.count
