"""Bookmark toggling with optimistic local state and compensation on failure."""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from simulado.errors import StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToggleResult:
    bookmarked: bool
    ok: bool
    error: Optional[StoreError] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class BookmarkTransition:
    """A tentative local flip and its exact inverse."""
    question_id: int
    before: bool
    after: bool

    def apply(self, state: Dict[int, bool]) -> None:
        state[self.question_id] = self.after

    def compensate(self, state: Dict[int, bool]) -> None:
        state[self.question_id] = self.before


class BookmarkManager:
    """Sole owner of the user/question bookmark relation."""

    def __init__(self, db):
        self.db = db
        self.state: Dict[int, bool] = {}

    def is_bookmarked(self, question_id: int) -> bool:
        return self.state.get(question_id, False)

    async def load(self, ctx, question_id: int) -> bool:
        """Read the durable state for one question. On error the local value is kept."""
        if ctx.user is None:
            return False
        try:
            self.state[question_id] = await self.db.bookmark_exists(ctx.user.id, question_id)
        except StoreError as e:
            logger.error("Error checking bookmark: %s", e)
        return self.is_bookmarked(question_id)

    async def toggle(self, ctx, question_id: int) -> ToggleResult:
        if ctx.user is None:
            return ToggleResult(bookmarked=False, ok=False, reason="not_authenticated")
        current = self.is_bookmarked(question_id)
        transition = BookmarkTransition(question_id, before=current, after=not current)
        transition.apply(self.state)
        try:
            await self._persist(ctx.user.id, transition)
        except StoreError as e:
            transition.compensate(self.state)
            logger.error("Error toggling bookmark for question %s, reverted: %s", question_id, e)
            return ToggleResult(bookmarked=transition.before, ok=False, error=e)
        return ToggleResult(bookmarked=transition.after, ok=True)

    async def _persist(self, user_id: str, transition: BookmarkTransition) -> None:
        if transition.after:
            # only create when absent; the table also has UNIQUE(user_id, question_id)
            if not await self.db.bookmark_exists(user_id, transition.question_id):
                await self.db.create_bookmark(user_id, transition.question_id)
        else:
            await self.db.delete_bookmark(user_id, transition.question_id)
