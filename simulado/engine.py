"""
Study engine: wires filter building, option resolution, counting, question set
resolution, the answer session, bookmarks and the daily quota together.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from simulado.answers import AnswerWriter
from simulado.bookmarks import BookmarkManager, ToggleResult
from simulado.counter import MatchCounter
from simulado.filters import Change, FilterCriteriaBuilder
from simulado.models import FilterCriteria, Question, ReviewMode
from simulado.options import OptionResolver
from simulado.quota import QuotaGate, Upsell
from simulado.resolver import QuestionSet, QuestionSetResolver, WrongAnswerEntry, list_wrong_answers
from simulado.session import QuestionSession, SubmitResult
from simulado.stats import PerformanceReport, StatsPolicy, load_performance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartOutcome:
    question_set: QuestionSet
    upsell: Optional[Upsell] = None

    @property
    def can_answer(self) -> bool:
        return self.question_set.ok and self.upsell is None


class StudyEngine:
    """One user's path from the filter screen to answering questions."""

    def __init__(self, ctx):
        self.ctx = ctx
        settings = ctx.settings
        self.options = OptionResolver(ctx.db)
        self.counter = MatchCounter(ctx.db, delay=settings.count_debounce_seconds)
        self.resolver = QuestionSetResolver(ctx.db)
        self.quota = QuotaGate(limit=settings.daily_free_limit, tz=settings.timezone)
        self.writer = AnswerWriter(ctx.db, maxsize=settings.write_queue_size)
        self.session = QuestionSession(self.quota, self.writer)
        self.bookmarks = BookmarkManager(ctx.db)
        self.builder: Optional[FilterCriteriaBuilder] = None
        self.last_start: Optional[StartOutcome] = None
        self._option_tasks: List[asyncio.Task] = []

    # --- filter screen ---

    async def open_filters(self, review_mode: Optional[ReviewMode] = None) -> FilterCriteriaBuilder:
        """Fresh builder for the filter screen, with option lists loaded and a count scheduled."""
        self.counter.cancel()
        self.builder = FilterCriteriaBuilder(is_premium=await self.ctx.is_premium(), review_mode=review_mode)
        self.builder.subscribe(self._on_criteria_change)
        await self.options.refresh_all(self.ctx, self.builder.criteria)
        self.builder.update_source_options(self.options.options.sources)
        self.counter.schedule(self.ctx, self.builder.criteria)
        return self.builder

    def _on_criteria_change(self, change: Change, criteria: FilterCriteria) -> None:
        snapshot = criteria.snapshot()
        if change in (Change.REVIEW_MODE, Change.DISCIPLINES, Change.CLEARED):
            self._option_tasks = [t for t in self._option_tasks if not t.done()]
            self._option_tasks.append(asyncio.ensure_future(self._refresh_options(change, snapshot)))
        self.counter.schedule(self.ctx, snapshot)

    async def _refresh_options(self, change: Change, criteria: FilterCriteria) -> None:
        await self.options.on_change(self.ctx, change, criteria)
        if self.builder is not None:
            self.builder.update_source_options(self.options.options.sources)

    async def settle(self) -> Optional[int]:
        """Wait for in-flight option refreshes and the pending count."""
        if self._option_tasks:
            await asyncio.gather(*self._option_tasks)
            self._option_tasks = []
        return await self.counter.settle()

    # --- answering ---

    async def start(self, criteria: Optional[FilterCriteria] = None) -> StartOutcome:
        if criteria is None:
            criteria = self.builder.snapshot() if self.builder else FilterCriteria()
        self.counter.cancel()
        await self.quota.refresh(self.ctx)
        question_set = await self.resolver.resolve(self.ctx, criteria)
        return await self._load(question_set)

    async def retry(self) -> Optional[StartOutcome]:
        await self.quota.refresh(self.ctx)
        question_set = await self.resolver.retry(self.ctx)
        if question_set is None:
            return None
        return await self._load(question_set)

    async def _load(self, question_set: QuestionSet) -> StartOutcome:
        upsell = self.session.load(question_set.questions)
        if question_set.ok:
            self.writer.start()
            await self._load_bookmark()
        self.last_start = StartOutcome(question_set=question_set, upsell=upsell)
        return self.last_start

    async def _load_bookmark(self) -> None:
        question = self.session.current_question
        if question is not None:
            await self.bookmarks.load(self.ctx, question.id)

    @property
    def current_question(self) -> Optional[Question]:
        return self.session.current_question

    def select(self, option_id: str) -> bool:
        return self.session.select_option(option_id)

    def submit(self) -> SubmitResult:
        return self.session.submit(self.ctx)

    async def advance(self) -> bool:
        moved = self.session.advance()
        if moved:
            await self._load_bookmark()
        return moved

    async def toggle_bookmark(self) -> Optional[ToggleResult]:
        question = self.session.current_question
        if question is None:
            return None
        return await self.bookmarks.toggle(self.ctx, question.id)

    async def wrong_answers(self) -> Optional[List[WrongAnswerEntry]]:
        return await list_wrong_answers(self.ctx.db, self.ctx)

    async def performance(self, policy: StatsPolicy = StatsPolicy.ALL_ATTEMPTS) -> Optional[PerformanceReport]:
        return await load_performance(self.ctx.db, self.ctx, policy)

    def summary(self) -> Dict:
        summary = self.session.summary()
        question = self.session.current_question
        summary.update({
            "review_mode": self.resolver.last_result.review_mode.value
            if self.resolver.last_result and self.resolver.last_result.review_mode else None,
            "bookmarked": self.bookmarks.is_bookmarked(question.id) if question else False,
            "match_count": self.counter.count,
            "failed_writes": len(self.writer.failures),
        })
        return summary

    async def aclose(self) -> None:
        self.counter.cancel()
        for task in self._option_tasks:
            task.cancel()
        self._option_tasks = []
        await self.writer.aclose()
        logger.info(f"Study engine closed for {self.ctx.user_id or 'anonymous user'}")
