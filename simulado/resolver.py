"""Question set resolver: turns filter criteria or a review mode into questions."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from simulado.errors import StoreError
from simulado.models import AnswerRecord, FilterCriteria, Question, QueryFilters, ReviewMode

logger = logging.getLogger(__name__)

WRONG_REVIEW_CAP = 50
EXCLUDE_IDS_CAP = 1000


class ResolutionStatus(str, Enum):
    READY = "ready"
    EMPTY = "empty"
    FAILED = "failed"


class EmptyReason(str, Enum):
    NO_MATCHES = "no_matches"
    NO_BOOKMARKS = "no_bookmarks"
    NO_PENDING_ERRORS = "no_pending_errors"


EMPTY_MESSAGES = {
    EmptyReason.NO_MATCHES: "Nenhuma questão encontrada.",
    EmptyReason.NO_BOOKMARKS: "Você ainda não tem questões marcadas para revisão.",
    EmptyReason.NO_PENDING_ERRORS: "Sem erros pendentes! Você não tem questões erradas para revisar no momento.",
}


@dataclass(frozen=True)
class QuestionSet:
    status: ResolutionStatus
    questions: Tuple[Question, ...] = ()
    review_mode: Optional[ReviewMode] = None
    empty_reason: Optional[EmptyReason] = None
    error: Optional[StoreError] = None

    @property
    def ok(self) -> bool:
        return self.status is ResolutionStatus.READY

    @property
    def retryable(self) -> bool:
        return self.status is ResolutionStatus.FAILED

    @property
    def message(self) -> Optional[str]:
        if self.status is ResolutionStatus.EMPTY:
            return EMPTY_MESSAGES[self.empty_reason]
        if self.status is ResolutionStatus.FAILED:
            return f"Erro: {self.error}"
        return None

    @property
    def ids(self) -> List[int]:
        return [q.id for q in self.questions]

    @classmethod
    def ready(cls, questions, review_mode=None) -> "QuestionSet":
        return cls(ResolutionStatus.READY, tuple(questions), review_mode)

    @classmethod
    def empty(cls, reason: EmptyReason, review_mode=None) -> "QuestionSet":
        return cls(ResolutionStatus.EMPTY, (), review_mode, empty_reason=reason)

    @classmethod
    def failed(cls, error: StoreError, review_mode=None) -> "QuestionSet":
        return cls(ResolutionStatus.FAILED, (), review_mode, error=error)


class QuestionSetResolver:
    """
    Resolves a concrete, ordered question list.

    Priority: wrong-answer review, then bookmark review, then the randomized
    query over the facet filters. Any failed read fails the whole attempt; no
    partial lists are returned.
    """

    def __init__(self, db):
        self.db = db
        self.last_result: Optional[QuestionSet] = None
        self._last_criteria: Optional[FilterCriteria] = None

    async def resolve(self, ctx, criteria: FilterCriteria) -> QuestionSet:
        criteria = criteria.snapshot()
        mode = criteria.effective_review_mode()
        self._last_criteria = criteria
        try:
            if mode is ReviewMode.WRONG:
                result = await self._resolve_wrong(ctx)
            elif mode is ReviewMode.BOOKMARKS:
                result = await self._resolve_bookmarks(ctx)
            else:
                result = await self._resolve_random(ctx, criteria)
        except StoreError as e:
            logger.error("Error resolving question set: %s", e)
            result = QuestionSet.failed(e, mode)
        self.last_result = result
        logger.info("Resolved question set: status=%s, %d questions", result.status.value, len(result.questions))
        return result

    async def retry(self, ctx) -> Optional[QuestionSet]:
        if self._last_criteria is None:
            return None
        return await self.resolve(ctx, self._last_criteria)

    async def _resolve_wrong(self, ctx) -> QuestionSet:
        if ctx.user is None:
            return QuestionSet.empty(EmptyReason.NO_PENDING_ERRORS, ReviewMode.WRONG)
        ids = await self.db.list_wrong_question_ids(ctx.user.id, limit=WRONG_REVIEW_CAP)
        if not ids:
            return QuestionSet.empty(EmptyReason.NO_PENDING_ERRORS, ReviewMode.WRONG)
        questions = await self.db.query_by_ids(ids)
        if not questions:
            return QuestionSet.empty(EmptyReason.NO_PENDING_ERRORS, ReviewMode.WRONG)
        return QuestionSet.ready(questions, ReviewMode.WRONG)

    async def _resolve_bookmarks(self, ctx) -> QuestionSet:
        if ctx.user is None:
            return QuestionSet.empty(EmptyReason.NO_BOOKMARKS, ReviewMode.BOOKMARKS)
        ids = await self.db.list_bookmarks(ctx.user.id)
        if not ids:
            return QuestionSet.empty(EmptyReason.NO_BOOKMARKS, ReviewMode.BOOKMARKS)
        questions = await self.db.query_by_ids(ids)
        if not questions:
            return QuestionSet.empty(EmptyReason.NO_BOOKMARKS, ReviewMode.BOOKMARKS)
        return QuestionSet.ready(questions, ReviewMode.BOOKMARKS)

    async def _resolve_random(self, ctx, criteria: FilterCriteria) -> QuestionSet:
        exclude_ids = None
        if criteria.only_not_answered and ctx.user is not None:
            # bounded: beyond EXCLUDE_IDS_CAP answered ids, some may come back
            exclude_ids = await self.db.list_answered_question_ids(ctx.user.id, limit=EXCLUDE_IDS_CAP) or None
        questions = await self.db.query_random(QueryFilters.from_criteria(criteria), criteria.limit, exclude_ids)
        if not questions:
            return QuestionSet.empty(EmptyReason.NO_MATCHES)
        return QuestionSet.ready(questions)


@dataclass(frozen=True)
class WrongAnswerEntry:
    answer: AnswerRecord
    question: Optional[Question]

    @property
    def subject(self) -> str:
        return self.answer.subject or (self.question.subject if self.question else "") or "Geral"


async def list_wrong_answers(db, ctx) -> Optional[List[WrongAnswerEntry]]:
    """
    Every incorrect answer, newest first, with its question when it still exists.

    Returns an empty list when there is nothing to review and None when the
    history could not be read.
    """
    if ctx.user is None:
        return []
    try:
        answers = await db.list_answers(ctx.user.id, only_wrong=True, newest_first=True)
        if not answers:
            return []
        questions = {q.id: q for q in await db.query_by_ids([a.question_id for a in answers])}
    except StoreError as e:
        logger.error("Error fetching errors: %s", e)
        return None
    return [WrongAnswerEntry(answer=a, question=questions.get(a.question_id)) for a in answers]
