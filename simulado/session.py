"""
Per-question answer state machine for a resolved question set.
Tracks the cursor, enforces the daily quota and hands answer events to the writer.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from simulado.answers import AnswerWriter
from simulado.models import OPTION_IDS, AnswerEvent, Question
from simulado.quota import QuotaGate, Upsell

logger = logging.getLogger(__name__)


class AnswerState(str, Enum):
    UNANSWERED = "unanswered"
    SELECTED = "selected"
    REVEALED = "revealed"


@dataclass
class SessionCursor:
    question_ids: List[int] = field(default_factory=list)
    current_index: int = 0
    selected_option: Optional[str] = None
    revealed: bool = False


@dataclass(frozen=True)
class SubmitResult:
    revealed: bool
    is_correct: Optional[bool] = None
    correct_option_id: Optional[str] = None
    upsell: Optional[Upsell] = None
    event: Optional[AnswerEvent] = None


class QuestionSession:
    """
    UNANSWERED -> SELECTED -> REVEALED, one question at a time.

    Feedback on submit is computed locally and is final for the session; the
    durable answer write is fire-and-forget through the AnswerWriter.
    """

    def __init__(self, quota: QuotaGate, writer: AnswerWriter, clock: Optional[Callable[[], datetime]] = None):
        self.quota = quota
        self.writer = writer
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.questions: List[Question] = []
        self.cursor = SessionCursor()
        self.results: Dict[int, bool] = {}
        self.blocked: Optional[Upsell] = None

    def load(self, questions: Sequence[Question]) -> Optional[Upsell]:
        """Start a new pass over `questions`. Returns the upsell if the quota already blocks answering."""
        self.questions = list(questions)
        self.cursor = SessionCursor(question_ids=[q.id for q in self.questions])
        self.results = {}
        self.blocked = self.quota.check()
        if self.blocked:
            logger.info("Daily limit reached before the session started")
        return self.blocked

    @property
    def current_question(self) -> Optional[Question]:
        if self.cursor.current_index >= len(self.questions):
            return None
        return self.questions[self.cursor.current_index]

    @property
    def state(self) -> AnswerState:
        if self.cursor.revealed:
            return AnswerState.REVEALED
        if self.cursor.selected_option is not None:
            return AnswerState.SELECTED
        return AnswerState.UNANSWERED

    @property
    def is_last(self) -> bool:
        return self.cursor.current_index >= len(self.questions) - 1

    @property
    def is_finished(self) -> bool:
        return self.is_last and self.state is AnswerState.REVEALED

    def select_option(self, option_id: str) -> bool:
        if self.current_question is None or self.cursor.revealed:
            return False
        if option_id not in OPTION_IDS:
            raise ValueError(f"Unknown option {option_id!r}")
        self.cursor.selected_option = option_id
        return True

    def submit(self, ctx) -> SubmitResult:
        question = self.current_question
        if question is None or self.state is AnswerState.UNANSWERED:
            return SubmitResult(revealed=False)
        if self.state is AnswerState.REVEALED:
            return SubmitResult(
                revealed=True,
                is_correct=self.results.get(self.cursor.current_index),
                correct_option_id=question.correct_option_id,
            )

        # re-checked here: the count may have moved since load (other tabs, devices)
        upsell = self.quota.check()
        if upsell:
            self.blocked = upsell
            return SubmitResult(revealed=False, upsell=upsell)

        is_correct = question.is_correct(self.cursor.selected_option)
        self.cursor.revealed = True
        self.results[self.cursor.current_index] = is_correct
        self.quota.record_answer()

        event = None
        if ctx.user is not None:
            event = AnswerEvent(
                user_id=ctx.user.id,
                question_id=question.id,
                is_correct=is_correct,
                subject=question.subject,
                timestamp=self._clock(),
            )
            self.writer.submit(event)
        return SubmitResult(
            revealed=True,
            is_correct=is_correct,
            correct_option_id=question.correct_option_id,
            event=event,
        )

    def advance(self) -> bool:
        if self.state is not AnswerState.REVEALED or self.is_last:
            return False
        self.cursor.current_index += 1
        self.cursor.selected_option = None
        self.cursor.revealed = False
        return True

    def summary(self) -> Dict:
        correct = sum(1 for ok in self.results.values() if ok)
        return {
            "current_question": self.cursor.current_index + 1 if self.questions else 0,
            "total_questions": len(self.questions),
            "questions_answered": len(self.results),
            "correct_count": correct,
            "accuracy_percent": (correct / len(self.results) * 100) if self.results else 0,
            "daily_remaining": self.quota.remaining,
            "blocked": self.blocked is not None,
        }
