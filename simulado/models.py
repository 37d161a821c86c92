"""Data classes for the study domain: questions, answers, filters and plans."""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

OPTION_IDS = ("A", "B", "C", "D")

ALLOWED_LIMITS = (10, 20, 50, 100)
DEFAULT_LIMIT = 20


class ReviewMode(str, Enum):
    BOOKMARKS = "bookmarks"
    WRONG = "wrong"


class Plan(str, Enum):
    FREE = "free"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"

    @property
    def is_premium(self) -> bool:
        return self is not Plan.FREE

    @classmethod
    def from_value(cls, value: Optional[str]) -> "Plan":
        """Unknown or missing plan values are treated as free."""
        try:
            return cls((value or "free").strip().lower())
        except ValueError:
            return cls.FREE


@dataclass(frozen=True)
class UserIdentity:
    id: str
    email: Optional[str] = None
    metadata: Dict = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        name = self.metadata.get("full_name")
        if name:
            return name
        if self.email:
            return self.email.split("@")[0]
        return "Usuario"


@dataclass(frozen=True)
class Option:
    id: str
    text: str


@dataclass(frozen=True)
class Question:
    id: int
    exam: str
    subject: str
    text: str
    options: Tuple[Option, ...]
    correct_option_id: str
    source: str = ""
    label: str = ""

    def is_correct(self, option_id: Optional[str]) -> bool:
        return option_id is not None and option_id == self.correct_option_id


@dataclass(frozen=True)
class AnswerEvent:
    user_id: str
    question_id: int
    is_correct: bool
    subject: str
    timestamp: datetime

    def to_row(self) -> Dict:
        return {
            "user_id": self.user_id,
            "question_id": self.question_id,
            "is_correct": self.is_correct,
            "subject": self.subject,
            "created_at": self.timestamp.isoformat(),
        }


@dataclass
class FilterCriteria:
    """
    User-selected facets. Mutated only through FilterCriteriaBuilder.
    `disciplines` and `sources` behave as sets but keep insertion order for display.
    """
    disciplines: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    exam: Optional[str] = None
    search_text: Optional[str] = None
    only_not_answered: bool = False
    only_wrong: bool = False
    limit: int = DEFAULT_LIMIT
    review_mode: Optional[ReviewMode] = None

    def snapshot(self) -> "FilterCriteria":
        return replace(self, disciplines=list(self.disciplines), sources=list(self.sources))

    def effective_review_mode(self) -> Optional[ReviewMode]:
        # "only wrong" from the filter screen opens the wrong-answers review
        if self.review_mode is ReviewMode.WRONG or self.only_wrong:
            return ReviewMode.WRONG
        return self.review_mode


@dataclass(frozen=True)
class QueryFilters:
    """Facet filters as sent to the question store; empty selections become None."""
    disciplines: Optional[Tuple[str, ...]] = None
    sources: Optional[Tuple[str, ...]] = None
    exam: Optional[str] = None
    search_text: Optional[str] = None

    @classmethod
    def from_criteria(cls, criteria: FilterCriteria) -> "QueryFilters":
        return cls(
            disciplines=tuple(criteria.disciplines) or None,
            sources=tuple(criteria.sources) or None,
            exam=criteria.exam or None,
            search_text=criteria.search_text or None,
        )


@dataclass(frozen=True)
class FacetScope:
    """Restricts a distinct-facet read. `question_ids=()` means "no rows" (forced-empty)."""
    disciplines: Optional[Tuple[str, ...]] = None
    question_ids: Optional[Tuple[int, ...]] = None

    @property
    def is_empty(self) -> bool:
        return self.question_ids is not None and len(self.question_ids) == 0


@dataclass(frozen=True)
class OptionLists:
    disciplines: Tuple[str, ...] = ()
    sources: Tuple[str, ...] = ()
    exams: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AnswerRecord:
    """An AnswerEvent as read back from the log."""
    question_id: int
    is_correct: bool
    subject: str
    created_at: Optional[datetime] = None
    id: Optional[int] = None
