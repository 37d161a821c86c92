"""Filter criteria builder: the only writer of FilterCriteria."""
import logging
from enum import Enum
from typing import Callable, Iterable, List, Optional

from simulado.errors import InvalidLimitError
from simulado.models import ALLOWED_LIMITS, FilterCriteria, ReviewMode

logger = logging.getLogger(__name__)


class Change(str, Enum):
    DISCIPLINES = "disciplines"
    SOURCES = "sources"
    EXAM = "exam"
    SEARCH_TEXT = "search_text"
    LIMIT = "limit"
    ONLY_NOT_ANSWERED = "only_not_answered"
    ONLY_WRONG = "only_wrong"
    REVIEW_MODE = "review_mode"
    CLEARED = "cleared"


# Listener signature: listener(change, criteria)
Listener = Callable[[Change, FilterCriteria], None]


class FilterCriteriaBuilder:
    """
    Collects facet selections into a FilterCriteria.

    Premium-only toggles are refused for free users: the criteria stay as they
    are and an upsell is signalled instead. Selected sources are sticky across
    discipline changes; a source no longer offered stays selected but cannot be
    added again.
    """

    def __init__(self, is_premium: bool = False, review_mode: Optional[ReviewMode] = None):
        self.criteria = FilterCriteria(review_mode=review_mode)
        self.is_premium = is_premium
        self.source_options: Optional[frozenset] = None
        self.upsell_reason: Optional[str] = None
        self._listeners: List[Listener] = []
        self._upsell_listeners: List[Callable[[str], None]] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def on_upsell(self, listener: Callable[[str], None]) -> None:
        self._upsell_listeners.append(listener)

    def _changed(self, change: Change) -> None:
        for listener in self._listeners:
            listener(change, self.criteria)

    def _upsell(self, reason: str) -> None:
        logger.info("Premium filter %s refused for free plan", reason)
        self.upsell_reason = reason
        for listener in self._upsell_listeners:
            listener(reason)

    def dismiss_upsell(self) -> None:
        self.upsell_reason = None

    def snapshot(self) -> FilterCriteria:
        return self.criteria.snapshot()

    # --- facets ---

    def add_discipline(self, discipline: str) -> bool:
        if not discipline or discipline in self.criteria.disciplines:
            return False
        self.criteria.disciplines.append(discipline)
        self._changed(Change.DISCIPLINES)
        return True

    def remove_discipline(self, discipline: str) -> bool:
        if discipline not in self.criteria.disciplines:
            return False
        self.criteria.disciplines.remove(discipline)
        self._changed(Change.DISCIPLINES)
        return True

    def update_source_options(self, options: Iterable[str]) -> None:
        """Called by the option resolver after each recomputation."""
        self.source_options = frozenset(options)

    def is_source_selectable(self, source: str) -> bool:
        return self.source_options is None or source in self.source_options

    def add_source(self, source: str) -> bool:
        if not source or source in self.criteria.sources:
            return False
        if not self.is_source_selectable(source):
            logger.debug("Source %r is not among the current options", source)
            return False
        self.criteria.sources.append(source)
        self._changed(Change.SOURCES)
        return True

    def remove_source(self, source: str) -> bool:
        if source not in self.criteria.sources:
            return False
        self.criteria.sources.remove(source)
        self._changed(Change.SOURCES)
        return True

    def set_exam(self, exam: Optional[str]) -> None:
        exam = exam or None
        if exam == self.criteria.exam:
            return
        self.criteria.exam = exam
        self._changed(Change.EXAM)

    def set_search_text(self, text: Optional[str]) -> None:
        text = (text or "").strip() or None
        if text == self.criteria.search_text:
            return
        self.criteria.search_text = text
        self._changed(Change.SEARCH_TEXT)

    def set_limit(self, limit: int) -> None:
        if limit not in ALLOWED_LIMITS:
            raise InvalidLimitError(f"limit must be one of {ALLOWED_LIMITS}, got {limit!r}")
        if limit == self.criteria.limit:
            return
        self.criteria.limit = limit
        self._changed(Change.LIMIT)

    # --- premium toggles ---

    def set_only_not_answered(self, value: bool) -> bool:
        return self._set_premium_flag("only_not_answered", Change.ONLY_NOT_ANSWERED, value)

    def set_only_wrong(self, value: bool) -> bool:
        return self._set_premium_flag("only_wrong", Change.ONLY_WRONG, value)

    def _set_premium_flag(self, name: str, change: Change, value: bool) -> bool:
        # turning a flag off never needs premium
        if value and not self.is_premium:
            self._upsell(name)
            return False
        if getattr(self.criteria, name) == bool(value):
            return True
        setattr(self.criteria, name, bool(value))
        self._changed(change)
        return True

    # --- review mode ---

    def set_review_mode(self, mode: Optional[ReviewMode]) -> None:
        if mode == self.criteria.review_mode:
            return
        self.criteria.review_mode = mode
        self._changed(Change.REVIEW_MODE)

    def clear(self) -> None:
        """Back to defaults. The review mode is an entry point, not a filter, so it is kept."""
        self.criteria = FilterCriteria(review_mode=self.criteria.review_mode)
        self.upsell_reason = None
        self._changed(Change.CLEARED)
