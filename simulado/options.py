"""Option resolver: which discipline, source and exam values can be offered."""
import asyncio
import logging
from dataclasses import replace
from typing import Optional, Tuple

from simulado.errors import StoreError
from simulado.facets import DISCIPLINE, EXAM, SOURCE
from simulado.filters import Change
from simulado.models import FacetScope, FilterCriteria, OptionLists, ReviewMode

logger = logging.getLogger(__name__)


class OptionResolver:
    """
    Computes facet option lists for the filter screen.

    Discipline and exam options depend only on the review mode; source options
    also depend on the selected disciplines. In bookmark review every list is
    scoped to the bookmarked questions, and an empty bookmark set means empty
    lists. On a failed read the previous lists are kept.

    Refreshes may overlap. Each one takes a generation number when it starts and
    only publishes if no newer refresh of the same lists has started since.
    """

    def __init__(self, db):
        self.db = db
        self.options = OptionLists()
        self.bookmark_ids: Optional[Tuple[int, ...]] = None
        self.last_error: Optional[StoreError] = None
        self._all_generation = 0
        self._sources_generation = 0

    @property
    def bookmark_count(self) -> Optional[int]:
        return None if self.bookmark_ids is None else len(self.bookmark_ids)

    async def _load_bookmark_ids(self, ctx) -> Tuple[int, ...]:
        if ctx.user is None:
            return ()
        return tuple(await self.db.list_bookmarks(ctx.user.id))

    def _scope(self, review_mode: Optional[ReviewMode], disciplines=None, bookmark_ids=None) -> FacetScope:
        ids = None
        if review_mode is ReviewMode.BOOKMARKS:
            ids = bookmark_ids if bookmark_ids is not None else (self.bookmark_ids or ())
        return FacetScope(disciplines=tuple(disciplines) if disciplines else None, question_ids=ids)

    async def refresh_all(self, ctx, criteria: FilterCriteria) -> OptionLists:
        """Recompute all three lists; run when the filter screen opens or the review mode changes."""
        self._all_generation += 1
        self._sources_generation += 1
        all_generation, sources_generation = self._all_generation, self._sources_generation
        review_mode = criteria.review_mode
        try:
            bookmark_ids = await self._load_bookmark_ids(ctx) if review_mode is ReviewMode.BOOKMARKS else None
            base = self._scope(review_mode, bookmark_ids=bookmark_ids)
            disciplines, exams, sources = await asyncio.gather(
                self.db.query_distinct_facet_values(DISCIPLINE, base),
                self.db.query_distinct_facet_values(EXAM, base),
                self.db.query_distinct_facet_values(
                    SOURCE, self._scope(review_mode, criteria.disciplines, bookmark_ids=bookmark_ids)
                ),
            )
        except StoreError as e:
            logger.error(f"Error fetching filter options: {e}")
            if all_generation == self._all_generation:
                self.last_error = e
            return self.options
        if all_generation != self._all_generation:
            logger.debug("Discarding superseded option lists")
            return self.options
        self.last_error = None
        self.bookmark_ids = bookmark_ids
        if sources_generation != self._sources_generation:
            sources = self.options.sources
        self.options = OptionLists(disciplines=tuple(disciplines), sources=tuple(sources), exams=tuple(exams))
        return self.options

    async def refresh_sources(self, ctx, criteria: FilterCriteria) -> Tuple[str, ...]:
        """Recompute source options for the currently selected disciplines."""
        if criteria.review_mode is ReviewMode.BOOKMARKS and self.bookmark_ids is None:
            await self.refresh_all(ctx, criteria)
            return self.options.sources
        self._sources_generation += 1
        generation = self._sources_generation
        try:
            sources = await self.db.query_distinct_facet_values(
                SOURCE, self._scope(criteria.review_mode, criteria.disciplines)
            )
        except StoreError as e:
            logger.error(f"Error fetching sources: {e}")
            if generation == self._sources_generation:
                self.last_error = e
            return self.options.sources
        if generation != self._sources_generation:
            logger.debug("Discarding superseded source options")
            return self.options.sources
        self.last_error = None
        self.options = replace(self.options, sources=tuple(sources))
        return self.options.sources

    async def on_change(self, ctx, change: Change, criteria: FilterCriteria) -> OptionLists:
        if change is Change.REVIEW_MODE:
            await self.refresh_all(ctx, criteria)
        elif change in (Change.DISCIPLINES, Change.CLEARED):
            await self.refresh_sources(ctx, criteria)
        return self.options
