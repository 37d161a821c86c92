"""
Supabase access for Simulado.
Implements the identity, question store, answer log, bookmark store and
subscription contracts on top of the async Supabase client.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from supabase import AsyncClient, acreate_client

from simulado.config import Settings
from simulado.errors import StoreError
from simulado.facets import (
    DISCIPLINE,
    ID_COLUMN,
    canonical_column,
    distinct_sorted,
    row_to_answer,
    rows_to_questions,
)
from simulado.models import (
    AnswerEvent,
    AnswerRecord,
    FacetScope,
    Plan,
    Question,
    QueryFilters,
    UserIdentity,
)

logger = logging.getLogger(__name__)

ANSWERS_TABLE = "user_answers"
BOOKMARKS_TABLE = "user_bookmarks"
PROFILES_TABLE = "user_profiles"

RANDOM_QUESTIONS_RPC = "get_random_questions"
COUNT_QUESTIONS_RPC = "get_questions_count"
RANKING_RPC = "get_ranking"
CHECKOUT_FUNCTION = "create-checkout"

PAGE_SIZE = 1000
ID_CHUNK_SIZE = 200


def _distinct_in_order(values: Iterable) -> List:
    seen = set()
    out = []
    for v in values:
        if v is None or v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def random_questions_params(filters: QueryFilters, limit: int, exclude_ids: Optional[Sequence[int]] = None) -> Dict:
    """Parameters for the get_random_questions RPC. The RPC takes excluded ids as a comma-separated string."""
    return {
        "p_discipline": list(filters.disciplines) if filters.disciplines else None,
        "p_source": list(filters.sources) if filters.sources else None,
        "p_exam": filters.exam or None,
        "p_search_text": filters.search_text or None,
        "p_limit": limit,
        "p_exclude_ids": ",".join(str(i) for i in exclude_ids) if exclude_ids else None,
    }


def count_questions_params(
    filters: QueryFilters,
    user_id: Optional[str],
    only_wrong: bool,
    only_not_answered: bool,
) -> Dict:
    return {
        "p_discipline": list(filters.disciplines) if filters.disciplines else None,
        "p_source": list(filters.sources) if filters.sources else None,
        "p_exam": filters.exam or None,
        "p_search_text": filters.search_text or None,
        "p_user_id": user_id or None,
        "p_only_wrong": only_wrong,
        "p_only_not_answered": only_not_answered,
    }


class DatabaseClient:
    """Wrapper around the async Supabase client with Simulado-specific operations."""

    def __init__(self, client: AsyncClient, questions_table: str):
        self.client = client
        self.questions_table = questions_table

    async def _execute(self, query, operation: str):
        try:
            return await query.execute()
        except Exception as e:
            logger.error(f"Error {operation}: {e}")
            raise StoreError(operation, e) from e

    # ============= Identity =============

    async def get_current_user(self) -> Optional[UserIdentity]:
        """Current authenticated user, or None for anonymous use."""
        try:
            response = await self.client.auth.get_user()
        except Exception as e:
            logger.debug("No authenticated user: %s", e)
            return None
        user = getattr(response, "user", None) if response else None
        if user is None:
            return None
        return UserIdentity(id=str(user.id), email=user.email, metadata=dict(user.user_metadata or {}))

    def on_auth_state_change(self, callback: Callable):
        """Register callback(event, session); returns a subscription with unsubscribe()."""
        return self.client.auth.on_auth_state_change(callback)

    async def sign_out(self) -> None:
        try:
            await self.client.auth.sign_out()
        except Exception as e:
            logger.error(f"Error signing out: {e}")
            raise StoreError("signing out", e) from e

    # ============= Questions =============

    async def query_distinct_facet_values(self, facet: str, scope: Optional[FacetScope] = None) -> List[str]:
        """
        Distinct, sorted values of one facet among questions matching the scope.

        Pages through the table so the server row cap never truncates the list.
        A scope with an empty id set yields no values without touching the backend.
        """
        scope = scope or FacetScope()
        if scope.is_empty:
            return []
        column = canonical_column(facet)
        rows: List[Dict] = []
        offset = 0
        while True:
            query = self.client.table(self.questions_table).select(column)
            if scope.disciplines:
                query = query.in_(canonical_column(DISCIPLINE), list(scope.disciplines))
            if scope.question_ids is not None:
                query = query.in_(ID_COLUMN, list(scope.question_ids))
            r = await self._execute(query.range(offset, offset + PAGE_SIZE - 1), f"fetching {facet} options")
            data = r.data or []
            rows.extend(data)
            if len(data) < PAGE_SIZE:
                break
            offset += PAGE_SIZE
        return distinct_sorted(rows, facet)

    async def query_by_ids(self, ids: Sequence[int]) -> List[Question]:
        """Questions for the given ids, in the order the ids were given. Unknown ids are dropped."""
        ids = _distinct_in_order(ids)
        if not ids:
            return []
        rows: List[Dict] = []
        for i in range(0, len(ids), ID_CHUNK_SIZE):
            chunk = ids[i : i + ID_CHUNK_SIZE]
            r = await self._execute(
                self.client.table(self.questions_table).select("*").in_(ID_COLUMN, chunk),
                "fetching questions by id",
            )
            rows.extend(r.data or [])
        by_id = {q.id: q for q in rows_to_questions(rows)}
        return [by_id[i] for i in ids if i in by_id]

    async def query_random(
        self,
        filters: QueryFilters,
        limit: int,
        exclude_ids: Optional[Sequence[int]] = None,
    ) -> List[Question]:
        params = random_questions_params(filters, limit, exclude_ids)
        logger.debug("get_random_questions params: %s", params)
        r = await self._execute(self.client.rpc(RANDOM_QUESTIONS_RPC, params), "fetching random questions")
        return rows_to_questions(r.data or [])

    async def query_count(
        self,
        filters: QueryFilters,
        user_id: Optional[str] = None,
        only_wrong: bool = False,
        only_not_answered: bool = False,
    ) -> int:
        params = count_questions_params(filters, user_id, only_wrong, only_not_answered)
        r = await self._execute(self.client.rpc(COUNT_QUESTIONS_RPC, params), "counting questions")
        return int(r.data or 0)

    async def upsert_questions_bulk(self, rows: List[Dict], chunk_size: int = 200) -> int:
        """Bulk upsert into the question bank. Dedupes by ID so no chunk has duplicates."""
        n_before = len(rows)
        by_id = {r[ID_COLUMN]: r for r in rows}
        rows = list(by_id.values())
        if len(rows) < n_before:
            logger.info("Deduped questions by id: %d -> %d", n_before, len(rows))
        n_chunks = (len(rows) + chunk_size - 1) // chunk_size
        for i in range(0, len(rows), chunk_size):
            chunk = rows[i : i + chunk_size]
            logger.info("Upserting chunk %d/%d (%d rows)", i // chunk_size + 1, n_chunks, len(chunk))
            await self._execute(
                self.client.table(self.questions_table).upsert(chunk, on_conflict=ID_COLUMN),
                "upserting questions",
            )
        return len(rows)

    # ============= Answer log =============

    async def append_answer_event(self, event: AnswerEvent) -> None:
        await self._execute(self.client.table(ANSWERS_TABLE).insert(event.to_row()), "saving answer")

    async def count_today_answers(self, user_id: str, since: datetime) -> int:
        """Answers recorded by the user at or after `since` (start of the local day)."""
        r = await self._execute(
            self.client.table(ANSWERS_TABLE)
            .select("id", count="exact")
            .eq("user_id", user_id)
            .gte("created_at", since.isoformat())
            .limit(0),
            "counting daily answers",
        )
        return getattr(r, "count", None) or 0

    async def list_wrong_question_ids(self, user_id: str, limit: int = 50) -> List[int]:
        """Distinct ids among the `limit` most recent incorrect answers, newest first."""
        r = await self._execute(
            self.client.table(ANSWERS_TABLE)
            .select("question_id")
            .eq("user_id", user_id)
            .eq("is_correct", False)
            .order("created_at", desc=True)
            .limit(limit),
            "fetching wrong answers",
        )
        return _distinct_in_order(row.get("question_id") for row in (r.data or []))

    async def list_answered_question_ids(self, user_id: str, limit: int = 1000) -> List[int]:
        r = await self._execute(
            self.client.table(ANSWERS_TABLE).select("question_id").eq("user_id", user_id).limit(limit),
            "fetching answered questions",
        )
        return _distinct_in_order(row.get("question_id") for row in (r.data or []))

    async def list_answers(self, user_id: str, only_wrong: bool = False, newest_first: bool = False) -> List[AnswerRecord]:
        query = self.client.table(ANSWERS_TABLE).select("*").eq("user_id", user_id)
        if only_wrong:
            query = query.eq("is_correct", False)
        r = await self._execute(query.order("created_at", desc=newest_first), "fetching answer history")
        return [row_to_answer(row) for row in (r.data or [])]

    # ============= Bookmarks =============

    async def bookmark_exists(self, user_id: str, question_id: int) -> bool:
        r = await self._execute(
            self.client.table(BOOKMARKS_TABLE)
            .select("id")
            .eq("user_id", user_id)
            .eq("question_id", question_id)
            .limit(1),
            "checking bookmark",
        )
        return bool(r.data)

    async def create_bookmark(self, user_id: str, question_id: int) -> None:
        await self._execute(
            self.client.table(BOOKMARKS_TABLE).insert({"user_id": user_id, "question_id": question_id}),
            "adding bookmark",
        )

    async def delete_bookmark(self, user_id: str, question_id: int) -> None:
        await self._execute(
            self.client.table(BOOKMARKS_TABLE).delete().eq("user_id", user_id).eq("question_id", question_id),
            "removing bookmark",
        )

    async def list_bookmarks(self, user_id: str) -> List[int]:
        """Bookmarked question ids, most recently bookmarked first."""
        r = await self._execute(
            self.client.table(BOOKMARKS_TABLE)
            .select("question_id")
            .eq("user_id", user_id)
            .order("created_at", desc=True),
            "fetching bookmarks",
        )
        return _distinct_in_order(row.get("question_id") for row in (r.data or []))

    # ============= Subscription =============

    async def get_plan(self, user_id: str) -> Plan:
        r = await self._execute(
            self.client.table(PROFILES_TABLE).select("subscription_plan").eq("id", user_id).limit(1),
            "fetching subscription plan",
        )
        if not r.data:
            return Plan.FREE
        return Plan.from_value(r.data[0].get("subscription_plan"))

    async def get_profile(self, user_id: str) -> Optional[Dict]:
        r = await self._execute(
            self.client.table(PROFILES_TABLE).select("id, display_name, is_public").eq("id", user_id).limit(1),
            "fetching profile",
        )
        return r.data[0] if r.data else None

    async def create_checkout(self, plan: Plan, return_url: str) -> Optional[str]:
        """Start a payment with the create-checkout edge function; returns the checkout URL."""
        try:
            data = await self.client.functions.invoke(
                CHECKOUT_FUNCTION,
                invoke_options={
                    "body": {"plan_type": plan.value, "return_url": return_url},
                    "responseType": "json",
                },
            )
        except Exception as e:
            logger.error(f"Error creating checkout: {e}")
            raise StoreError("creating checkout", e) from e
        if not isinstance(data, dict):
            return None
        return data.get("checkout_url")

    async def get_ranking(self) -> List[Dict]:
        r = await self._execute(self.client.rpc(RANKING_RPC, {}), "fetching ranking")
        return r.data or []


async def create_database(settings: Settings) -> DatabaseClient:
    """Connect to Supabase using the configured URL and key."""
    client = await acreate_client(settings.supabase_url, settings.supabase_key)
    return DatabaseClient(client, settings.questions_table)
