"""Shared fixtures: an in-memory backend with the DatabaseClient contract and a recording Supabase fake."""
import itertools
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from simulado.config import Settings
from simulado.context import AppContext
from simulado.errors import StoreError
from simulado.facets import DISCIPLINE, EXAM, SOURCE
from simulado.models import AnswerRecord, Option, Plan, Question, UserIdentity

NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


def make_question(qid: int, subject: str = "Direito Penal", source: str = "FGV", exam: str = "OAB", correct: str = "B") -> Question:
    return Question(
        id=qid,
        exam=exam,
        subject=subject,
        text=f"Enunciado {qid}",
        options=tuple(Option(id=o, text=f"Alternativa {o}") for o in "ABCD"),
        correct_option_id=correct,
        source=source,
        label=f"Questão {qid}",
    )


def sample_bank() -> List[Question]:
    return [
        make_question(1, "Direito Penal", "FGV", "OAB"),
        make_question(2, "Direito Penal", "CESPE", "OAB"),
        make_question(3, "Direito Civil", "FGV", "OAB"),
        make_question(4, "Direito Civil", "VUNESP", "TJ-SP"),
        make_question(5, "Português", "CESPE", "TJ-SP"),
        make_question(6, "Português", "VUNESP", "PC-SP"),
    ]


class _Subscription:
    def __init__(self):
        self.active = True

    def unsubscribe(self):
        self.active = False


class FakeBackend:
    """
    In-memory stand-in for DatabaseClient.

    Put a method name in `fail` to make it raise StoreError.
    """

    def __init__(self, questions: Optional[List[Question]] = None):
        self.questions: Dict[int, Question] = {q.id: q for q in (questions if questions is not None else sample_bank())}
        self.user: Optional[UserIdentity] = None
        self.plans: Dict[str, Plan] = {}
        self.profiles: Dict[str, Dict] = {}
        self.answers: List[Dict] = []
        self.bookmarks: List[Dict] = []
        self.ranking: List[Dict] = []
        self.fail = set()
        self.calls: List[tuple] = []
        self.auth_callbacks = []
        self._seq = itertools.count(1)

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise StoreError(name, RuntimeError("backend unavailable"))

    def called(self, name) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    # identity
    async def get_current_user(self):
        return self.user

    def on_auth_state_change(self, callback):
        self.auth_callbacks.append(callback)
        return _Subscription()

    async def sign_out(self):
        self._call("sign_out")
        self.user = None

    # questions
    @staticmethod
    def _facet(q: Question, facet: str) -> str:
        return {DISCIPLINE: q.subject, SOURCE: q.source, EXAM: q.exam}[facet]

    async def query_distinct_facet_values(self, facet, scope=None):
        self._call("query_distinct_facet_values", facet, scope)
        if scope is not None and scope.is_empty:
            return []
        values = set()
        for q in self.questions.values():
            if scope is not None and scope.disciplines and q.subject not in scope.disciplines:
                continue
            if scope is not None and scope.question_ids is not None and q.id not in scope.question_ids:
                continue
            value = self._facet(q, facet)
            if value:
                values.add(value)
        return sorted(values)

    async def query_by_ids(self, ids):
        self._call("query_by_ids", list(ids))
        seen, out = set(), []
        for i in ids:
            if i in self.questions and i not in seen:
                seen.add(i)
                out.append(self.questions[i])
        return out

    def _matches(self, q: Question, filters) -> bool:
        if filters.disciplines and q.subject not in filters.disciplines:
            return False
        if filters.sources and q.source not in filters.sources:
            return False
        if filters.exam and q.exam != filters.exam:
            return False
        if filters.search_text and filters.search_text.lower() not in q.text.lower():
            return False
        return True

    async def query_random(self, filters, limit, exclude_ids=None):
        self._call("query_random", filters, limit, exclude_ids)
        excluded = set(exclude_ids or ())
        return [q for q in self.questions.values() if self._matches(q, filters) and q.id not in excluded][:limit]

    async def query_count(self, filters, user_id=None, only_wrong=False, only_not_answered=False):
        self._call("query_count", filters, user_id, only_wrong, only_not_answered)
        return sum(1 for q in self.questions.values() if self._matches(q, filters))

    async def upsert_questions_bulk(self, rows, chunk_size=200):
        self._call("upsert_questions_bulk", rows)
        return len(rows)

    # answer log
    def add_answer(self, user_id, question_id, is_correct, subject="", created_at=None):
        self.answers.append({
            "id": next(self._seq),
            "user_id": user_id,
            "question_id": question_id,
            "is_correct": is_correct,
            "subject": subject,
            "created_at": created_at or NOW,
        })

    async def append_answer_event(self, event):
        self._call("append_answer_event", event)
        self.add_answer(event.user_id, event.question_id, event.is_correct, event.subject, event.timestamp)

    async def count_today_answers(self, user_id, since):
        self._call("count_today_answers", user_id, since)
        return sum(1 for a in self.answers if a["user_id"] == user_id and a["created_at"] >= since)

    def _user_answers(self, user_id, newest_first=True):
        rows = [a for a in self.answers if a["user_id"] == user_id]
        return sorted(rows, key=lambda a: (a["created_at"], a["id"]), reverse=newest_first)

    async def list_wrong_question_ids(self, user_id, limit=50):
        self._call("list_wrong_question_ids", user_id, limit)
        rows = [a for a in self._user_answers(user_id) if not a["is_correct"]][:limit]
        return list(dict.fromkeys(a["question_id"] for a in rows))

    async def list_answered_question_ids(self, user_id, limit=1000):
        self._call("list_answered_question_ids", user_id, limit)
        return list(dict.fromkeys(a["question_id"] for a in self._user_answers(user_id)[:limit]))

    async def list_answers(self, user_id, only_wrong=False, newest_first=False):
        self._call("list_answers", user_id, only_wrong, newest_first)
        rows = self._user_answers(user_id, newest_first=newest_first)
        if only_wrong:
            rows = [a for a in rows if not a["is_correct"]]
        return [AnswerRecord(a["question_id"], a["is_correct"], a["subject"], a["created_at"], a["id"]) for a in rows]

    # bookmarks
    def add_bookmark(self, user_id, question_id):
        self.bookmarks.append({"user_id": user_id, "question_id": question_id, "seq": next(self._seq)})

    async def bookmark_exists(self, user_id, question_id):
        self._call("bookmark_exists", user_id, question_id)
        return any(b["user_id"] == user_id and b["question_id"] == question_id for b in self.bookmarks)

    async def create_bookmark(self, user_id, question_id):
        self._call("create_bookmark", user_id, question_id)
        if any(b["user_id"] == user_id and b["question_id"] == question_id for b in self.bookmarks):
            raise StoreError("adding bookmark", RuntimeError("duplicate key value violates unique constraint"))
        self.add_bookmark(user_id, question_id)

    async def delete_bookmark(self, user_id, question_id):
        self._call("delete_bookmark", user_id, question_id)
        self.bookmarks = [b for b in self.bookmarks if not (b["user_id"] == user_id and b["question_id"] == question_id)]

    async def list_bookmarks(self, user_id):
        self._call("list_bookmarks", user_id)
        rows = sorted((b for b in self.bookmarks if b["user_id"] == user_id), key=lambda b: b["seq"], reverse=True)
        return [b["question_id"] for b in rows]

    # subscription
    async def get_plan(self, user_id):
        self._call("get_plan", user_id)
        return self.plans.get(user_id, Plan.FREE)

    async def get_profile(self, user_id):
        self._call("get_profile", user_id)
        return self.profiles.get(user_id)

    async def create_checkout(self, plan, return_url):
        self._call("create_checkout", plan, return_url)
        return f"https://pay.example/checkout?plan={plan.value}"

    async def get_ranking(self):
        self._call("get_ranking")
        return list(self.ranking)


ALICE = UserIdentity(id="user-alice", email="alice@example.com", metadata={"full_name": "Alice"})


@pytest.fixture
def settings():
    return Settings(supabase_url="https://test.supabase.co", supabase_key="test-key", count_debounce_seconds=0.01)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def make_ctx(backend, settings):
    async def _make(user: Optional[UserIdentity] = ALICE, plan: Plan = Plan.FREE) -> AppContext:
        backend.user = user
        if user is not None:
            backend.plans[user.id] = plan
        return await AppContext(backend, settings).open()

    return _make


@pytest.fixture
async def free_ctx(make_ctx):
    return await make_ctx(ALICE, Plan.FREE)


@pytest.fixture
async def premium_ctx(make_ctx):
    return await make_ctx(ALICE, Plan.MONTHLY)


@pytest.fixture
async def anon_ctx(make_ctx):
    return await make_ctx(None)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


# --- recording fake of the supabase query builder ---

class FakeResponse:
    def __init__(self, data=None, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, client, target, kind="table"):
        self.client = client
        self.target = target
        self.kind = kind
        self.ops: List[tuple] = []

    def _op(self, name, *args, **kwargs):
        self.ops.append((name, args, kwargs))
        return self

    def select(self, *args, **kwargs):
        return self._op("select", *args, **kwargs)

    def eq(self, *args):
        return self._op("eq", *args)

    def in_(self, *args):
        return self._op("in_", *args)

    def gte(self, *args):
        return self._op("gte", *args)

    def order(self, *args, **kwargs):
        return self._op("order", *args, **kwargs)

    def limit(self, *args):
        return self._op("limit", *args)

    def range(self, *args):
        return self._op("range", *args)

    def insert(self, *args, **kwargs):
        return self._op("insert", *args, **kwargs)

    def upsert(self, *args, **kwargs):
        return self._op("upsert", *args, **kwargs)

    def delete(self, *args):
        return self._op("delete", *args)

    def get(self, name):
        """Args of the first op called `name`, or None."""
        for op, args, kwargs in self.ops:
            if op == name:
                return args
        return None

    async def execute(self):
        self.client.executed.append(self)
        if self.client.error is not None:
            raise self.client.error
        result = self.client.responder(self)
        if isinstance(result, FakeResponse):
            return result
        return FakeResponse(result)


class FakeFunctions:
    def __init__(self, client):
        self.client = client
        self.invocations = []

    async def invoke(self, name, invoke_options=None):
        self.invocations.append((name, invoke_options))
        return self.client.function_result


class FakeSupabase:
    """Records every query built against it; `responder(query)` supplies the data."""

    def __init__(self, responder=None):
        self.responder = responder or (lambda q: [])
        self.executed: List[FakeQuery] = []
        self.error: Optional[Exception] = None
        self.functions = FakeFunctions(self)
        self.function_result = None

    def table(self, name):
        return FakeQuery(self, name, "table")

    def rpc(self, name, params=None):
        q = FakeQuery(self, name, "rpc")
        q.params = params
        return q


@pytest.fixture
def fake_supabase():
    return FakeSupabase()
