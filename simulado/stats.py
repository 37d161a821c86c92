"""
Performance statistics over a user's answer log.
Per-subject breakdown, overall accuracy, chart series and the ranking table.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from simulado.errors import StoreError
from simulado.models import AnswerRecord

logger = logging.getLogger(__name__)

WEEKDAY_LABELS = ["Seg", "Ter", "Qua", "Qui", "Sex", "Sab", "Dom"]  # indexed by date.weekday()
DEFAULT_SUBJECT = "Geral"
HIDDEN_NAME = "*****"
ANONYMOUS_NAME = "Anônimo"
SELF_SUFFIX = " (Você)"


class StatsPolicy(str, Enum):
    """How repeated attempts at the same question are counted."""
    ALL_ATTEMPTS = "all_attempts"
    LATEST_ATTEMPT = "latest_attempt"


class TimeRange(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL = "all"


@dataclass(frozen=True)
class SubjectStats:
    subject: str
    correct: int
    total: int
    percentage: int


@dataclass(frozen=True)
class ChartPoint:
    name: str
    val: int


@dataclass(frozen=True)
class RankingRow:
    position: int
    name: str
    score: int
    is_me: bool
    is_public: bool


def percent(correct: int, total: int) -> int:
    """Rounded percentage, halves rounded up."""
    if total <= 0:
        return 0
    return int((Decimal(correct) * 100 / Decimal(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_policy(answers: Sequence[AnswerRecord], policy: StatsPolicy = StatsPolicy.ALL_ATTEMPTS) -> List[AnswerRecord]:
    if policy is StatsPolicy.ALL_ATTEMPTS:
        return list(answers)
    latest: Dict[int, AnswerRecord] = {}
    for answer in sorted(answers, key=_created_key):
        latest[answer.question_id] = answer
    return sorted(latest.values(), key=_created_key)


def _created_key(answer: AnswerRecord) -> datetime:
    return answer.created_at or datetime.min.replace(tzinfo=timezone.utc)


def subject_breakdown(answers: Sequence[AnswerRecord], policy: StatsPolicy = StatsPolicy.ALL_ATTEMPTS) -> List[SubjectStats]:
    totals: Dict[str, List[int]] = {}
    for answer in apply_policy(answers, policy):
        entry = totals.setdefault(answer.subject or DEFAULT_SUBJECT, [0, 0])
        entry[0] += 1 if answer.is_correct else 0
        entry[1] += 1
    stats = [
        SubjectStats(subject=subject, correct=correct, total=total, percentage=percent(correct, total))
        for subject, (correct, total) in totals.items()
    ]
    # stable: subjects with equal percentage keep first-seen order
    return sorted(stats, key=lambda s: s.percentage, reverse=True)


def overall(answers: Sequence[AnswerRecord], policy: StatsPolicy = StatsPolicy.ALL_ATTEMPTS) -> Dict[str, int]:
    counted = apply_policy(answers, policy)
    correct = sum(1 for a in counted if a.is_correct)
    return {"percentage": percent(correct, len(counted)), "total": len(counted)}


def _one_month_before(moment: datetime) -> datetime:
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    for day in (moment.day, 30, 29, 28):
        try:
            return moment.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    return moment - timedelta(days=30)


def chart_series(
    answers: Sequence[AnswerRecord],
    time_range: TimeRange = TimeRange.WEEKLY,
    subject: Optional[str] = None,
    now: Optional[datetime] = None,
    tz: str = "America/Sao_Paulo",
    policy: StatsPolicy = StatsPolicy.ALL_ATTEMPTS,
) -> List[ChartPoint]:
    """
    Accuracy per bucket, in order of first appearance.

    Weekly buckets are weekday abbreviations over the last 7 days; monthly and
    all-time buckets are dd/mm dates.
    """
    zone = ZoneInfo(tz)
    now = (now or datetime.now(timezone.utc)).astimezone(zone)
    if time_range is TimeRange.WEEKLY:
        since = now - timedelta(days=7)
    elif time_range is TimeRange.MONTHLY:
        since = _one_month_before(now)
    else:
        since = None

    grouped: Dict[str, List[int]] = {}
    for answer in apply_policy(answers, policy):
        if subject is not None and answer.subject != subject:
            continue
        if answer.created_at is None:
            continue
        local = answer.created_at.astimezone(zone)
        if since is not None and local < since:
            continue
        key = WEEKDAY_LABELS[local.weekday()] if time_range is TimeRange.WEEKLY else local.strftime("%d/%m")
        entry = grouped.setdefault(key, [0, 0])
        entry[0] += 1 if answer.is_correct else 0
        entry[1] += 1
    return [ChartPoint(name=name, val=percent(c, t)) for name, (c, t) in grouped.items()]


def mask_ranking(rows: Sequence[Dict], viewer_id: str, viewer_is_public: bool) -> List[RankingRow]:
    """
    Apply display-name masking to get_ranking rows.

    A private viewer sees every other name hidden; a public viewer sees only
    other public users by name. The viewer's own row is always named and marked.
    """
    ranking = []
    for index, row in enumerate(rows):
        is_me = row.get("user_id") == viewer_id
        is_public = bool(row.get("is_public"))
        name = row.get("display_name") or ""
        if not is_me and not viewer_is_public:
            name = HIDDEN_NAME
        elif not is_me and not is_public:
            name = ANONYMOUS_NAME
        ranking.append(RankingRow(
            position=index + 1,
            name=f"{name}{SELF_SUFFIX}" if is_me else name,
            score=int(row.get("score") or 0),
            is_me=is_me,
            is_public=is_public,
        ))
    return ranking


@dataclass
class PerformanceReport:
    subjects: List[SubjectStats]
    overall: Dict[str, int]
    ranking: List[RankingRow]
    answers: List[AnswerRecord]

    def chart(self, time_range: TimeRange = TimeRange.WEEKLY, subject: Optional[str] = None, **kwargs) -> List[ChartPoint]:
        return chart_series(self.answers, time_range, subject, **kwargs)


async def load_performance(db, ctx, policy: StatsPolicy = StatsPolicy.ALL_ATTEMPTS) -> Optional[PerformanceReport]:
    """
    Everything the performance screen shows for the current user.

    Returns None for anonymous users and when the answer history cannot be
    read. A failed ranking read falls back to a single row for the user with
    their overall score.
    """
    if ctx.user is None:
        return None
    try:
        answers = await db.list_answers(ctx.user.id)
    except StoreError as e:
        logger.error(f"Error fetching answers for performance: {e}")
        return None
    counted = apply_policy(answers, policy)
    summary = overall(counted)

    try:
        profile = await db.get_profile(ctx.user.id) or {}
        rows = await db.get_ranking()
        ranking = mask_ranking(rows, ctx.user.id, bool(profile.get("is_public")))
    except StoreError as e:
        logger.error(f"Ranking error: {e}")
        ranking = [RankingRow(position=1, name="Você", score=summary["percentage"], is_me=True, is_public=False)]

    return PerformanceReport(
        subjects=subject_breakdown(counted),
        overall=summary,
        ranking=ranking,
        answers=counted,
    )
