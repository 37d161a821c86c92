"""Performance statistics."""
from datetime import datetime, timedelta, timezone

from conftest import NOW
from simulado.models import AnswerRecord
from simulado.stats import (
    StatsPolicy,
    TimeRange,
    chart_series,
    load_performance,
    mask_ranking,
    overall,
    percent,
    subject_breakdown,
)


def answer(qid, ok, subject="Português", at=NOW):
    return AnswerRecord(question_id=qid, is_correct=ok, subject=subject, created_at=at)


def test_percent_rounds_half_up():
    assert percent(1, 8) == 13
    assert percent(1, 3) == 33
    assert percent(0, 0) == 0


def test_subject_breakdown_sorted_by_percentage():
    answers = [
        answer(1, True, "Português"), answer(2, False, "Português"),
        answer(3, True, "Direito Penal"),
        answer(4, False, ""),
    ]
    stats = subject_breakdown(answers)
    assert [(s.subject, s.correct, s.total, s.percentage) for s in stats] == [
        ("Direito Penal", 1, 1, 100),
        ("Português", 1, 2, 50),
        ("Geral", 0, 1, 0),
    ]


def test_repeated_attempts_policy():
    answers = [
        answer(1, False, at=NOW - timedelta(hours=2)),
        answer(1, True, at=NOW - timedelta(hours=1)),
        answer(2, True),
    ]
    assert overall(answers) == {"percentage": 67, "total": 3}
    assert overall(answers, StatsPolicy.LATEST_ATTEMPT) == {"percentage": 100, "total": 2}


def test_weekly_chart_uses_weekday_labels_and_window():
    # NOW is Tuesday 2026-03-10 12:00 in Sao Paulo
    answers = [
        answer(1, True, at=NOW),
        answer(2, False, at=NOW),
        answer(3, True, at=NOW - timedelta(days=2)),
        answer(4, True, at=NOW - timedelta(days=10)),
    ]
    points = chart_series(answers, TimeRange.WEEKLY, now=NOW)
    assert [(p.name, p.val) for p in points] == [("Ter", 50), ("Dom", 100)]


def test_monthly_chart_keys_by_day_and_filters_subject():
    answers = [
        answer(1, True, "Português", at=NOW - timedelta(days=20)),
        answer(2, True, "Direito Penal", at=NOW - timedelta(days=20)),
        answer(3, False, "Português", at=NOW - timedelta(days=40)),
    ]
    points = chart_series(answers, TimeRange.MONTHLY, subject="Português", now=NOW)
    assert [(p.name, p.val) for p in points] == [("18/02", 100)]
    all_points = chart_series(answers, TimeRange.ALL, subject="Português", now=NOW)
    assert [p.name for p in all_points] == ["18/02", "29/01"]


def test_ranking_masking_for_private_viewer():
    rows = [
        {"user_id": "u2", "display_name": "Bruno", "is_public": True, "score": 90},
        {"user_id": "me", "display_name": "Alice", "is_public": False, "score": 80},
    ]
    ranking = mask_ranking(rows, "me", viewer_is_public=False)
    assert [(r.position, r.name, r.is_me) for r in ranking] == [(1, "*****", False), (2, "Alice (Você)", True)]


def test_ranking_masking_for_public_viewer():
    rows = [
        {"user_id": "u2", "display_name": "Bruno", "is_public": True, "score": 90},
        {"user_id": "u3", "display_name": "Carla", "is_public": False, "score": 85},
        {"user_id": "me", "display_name": "Alice", "is_public": True, "score": 80},
    ]
    names = [r.name for r in mask_ranking(rows, "me", viewer_is_public=True)]
    assert names == ["Bruno", "Anônimo", "Alice (Você)"]


async def test_load_performance_falls_back_when_ranking_fails(backend, free_ctx):
    backend.add_answer(free_ctx.user_id, 1, True, "Português")
    backend.add_answer(free_ctx.user_id, 2, False, "Português")
    backend.fail.add("get_ranking")
    report = await load_performance(backend, free_ctx)
    assert report.overall == {"percentage": 50, "total": 2}
    assert [(r.name, r.score, r.is_me) for r in report.ranking] == [("Você", 50, True)]
    assert report.subjects[0].subject == "Português"


async def test_load_performance_masks_ranking(backend, free_ctx):
    backend.profiles[free_ctx.user_id] = {"id": free_ctx.user_id, "is_public": True}
    backend.ranking = [
        {"user_id": "other", "display_name": "Bruno", "is_public": False, "score": 70},
        {"user_id": free_ctx.user_id, "display_name": "Alice", "is_public": True, "score": 60},
    ]
    report = await load_performance(backend, free_ctx)
    assert [r.name for r in report.ranking] == ["Anônimo", "Alice (Você)"]


async def test_load_performance_anonymous(backend, anon_ctx):
    assert await load_performance(backend, anon_ctx) is None


async def test_load_performance_without_history(backend, free_ctx):
    backend.fail.add("list_answers")
    assert await load_performance(backend, free_ctx) is None
