"""
Column synonyms for the question bank.

The bank was loaded from spreadsheets over time and the same facet shows up
under several spellings. Rows are coalesced here, at the boundary, using a
fixed table; nothing downstream sees the raw column names.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from simulado.models import OPTION_IDS, AnswerRecord, Option, Question

logger = logging.getLogger(__name__)

DISCIPLINE = "discipline"
SOURCE = "source"
EXAM = "exam"

FACETS = (DISCIPLINE, SOURCE, EXAM)

# First entry is the canonical column used in filters and selects.
FACET_COLUMNS: Dict[str, tuple] = {
    DISCIPLINE: ("Matéria", "materia", "Materia"),
    SOURCE: ("Fonte_documento", "fonte_documento"),
    EXAM: ("Prova", "prova"),
}

FIELD_COLUMNS: Dict[str, tuple] = {
    "id": ("ID", "id"),
    "label": ("Questão", "questao"),
    "text": ("Enunciado", "enunciado"),
    "correct": ("Gabarito", "gabarito"),
    "A": ("AlternativaA", "Alternativa_a", "alternativaA"),
    "B": ("AlternativaB", "Alternativa_b", "alternativaB"),
    "C": ("AlternativaC", "Alternativa_c", "alternativaC"),
    "D": ("AlternativaD", "Alternativa_d", "alternativaD"),
}

ID_COLUMN = FIELD_COLUMNS["id"][0]


def canonical_column(facet: str) -> str:
    return FACET_COLUMNS[facet][0]


def _coalesce(row: Dict, columns: Iterable[str]):
    for col in columns:
        value = row.get(col)
        if value:
            return value
    return None


def facet_value(row: Dict, facet: str) -> Optional[str]:
    """Canonical facet value for a row, or None for missing/blank values."""
    value = _coalesce(row, FACET_COLUMNS[facet])
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def distinct_sorted(rows: Iterable[Dict], facet: str) -> List[str]:
    """Unique, non-empty facet values sorted ascending."""
    return sorted({v for v in (facet_value(r, facet) for r in rows) if v})


def row_to_question(row: Dict) -> Optional[Question]:
    """Map a raw bank row to a Question. Returns None if the row has no usable id."""
    raw_id = _coalesce(row, FIELD_COLUMNS["id"])
    try:
        question_id = int(raw_id)
    except (TypeError, ValueError):
        logger.warning("Skipping question row without a numeric id: %r", raw_id)
        return None

    label = _coalesce(row, FIELD_COLUMNS["label"])
    correct = str(_coalesce(row, FIELD_COLUMNS["correct"]) or "").strip().upper()
    return Question(
        id=question_id,
        exam=facet_value(row, EXAM) or "",
        subject=facet_value(row, DISCIPLINE) or "",
        text=str(_coalesce(row, FIELD_COLUMNS["text"]) or "").replace("\\n", "\n"),
        options=tuple(Option(id=o, text=str(_coalesce(row, FIELD_COLUMNS[o]) or "")) for o in OPTION_IDS),
        correct_option_id=correct,
        source=facet_value(row, SOURCE) or "",
        label=f"Questão {label}" if label else f"Questão {question_id}",
    )


def rows_to_questions(rows: Iterable[Dict]) -> List[Question]:
    questions = []
    for row in rows:
        q = row_to_question(row)
        if q is not None:
            questions.append(q)
    return questions


def parse_timestamp(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def row_to_answer(row: Dict) -> AnswerRecord:
    return AnswerRecord(
        question_id=int(row["question_id"]),
        is_correct=bool(row.get("is_correct")),
        subject=row.get("subject") or "",
        created_at=parse_timestamp(row.get("created_at")),
        id=row.get("id"),
    )
