"""Ingest a question bank CSV (ID, Prova, Matéria, Questão, Enunciado, AlternativaA-D, Gabarito, Fonte_documento); bulk UPSERT into the bank table."""
import argparse
import asyncio
import csv
import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from simulado.config import load_settings, setup_logging
from simulado.database import create_database
from simulado.facets import FACET_COLUMNS, FIELD_COLUMNS, DISCIPLINE, EXAM, SOURCE
from simulado.models import OPTION_IDS

logger = logging.getLogger(__name__)

DEFAULT_CSV = Path(__file__).resolve().parent / "questoes.csv"


def _get(raw: Dict, columns) -> str:
    """First non-blank value among the accepted spellings of a column."""
    for col in columns:
        value = raw.get(col)
        if value and value.strip():
            return value.strip()
    return ""


def parse_row(raw: Dict) -> Optional[Dict]:
    """Validate one CSV record and return a bank row keyed by canonical columns. Returns None to skip."""
    raw_id = _get(raw, FIELD_COLUMNS["id"])
    try:
        question_id = int(raw_id)
    except ValueError:
        logger.warning(f"Skipping row with invalid ID {raw_id!r}")
        return None

    options = {o: _get(raw, FIELD_COLUMNS[o]) for o in OPTION_IDS}
    if not all(options.values()):
        logger.warning(f"Skipping question {question_id}: needs {len(OPTION_IDS)} alternatives")
        return None
    correct = _get(raw, FIELD_COLUMNS["correct"]).upper()
    if correct not in OPTION_IDS:
        logger.warning(f"Skipping question {question_id}: Gabarito {correct!r} is not one of {'/'.join(OPTION_IDS)}")
        return None
    text = _get(raw, FIELD_COLUMNS["text"])
    if not text:
        logger.warning(f"Skipping question {question_id}: empty Enunciado")
        return None

    row = {
        FIELD_COLUMNS["id"][0]: question_id,
        FACET_COLUMNS[EXAM][0]: _get(raw, FACET_COLUMNS[EXAM]) or None,
        FACET_COLUMNS[DISCIPLINE][0]: _get(raw, FACET_COLUMNS[DISCIPLINE]) or None,
        FIELD_COLUMNS["label"][0]: _get(raw, FIELD_COLUMNS["label"]) or None,
        FIELD_COLUMNS["text"][0]: text,
        FIELD_COLUMNS["correct"][0]: correct,
        FACET_COLUMNS[SOURCE][0]: _get(raw, FACET_COLUMNS[SOURCE]) or None,
    }
    for o in OPTION_IDS:
        row[FIELD_COLUMNS[o][0]] = options[o]
    return row


def load_and_transform(path: Path) -> Iterator[Dict]:
    """Read the CSV and yield valid bank rows."""
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        for raw in csv.DictReader(f):
            row = parse_row(raw)
            if row:
                yield row


async def upsert_rows(rows: List[Dict], chunk_size: int = 200) -> int:
    db = await create_database(load_settings())
    return await db.upsert_questions_bulk(rows, chunk_size=chunk_size)


def run_import(csv_path: Optional[Path] = None, chunk_size: int = 200, dry_run: bool = False) -> int:
    path = csv_path or DEFAULT_CSV
    if not path.exists():
        raise FileNotFoundError(f"CSV not found: {path}")
    rows = list(load_and_transform(path))
    if dry_run:
        print(f"Dry run: would upsert {len(rows)} questions from {path}")
        if rows:
            print("Sample row:", rows[0])
        return len(rows)
    n = asyncio.run(upsert_rows(rows, chunk_size=chunk_size))
    print(f"Upserted {n} questions from {path}")
    return n


if __name__ == "__main__":
    setup_logging(os.environ.get("SIMULADO_LOG_LEVEL", "INFO"))
    parser = argparse.ArgumentParser(description="Import a question bank CSV into Supabase.")
    parser.add_argument("csv", nargs="?", default=None, help=f"Path to .csv (default: {DEFAULT_CSV})")
    parser.add_argument("--chunk-size", type=int, default=200, help="Upsert chunk size (default 200)")
    parser.add_argument("--dry-run", action="store_true", help="Parse only, do not upsert")
    args = parser.parse_args()
    run_import(csv_path=Path(args.csv) if args.csv else None, chunk_size=args.chunk_size, dry_run=args.dry_run)
