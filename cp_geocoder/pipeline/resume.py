"""Resume index built from rows already written with coordinates."""

from __future__ import annotations

import csv
import json
from collections import Counter
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from cp_geocoder.common.errors import InputSourceError
from cp_geocoder.geocode.models import SOURCE_FIELDS, SourceRecord

DEFAULT_KEY_FIELDS = ("postalCode", "settlement", "municipality", "settlementIdCpcons")


def make_resume_key(row: Mapping[str, object], key_fields: Sequence[str] = DEFAULT_KEY_FIELDS) -> str:
    parts = ["" if row.get(name) is None else str(row.get(name)).upper() for name in key_fields]
    if not any(parts):
        # Nothing to key on; fall back to the whole row.
        return json.dumps(dict(row), sort_keys=True, ensure_ascii=False, default=str)
    return "|".join(parts).strip()


def record_resume_key(record: SourceRecord, key_fields: Sequence[str] = DEFAULT_KEY_FIELDS) -> str:
    return make_resume_key(record.to_dict(), key_fields)


def load_completed_keys(results_path: Path, key_fields: Sequence[str] = DEFAULT_KEY_FIELDS) -> set[str]:
    """Stream prior output and collect keys of rows that already have coordinates."""
    if not results_path.exists():
        return set()
    completed: set[str] = set()
    try:
        with results_path.open("r", encoding="utf-8", newline="") as f:
            for row in csv.DictReader(f):
                if not row.get("lat") or not row.get("lon"):
                    continue
                source_row = {name: row.get(name) or "" for name in SOURCE_FIELDS}
                completed.add(make_resume_key(source_row, key_fields))
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise InputSourceError(f"Cannot read prior output {results_path}: {exc}") from exc
    return completed


def count_key_collisions(records: Iterable[SourceRecord], key_fields: Sequence[str] = DEFAULT_KEY_FIELDS) -> int:
    """Number of input rows whose resume key repeats an earlier row's key."""
    counts = Counter(record_resume_key(record, key_fields) for record in records)
    return sum(n - 1 for n in counts.values() if n > 1)
