"""Append-only CSV output: full results plus a misses stream for review."""

from __future__ import annotations

import csv
from pathlib import Path
from types import TracebackType
from typing import Any, Mapping, Sequence

from cp_geocoder.common.errors import OutputSinkError
from cp_geocoder.common.fs import ensure_dir, has_content
from cp_geocoder.geocode.confidence import MISS_TIERS
from cp_geocoder.geocode.models import OUTPUT_COLUMNS, OutputRecord

MISS_TIER_VALUES = frozenset(tier.value for tier in MISS_TIERS)


def _serialize_row(row: Mapping[str, Any], columns: Sequence[str]) -> dict:
    out = {}
    for key in columns:
        value = row.get(key)
        out[key] = "" if value is None else value
    return out


class AppendCsvWriter:
    """One CSV stream opened in append mode; the header is written only for a new file."""

    def __init__(self, path: Path, columns: Sequence[str] = OUTPUT_COLUMNS) -> None:
        self.path = path
        self.columns = list(columns)
        try:
            ensure_dir(path.parent)
            needs_header = not has_content(path)
            self._file = path.open("a", encoding="utf-8", newline="")
        except OSError as exc:
            raise OutputSinkError(f"Cannot open output {path}: {exc}") from exc
        self._writer = csv.DictWriter(self._file, fieldnames=self.columns, extrasaction="ignore")
        if needs_header:
            self._writer.writeheader()
            self._file.flush()

    def write_row(self, row: Mapping[str, Any]) -> None:
        try:
            self._writer.writerow(_serialize_row(row, self.columns))
            self._file.flush()
        except OSError as exc:
            raise OutputSinkError(f"Cannot write output {self.path}: {exc}") from exc

    def close(self) -> None:
        self._file.close()


class ResultWriter:
    def __init__(self, results_path: Path, misses_path: Path) -> None:
        self.results = AppendCsvWriter(results_path)
        try:
            self.misses = AppendCsvWriter(misses_path)
        except OutputSinkError:
            self.results.close()
            raise

    def write(self, record: OutputRecord) -> bool:
        """Append to results, and to misses for low-confidence tiers. Returns True if missed."""
        row = record.to_row()
        self.results.write_row(row)
        if record.confidence_tier in MISS_TIER_VALUES:
            self.misses.write_row(row)
            return True
        return False

    def close(self) -> None:
        self.results.close()
        self.misses.close()

    def __enter__(self) -> "ResultWriter":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
