"""Registry input reading, header normalisation, region filter and slicing."""

from __future__ import annotations

import csv
import logging
import re
import zipfile
from pathlib import Path
from typing import Any, Iterable

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from cp_geocoder.common.errors import InputSourceError
from cp_geocoder.common.logging import log_event
from cp_geocoder.geocode.models import HEADER_MAP, SourceRecord

_WHITESPACE_RE = re.compile(r"\s+")
_ZERO_PAD_FORMAT_RE = re.compile(r"^0+$")
SPREADSHEET_SUFFIXES = {".xlsx", ".xlsm"}


def normalise_header(raw: Any) -> str:
    key = str(raw or "").strip().lower()
    return HEADER_MAP.get(key, _WHITESPACE_RE.sub("_", key))


def cell_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def padded_cell_value(value: Any, number_format: str | None) -> Any:
    """Apply a zero-padded number format (e.g. ``00000``) the way the sheet displays it."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    if not number_format or not _ZERO_PAD_FORMAT_RE.match(number_format):
        return value
    if isinstance(value, float) and not value.is_integer():
        return value
    return str(int(value)).zfill(len(number_format))


def _rows_from_table(header: Iterable[Any], body: Iterable[Iterable[Any]]) -> list[dict[str, str]]:
    keys = [normalise_header(h) for h in header]
    rows = []
    for values in body:
        cells = [cell_to_str(v) for v in values]
        if not any(cells):
            continue
        rows.append({key: value for key, value in zip(keys, cells) if key})
    return rows


def _pick_sheet(sheet_names: list[str], wanted: str | None) -> str:
    if wanted:
        if wanted in sheet_names:
            return wanted
        for name in sheet_names:
            if name.lower() == wanted.lower():
                return name
    return sheet_names[0]


def _read_xlsx_rows(path: Path, sheet_name: str | None, logger: logging.Logger) -> list[dict[str, str]]:
    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        target = _pick_sheet(workbook.sheetnames, sheet_name)
        if sheet_name and target != sheet_name:
            log_event(
                logger,
                f'requested sheet "{sheet_name}" not found; using "{target}"',
                level=logging.WARNING,
                stage="read",
                event="INPUT_READ",
                status="warning",
            )
        values = (
            [padded_cell_value(cell.value, cell.number_format) for cell in row]
            for row in workbook[target].iter_rows()
        )
        header = next(values, None)
        if header is None:
            return []
        return _rows_from_table(header, values)
    finally:
        workbook.close()


def _read_csv_rows(path: Path, delimiter: str, encoding: str) -> list[dict[str, str]]:
    with path.open("r", encoding=encoding, newline="") as f:
        reader = csv.reader(f, delimiter=delimiter)
        header = next(reader, None)
        if header is None:
            return []
        return _rows_from_table(header, reader)


def read_registry_rows(
    path: Path,
    *,
    sheet_name: str | None = None,
    delimiter: str = ",",
    encoding: str = "utf-8",
    logger: logging.Logger | None = None,
) -> list[dict[str, str]]:
    logger = logger or logging.getLogger(__name__)
    if not path.exists():
        raise InputSourceError(f"Input file not found: {path}")
    if path.suffix.lower() == ".xls":
        raise InputSourceError(f"Legacy .xls workbooks are not supported, convert to .xlsx or CSV: {path}")
    try:
        if path.suffix.lower() in SPREADSHEET_SUFFIXES:
            return _read_xlsx_rows(path, sheet_name, logger)
        return _read_csv_rows(path, delimiter, encoding)
    except (OSError, UnicodeDecodeError, csv.Error, zipfile.BadZipFile, InvalidFileException, KeyError) as exc:
        raise InputSourceError(f"Cannot read input {path}: {exc}") from exc


def filter_by_state(rows: list[dict[str, str]], state_filter: str | None) -> list[dict[str, str]]:
    if not state_filter:
        return rows
    wanted = state_filter.strip().upper()
    return [row for row in rows if (row.get("state") or "").upper() == wanted]


def slice_rows(rows: list, start_at: int = 0, sample_limit: int | None = None) -> list:
    start = min(start_at or 0, len(rows))
    # A limit of 0 means no limit.
    end = len(rows) if not sample_limit else min(len(rows), start + sample_limit)
    return rows[start:end]


def load_source_records(input_cfg: dict, logger: logging.Logger | None = None) -> list[SourceRecord]:
    logger = logger or logging.getLogger(__name__)
    rows = read_registry_rows(
        Path(input_cfg["path"]),
        sheet_name=input_cfg.get("sheet_name"),
        delimiter=input_cfg.get("csv_delimiter") or ",",
        encoding=input_cfg.get("encoding") or "utf-8",
        logger=logger,
    )
    rows_read = len(rows)
    rows = filter_by_state(rows, input_cfg.get("state_filter"))
    filtered = len(rows)
    rows = slice_rows(rows, input_cfg.get("start_at") or 0, input_cfg.get("sample_limit"))

    log_event(
        logger,
        f"rows read: {rows_read}, after state filter: {filtered}, selected: {len(rows)}",
        stage="read",
        event="INPUT_READ",
        status="ok",
        rows_in=rows_read,
        rows_out=len(rows),
    )
    return [SourceRecord.from_row(row) for row in rows]
