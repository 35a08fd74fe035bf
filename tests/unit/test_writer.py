from pathlib import Path

import pytest

from cp_geocoder.common.errors import OutputSinkError
from cp_geocoder.geocode.models import OUTPUT_COLUMNS, OutputRecord, SourceRecord
from cp_geocoder.pipeline.writer import AppendCsvWriter, ResultWriter

ROW = SourceRecord(postalCode="44100", settlement="Centro", municipality="Guadalajara", state="Jalisco")


def record(tier: str, precision: int, lat=20.5, lon=-103.2) -> OutputRecord:
    return OutputRecord(
        source=ROW,
        lat=lat,
        lon=lon,
        strategy_source="nominatim_cp_only_bias",
        match_note="postcode",
        confidence_tier=tier,
        miss_reason="",
        precision=precision,
    )


def read_lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines()


def test_header_written_once_across_reopen(tmp_path: Path):
    path = tmp_path / "out" / "results.csv"
    first = AppendCsvWriter(path)
    first.write_row(record("exact_postcode", 3).to_row())
    first.close()

    second = AppendCsvWriter(path)
    second.write_row(record("exact_postcode", 3).to_row())
    second.close()

    lines = read_lines(path)
    assert lines[0] == ",".join(OUTPUT_COLUMNS)
    assert len(lines) == 3
    assert sum(1 for line in lines if line.startswith("postalCode,")) == 1


def test_empty_existing_file_gets_header(tmp_path: Path):
    path = tmp_path / "results.csv"
    path.write_text("", encoding="utf-8")
    writer = AppendCsvWriter(path)
    writer.close()
    assert read_lines(path) == [",".join(OUTPUT_COLUMNS)]


def test_rows_are_flushed_before_close(tmp_path: Path):
    path = tmp_path / "results.csv"
    writer = AppendCsvWriter(path)
    writer.write_row(record("exact_postcode", 3).to_row())
    assert len(read_lines(path)) == 2
    writer.close()


def test_result_writer_routes_low_confidence_to_misses(tmp_path: Path):
    results = tmp_path / "results.csv"
    misses = tmp_path / "misses.csv"
    with ResultWriter(results, misses) as writer:
        assert writer.write(record("exact_postcode", 3)) is False
        assert writer.write(record("text_locality", 2)) is False
        assert writer.write(record("municipality_fallback", 1)) is True
        assert writer.write(record("no_result", 0, lat=None, lon=None)) is True

    assert len(read_lines(results)) == 5
    miss_lines = read_lines(misses)
    assert len(miss_lines) == 3
    assert miss_lines[2].endswith(",,,nominatim_cp_only_bias,postcode,no_result,,0")


def test_unopenable_output_is_fatal(tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(OutputSinkError):
        AppendCsvWriter(blocker / "results.csv")
