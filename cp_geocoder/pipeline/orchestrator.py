"""Row-by-row geocoding: resume filter, strategy ladder, classification, output."""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol, Sequence

from cp_geocoder.common.http import HttpClient, RetryConfig, TimeoutConfig
from cp_geocoder.common.logging import log_event
from cp_geocoder.common.time_utils import elapsed_ms
from cp_geocoder.geocode.confidence import ConfidenceTier, classify
from cp_geocoder.geocode.models import Candidate, OutputRecord, Region, SourceRecord
from cp_geocoder.geocode.selection import select_candidate
from cp_geocoder.geocode.strategies import NO_RESULT_SOURCE, STRATEGY_LADDER, GeocodeQuery, Strategy
from cp_geocoder.geocode.transport import GeocodeTransport, TransportResult
from cp_geocoder.pipeline.resume import count_key_collisions, load_completed_keys, record_resume_key
from cp_geocoder.pipeline.source import load_source_records
from cp_geocoder.pipeline.writer import ResultWriter

NO_RESULT_NOTE = "no_result"
ERROR_NOTE = "error"


class RowState(str, Enum):
    SKIP_MISSING_FIELD = "SKIP_MISSING_FIELD"
    SKIP_RESUMED = "SKIP_RESUMED"
    TRY_STRATEGY = "TRY_STRATEGY"
    WRITE_RESULT = "WRITE_RESULT"
    WRITE_NO_RESULT = "WRITE_NO_RESULT"


class Transport(Protocol):
    def send(self, query: GeocodeQuery) -> TransportResult: ...


@dataclass(frozen=True)
class GeocodeMatch:
    strategy: Strategy
    candidate: Candidate


@dataclass(frozen=True)
class RowOutcome:
    state: RowState
    record: OutputRecord | None = None
    error: str | None = None


@dataclass
class RunStats:
    rows_in: int = 0
    processed: int = 0
    skipped_missing: int = 0
    skipped_resumed: int = 0
    errors: int = 0
    misses: int = 0
    queries: int = 0
    requests_sent: int = 0
    key_collisions: int = 0
    tiers: Counter = field(default_factory=Counter)

    @property
    def skipped(self) -> int:
        return self.skipped_missing + self.skipped_resumed

    def to_dict(self) -> dict:
        return {
            "rows_in": self.rows_in,
            "processed": self.processed,
            "skipped": self.skipped,
            "skipped_missing": self.skipped_missing,
            "skipped_resumed": self.skipped_resumed,
            "errors": self.errors,
            "misses": self.misses,
            "queries": self.queries,
            "requests_sent": self.requests_sent,
            "key_collisions": self.key_collisions,
            "tiers": {tier.value: self.tiers.get(tier.value, 0) for tier in ConfidenceTier},
        }


def build_output_record(record: SourceRecord, match: GeocodeMatch | None) -> OutputRecord:
    if match is None:
        tier = ConfidenceTier.NO_RESULT
        return OutputRecord(
            source=record,
            lat=None,
            lon=None,
            strategy_source=NO_RESULT_SOURCE,
            match_note=NO_RESULT_NOTE,
            confidence_tier=tier.value,
            miss_reason=NO_RESULT_NOTE,
            precision=tier.precision,
        )

    candidate = match.candidate
    note = candidate.type or "ok"
    tier = classify(match.strategy, candidate.type)
    return OutputRecord(
        source=record,
        lat=candidate.lat,
        lon=candidate.lon,
        strategy_source=match.strategy.value,
        match_note=note,
        confidence_tier=tier.value,
        miss_reason=note if tier is ConfidenceTier.MUNICIPALITY_FALLBACK else "",
        precision=tier.precision,
    )


def build_error_record(record: SourceRecord, message: str) -> OutputRecord:
    tier = ConfidenceTier.NO_RESULT
    return OutputRecord(
        source=record,
        lat=None,
        lon=None,
        strategy_source=NO_RESULT_SOURCE,
        match_note=ERROR_NOTE,
        confidence_tier=tier.value,
        miss_reason=message,
        precision=tier.precision,
    )


class GeocodePipeline:
    def __init__(
        self,
        transport: Transport,
        writer: ResultWriter,
        region: Region,
        *,
        key_fields: Sequence[str],
        completed_keys: set[str] | None = None,
        ladder: Sequence[Strategy] = STRATEGY_LADDER,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
    ) -> None:
        self.transport = transport
        self.writer = writer
        self.region = region
        self.key_fields = list(key_fields)
        self.completed_keys = completed_keys if completed_keys is not None else set()
        self.ladder = list(ladder)
        self.logger = logger or logging.getLogger(__name__)
        self.run_id = run_id
        self.stats = RunStats()

    def _attempt(self, strategy: Strategy, record: SourceRecord) -> GeocodeMatch | None:
        self.stats.queries += 1
        result = self.transport.send(strategy.build_query(record, self.region))
        if not result.ok or not result.candidates:
            return None
        candidate = select_candidate(strategy.acceptance, record, result.candidates, self.region)
        if candidate is None:
            return None
        return GeocodeMatch(strategy=strategy, candidate=candidate)

    def geocode(self, record: SourceRecord) -> tuple[RowState, GeocodeMatch | None]:
        """Walk the ladder until a strategy yields an accepted candidate."""
        state = RowState.TRY_STRATEGY
        index = 0
        match: GeocodeMatch | None = None
        while state is RowState.TRY_STRATEGY:
            if index >= len(self.ladder):
                state = RowState.WRITE_NO_RESULT
                continue
            match = self._attempt(self.ladder[index], record)
            if match is not None:
                state = RowState.WRITE_RESULT
            else:
                index += 1
        return state, match

    def process_row(self, record: SourceRecord, label: str = "") -> RowOutcome:
        if not record.municipality:
            self.stats.skipped_missing += 1
            log_event(
                self.logger,
                f"{label} SKIP (missing municipality)",
                level=logging.WARNING,
                run_id=self.run_id,
                stage="geocode",
                row=label,
                event="ROW_SKIP",
                status="missing_field",
            )
            return RowOutcome(state=RowState.SKIP_MISSING_FIELD)

        if record_resume_key(record, self.key_fields) in self.completed_keys:
            self.stats.skipped_resumed += 1
            log_event(
                self.logger,
                f"{label} SKIP (already in output)",
                run_id=self.run_id,
                stage="geocode",
                row=label,
                event="ROW_SKIP",
                status="resumed",
            )
            return RowOutcome(state=RowState.SKIP_RESUMED)

        started_at = time.monotonic()
        error: str | None = None
        try:
            state, match = self.geocode(record)
            output = build_output_record(record, match)
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            state = RowState.WRITE_NO_RESULT
            output = build_error_record(record, error)
            self.stats.errors += 1
            log_event(
                self.logger,
                f"{label} ERROR: {error}",
                level=logging.ERROR,
                run_id=self.run_id,
                stage="geocode",
                row=label,
                event="ROW_ERROR",
                status="error",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )

        if self.writer.write(output):
            self.stats.misses += 1
        self.stats.processed += 1
        self.stats.tiers[output.confidence_tier] += 1

        lat = "-" if output.lat is None else output.lat
        lon = "-" if output.lon is None else output.lon
        log_event(
            self.logger,
            (
                f"{label} CP={record.postalCode} -> lat={lat} lon={lon} "
                f"[{output.strategy_source}/{output.match_note} | {output.confidence_tier} p={output.precision}]"
            ),
            run_id=self.run_id,
            stage="geocode",
            row=label,
            strategy=output.strategy_source,
            event="ROW_RESULT",
            status=output.confidence_tier,
            duration_ms=elapsed_ms(started_at),
        )
        return RowOutcome(state=state, record=output, error=error)

    def run(self, records: Sequence[SourceRecord]) -> RunStats:
        total = len(records)
        self.stats.rows_in = total
        for i, record in enumerate(records, start=1):
            label = f"{i}/{total} [{record_resume_key(record, self.key_fields)}]"
            self.process_row(record, label)
        return self.stats


def build_http_client(cfg: dict, logger: logging.Logger | None = None) -> HttpClient:
    nominatim = cfg["nominatim"]
    return HttpClient(
        timeout=TimeoutConfig(read=float(nominatim.get("timeout_seconds", 10))),
        retry=RetryConfig(max_retries=int(nominatim.get("max_retries", 5))),
        min_interval=int(nominatim.get("min_interval_ms", 1000)) / 1000.0,
        user_agent=nominatim["user_agent"],
        accept_language=nominatim.get("accept_language"),
        logger=logger,
    )


def build_transport(cfg: dict, client: HttpClient, logger: logging.Logger | None = None) -> GeocodeTransport:
    nominatim = cfg["nominatim"]
    return GeocodeTransport(
        client,
        search_url=nominatim["search_url"],
        email=nominatim.get("email") or None,
        result_limit=int(nominatim.get("result_limit", 5)),
        logger=logger,
    )


def prepare_run(cfg: dict, logger: logging.Logger, run_id: str | None = None) -> tuple[list[SourceRecord], set[str], int]:
    """Read input and the resume index. Raises on unreadable input."""
    key_fields = cfg["resume"]["key_fields"]
    records = load_source_records(cfg["input"], logger)

    collisions = count_key_collisions(records, key_fields)
    if collisions:
        log_event(
            logger,
            f"{collisions} input rows share a resume key with an earlier row; a resumed run treats them as done",
            level=logging.WARNING,
            run_id=run_id,
            stage="resume",
            event="RESUME_KEY_COLLISIONS",
            status="warning",
            rows_in=len(records),
        )

    completed = load_completed_keys(Path(cfg["output"]["results_csv"]), key_fields)
    log_event(
        logger,
        f"already in output with coords (by resume key {'|'.join(key_fields)}): {len(completed)}",
        run_id=run_id,
        stage="resume",
        event="RESUME_INDEX",
        status="ok",
        rows_out=len(completed),
    )
    return records, completed, collisions


def run_geocode(
    cfg: dict,
    logger: logging.Logger,
    *,
    run_id: str | None = None,
    transport: Transport | None = None,
) -> RunStats:
    records, completed, collisions = prepare_run(cfg, logger, run_id)

    client: HttpClient | None = None
    if transport is None:
        client = build_http_client(cfg, logger)
        transport = build_transport(cfg, client, logger)

    try:
        with ResultWriter(Path(cfg["output"]["results_csv"]), Path(cfg["output"]["misses_csv"])) as writer:
            pipeline = GeocodePipeline(
                transport,
                writer,
                Region.from_config(cfg["region"]),
                key_fields=cfg["resume"]["key_fields"],
                completed_keys=completed,
                logger=logger,
                run_id=run_id,
            )
            stats = pipeline.run(records)
    finally:
        if client is not None:
            client.close()

    stats.key_collisions = collisions
    if client is not None:
        stats.requests_sent = client.requests_sent
    return stats
