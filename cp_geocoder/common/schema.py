"""Minimal strict schema for the geocoder YAML config."""

from __future__ import annotations

from cp_geocoder.common.errors import ConfigError
from cp_geocoder.geocode.models import SOURCE_FIELDS

SECTION_KEYS = {
    "input": {"path", "sheet_name", "csv_delimiter", "encoding", "state_filter", "start_at", "sample_limit"},
    "output": {"results_csv", "misses_csv", "log_dir"},
    "region": {"state", "country", "country_code", "use_bias", "bbox"},
    "nominatim": {
        "search_url",
        "email",
        "user_agent",
        "accept_language",
        "result_limit",
        "min_interval_ms",
        "timeout_seconds",
        "max_retries",
    },
    "resume": {"key_fields"},
}

REQUIRED_SECTION_KEYS = {
    "input": {"path", "state_filter"},
    "output": {"results_csv"},
    "region": {"state", "country", "bbox"},
    "nominatim": {"search_url"},
    "resume": {"key_fields"},
}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_non_negative_int(value, ctx: str, *, nullable: bool = False) -> None:
    if value is None and nullable:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{ctx} must be a non-negative integer")


def validate_bbox(bbox) -> list[float]:
    if not isinstance(bbox, (list, tuple)) or len(bbox) != 4:
        raise ConfigError("region.bbox must be [west, south, east, north]")
    try:
        west, south, east, north = (float(v) for v in bbox)
    except (TypeError, ValueError) as exc:
        raise ConfigError("region.bbox values must be numbers") from exc
    if west >= east or south >= north:
        raise ConfigError("region.bbox must satisfy west < east and south < north")
    return [west, south, east, north]


def validate_geocoder_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    if not isinstance(cfg, dict):
        raise ConfigError("geocoder config must be a mapping")
    _assert_required_keys(cfg, set(SECTION_KEYS), "geocoder config")
    _assert_no_unknown_keys(cfg, set(SECTION_KEYS), "geocoder config", allow_unknown)

    for section, known in SECTION_KEYS.items():
        if not isinstance(cfg[section], dict):
            raise ConfigError(f"{section} must be a mapping")
        _assert_required_keys(cfg[section], REQUIRED_SECTION_KEYS[section], section)
        _assert_no_unknown_keys(cfg[section], known, section, allow_unknown)

    _assert_non_negative_int(cfg["input"].get("start_at", 0), "input.start_at")
    _assert_non_negative_int(cfg["input"].get("sample_limit"), "input.sample_limit", nullable=True)
    _assert_non_negative_int(cfg["nominatim"].get("min_interval_ms", 1000), "nominatim.min_interval_ms")
    _assert_non_negative_int(cfg["nominatim"].get("max_retries", 5), "nominatim.max_retries")
    cfg["region"]["bbox"] = validate_bbox(cfg["region"]["bbox"])

    key_fields = cfg["resume"]["key_fields"]
    if not isinstance(key_fields, list) or not key_fields or not all(isinstance(f, str) and f for f in key_fields):
        raise ConfigError("resume.key_fields must be a non-empty list of field names")
    unknown_fields = [f for f in key_fields if f not in SOURCE_FIELDS]
    if unknown_fields:
        raise ConfigError(f"Unknown resume.key_fields: {', '.join(unknown_fields)}")

    return cfg
