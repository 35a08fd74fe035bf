"""Configuration loading, environment overrides and validation."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Callable, Mapping

from cp_geocoder.common.constants import build_user_agent
from cp_geocoder.common.errors import ConfigError
from cp_geocoder.common.fs import read_yaml
from cp_geocoder.common.schema import validate_geocoder_config

DEFAULT_CONFIG_PATH = Path("config/geocoder.yml")
MISSES_FILENAME = "misses.csv"


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if not overlay:
        return base
    return _deep_merge(base, overlay)


def _parse_int(value: str) -> int:
    return int(value.strip())


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _parse_key_fields(value: str) -> list[str]:
    return [part.strip() for part in value.split("|") if part.strip()]


def _parse_bbox(value: str) -> list[float]:
    return [float(part) for part in value.split(",")]


# env var -> (section, key, parser)
ENV_OVERRIDES: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "INPUT_XLS": ("input", "path", str),
    "SHEET_NAME": ("input", "sheet_name", str.strip),
    "STATE_FILTER": ("input", "state_filter", str.strip),
    "START_AT": ("input", "start_at", _parse_int),
    "SAMPLE_LIMIT": ("input", "sample_limit", _parse_int),
    "OUTPUT_CSV": ("output", "results_csv", str),
    "MISSES_CSV": ("output", "misses_csv", str),
    "NOMINATIM_EMAIL": ("nominatim", "email", str.strip),
    "USER_AGENT": ("nominatim", "user_agent", str),
    "MIN_INTERVAL_MS": ("nominatim", "min_interval_ms", _parse_int),
    "RESUME_KEY_FIELDS": ("resume", "key_fields", _parse_key_fields),
    "USE_BIAS": ("region", "use_bias", _parse_bool),
    "BBOX": ("region", "bbox", _parse_bbox),
}


def apply_env_overrides(cfg: dict, environ: Mapping[str, str]) -> dict:
    out = copy.deepcopy(cfg)
    for env_name, (section, key, parser) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            value = parser(raw)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {env_name}: {raw!r}") from exc
        out.setdefault(section, {})[key] = value
    return out


def _fill_derived(cfg: dict) -> dict:
    nominatim = cfg["nominatim"]
    if not nominatim.get("user_agent"):
        nominatim["user_agent"] = build_user_agent(nominatim.get("email"))

    output = cfg["output"]
    if not output.get("misses_csv"):
        output["misses_csv"] = str(Path(output["results_csv"]).parent / MISSES_FILENAME)
    return cfg


def load_config(
    config_path: Path = DEFAULT_CONFIG_PATH,
    *,
    overlay_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    allow_unknown: bool = False,
) -> dict:
    """Load YAML config, deep-merge the overlay, apply env overrides, validate."""
    cfg = _load_yaml_with_overlay(config_path, overlay_path)
    cfg = apply_env_overrides(cfg, os.environ if environ is None else environ)
    cfg = validate_geocoder_config(cfg, allow_unknown=allow_unknown)
    return _fill_derived(cfg)
