import copy
from pathlib import Path

import pytest
import yaml

from cp_geocoder.common.errors import ConfigError
from cp_geocoder.common.schema import validate_bbox, validate_geocoder_config

BASE = yaml.safe_load(Path("config/geocoder.yml").read_text(encoding="utf-8"))


def cfg_with(section: str, key: str, value) -> dict:
    cfg = copy.deepcopy(BASE)
    cfg[section][key] = value
    return cfg


def test_repo_config_is_valid():
    assert validate_geocoder_config(copy.deepcopy(BASE))["region"]["bbox"] == [-105.8, 18.7, -101.4, 22.9]


def test_missing_section():
    cfg = copy.deepcopy(BASE)
    del cfg["resume"]
    with pytest.raises(ConfigError, match="Missing keys"):
        validate_geocoder_config(cfg)


def test_unknown_keys_rejected_unless_allowed():
    cfg = cfg_with("nominatim", "api_key", "x")
    with pytest.raises(ConfigError, match="Unknown keys"):
        validate_geocoder_config(copy.deepcopy(cfg))
    assert validate_geocoder_config(cfg, allow_unknown=True)["nominatim"]["api_key"] == "x"


@pytest.mark.parametrize(
    "section,key,value",
    [
        ("input", "start_at", -1),
        ("input", "sample_limit", "ten"),
        ("nominatim", "max_retries", -2),
        ("resume", "key_fields", []),
    ],
)
def test_bad_values(section, key, value):
    with pytest.raises(ConfigError):
        validate_geocoder_config(cfg_with(section, key, value))


def test_validate_bbox():
    assert validate_bbox(["-105.8", "18.7", "-101.4", "22.9"]) == [-105.8, 18.7, -101.4, 22.9]
    with pytest.raises(ConfigError):
        validate_bbox([1, 2, 3])
    with pytest.raises(ConfigError):
        validate_bbox([-101.4, 18.7, -105.8, 22.9])
