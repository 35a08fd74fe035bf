from cp_geocoder.cli import apply_cli_overrides, parse_args


def test_parse_args_defaults():
    args = parse_args(["geocode"])
    assert args.command == "geocode"
    assert args.config == "config/geocoder.yml"
    assert args.log_level == "INFO"


def test_cli_overrides_move_derived_misses_path():
    cfg = {
        "input": {"path": "a.xlsx", "start_at": 0, "sample_limit": None},
        "output": {"results_csv": "data/out/r.csv", "misses_csv": "data/out/misses.csv", "log_dir": "x"},
    }
    args = parse_args(["geocode", "--output", "elsewhere/r.csv", "--start-at", "5", "--limit", "2", "--input", "b.csv"])

    cfg = apply_cli_overrides(cfg, args)

    assert cfg["output"]["misses_csv"].replace("\\", "/") == "elsewhere/misses.csv"
    assert cfg["input"] == {"path": "b.csv", "start_at": 5, "sample_limit": 2}
