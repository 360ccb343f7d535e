from carceral_pfas.cli import parse_args


def test_parse_args_defaults():
    args = parse_args(["prepare"])
    assert args.command == "prepare"
    assert args.source == "all"
    assert args.config_dir == "./config"
    assert args.data_dir == "./data"
    assert args.overlay_config_dir is None
    assert args.strict is False


def test_parse_args_accepts_source_and_overlay():
    args = parse_args(["all", "--source", "airports", "--overlay-config-dir", "config/live", "--strict"])
    assert args.command == "all"
    assert args.source == "airports"
    assert args.overlay_config_dir == "config/live"
    assert args.strict is True
