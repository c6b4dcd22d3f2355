import pytest

import cli


def test_parser_overrides():
    args = cli.build_parser().parse_args(["--min-dm", "10", "--eps", "3.5", "--gulp-policy", "count", "--no-migrate"])
    assert args.min_dm == 10.0
    assert args.eps == 3.5
    assert args.gulp_policy == "count"
    assert args.migrate is False
    assert args.plot_batch is None and args.log_sink is None


def test_invalid_range_exits_nonzero():
    with pytest.raises(SystemExit) as ei:
        cli.main(["--min-dm", "500", "--max-dm", "100"])
    assert ei.value.code == 2
