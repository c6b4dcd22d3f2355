#!/usr/bin/env python3
import argparse
import sys

from t2.orchestrator import run
from t2.utils import ConfigError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="T2 processing for GReX (clustering and filtering of Heimdall candidates)")
    parser.add_argument("--config", help="Path to YAML config")
    # filter
    parser.add_argument("--min-dm", dest="min_dm", type=float, help="Minimum DM to keep (exclusive)")
    parser.add_argument("--max-dm", dest="max_dm", type=float, help="Maximum DM to keep (exclusive)")
    parser.add_argument("--min-snr", dest="min_snr", type=float, help="Minimum SNR to keep (exclusive)")
    # gulp
    parser.add_argument("--gulp-policy", dest="gulp_policy", choices=["sentinel", "count"], help="How a gulp closes")
    parser.add_argument("--gulp-size", dest="gulp_size", type=int, help="Candidates per gulp under the count policy")
    # clustering
    parser.add_argument("--min-pts", dest="min_pts", type=int, help="DBSCAN minimum neighbourhood size")
    parser.add_argument("--eps", dest="eps", type=float, help="DBSCAN neighbourhood radius")
    parser.add_argument("--features", dest="features", choices=["log2", "linear"], help="Boxcar feature transform")
    # receiver
    parser.add_argument("--host", dest="host", help="UDP bind address")
    parser.add_argument("--port", dest="port", type=int, help="UDP bind port")
    # sinks
    parser.add_argument("--db-url", dest="db_url", help="Database URL (defaults to $DB_URL)")
    parser.add_argument("--no-migrate", dest="migrate", action="store_false", help="Skip table migrations at startup")
    parser.add_argument("--plot-dir", dest="plot_dir", help="Write a DM/time plot per gulp into this directory")
    parser.add_argument("--no-plot-batch", dest="plot_batch", action="store_false", help="Plot survivors only")
    parser.add_argument("--log-sink", dest="log_sink", action="store_true", help="Log every surviving candidate")
    parser.set_defaults(migrate=None, plot_batch=None, log_sink=None)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    overrides = {
        "min_dm": args.min_dm,
        "max_dm": args.max_dm,
        "min_snr": args.min_snr,
        "gulp_policy": args.gulp_policy,
        "gulp_size": args.gulp_size,
        "min_pts": args.min_pts,
        "eps": args.eps,
        "features": args.features,
        "host": args.host,
        "port": args.port,
        "db_url": args.db_url,
        "migrate": args.migrate,
        "plot_dir": args.plot_dir,
        "plot_batch": args.plot_batch,
        "log_sink": args.log_sink,
    }

    try:
        run(args.config, overrides)
    except ConfigError:
        sys.exit(2)


if __name__ == "__main__":
    main()
