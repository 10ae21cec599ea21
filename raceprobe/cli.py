"""
Command line entry point.

Usage:
    raceprobe run probe.json
    raceprobe run probe.json --vus 10 --duration 5s --json

Exit codes: 0 all passed, 1 failures, 2 inconclusive, 3 configuration error.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from raceprobe.api import run_probe
from raceprobe.collector import format_report
from raceprobe.config import load_run_config
from raceprobe.exceptions import ProbeConfigError, SchedulerTimeout
from raceprobe.models import EXIT_CONFIG_ERROR, EXIT_INCONCLUSIVE


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="raceprobe",
        description="Fire concurrent mutations at an endpoint and check every response.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a probe from a JSON config file.")
    run.add_argument("config", help="Path to the run configuration (JSON).")
    run.add_argument("--vus", type=int, help="Override number of virtual users.")
    run.add_argument("--duration", help="Override run duration (e.g. 1s, 500ms, 2m).")
    run.add_argument("--target", help="Override target base URL.")
    run.add_argument(
        "--max-iterations", type=int, help="Cap requests per virtual user."
    )
    run.add_argument(
        "--json", action="store_true", help="Print the report as JSON to stdout."
    )
    run.add_argument("--log-level", default="WARNING", help="Logging level.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    # .env supplies RACEPROBE_TOKEN / RACEPROBE_TARGET without putting secrets in configs.
    load_dotenv()
    args = _parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_run_config(
            args.config,
            overrides={
                "vus": args.vus,
                "duration": args.duration,
                "target": args.target,
                "max_iterations": args.max_iterations,
            },
        )
        report = run_probe(config)
    except ProbeConfigError as exc:
        print(json.dumps(exc.to_dict(), ensure_ascii=True, default=str), file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except SchedulerTimeout as exc:
        print(json.dumps(exc.to_dict(), ensure_ascii=True, default=str), file=sys.stderr)
        return EXIT_INCONCLUSIVE

    if args.json:
        print(json.dumps(report.to_log_dict(), ensure_ascii=True))
    else:
        print(format_report(report))
    return report.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
