from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, Optional

from . import __version__, configure_logging, get_logger
from .config import load_run_config
from .errors import ConfigError, InputDataError, OptimizerError, ProjectionDefect
from .reports.render import render_run_report, write_run_report
from .runner import run


logger = get_logger(__name__)


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    out: Dict[str, Any] = {"data": {}, "projection": {}, "search": {}, "runtime": {}, "report": {}}
    if args.returns is not None:
        out["data"]["returns_csv"] = args.returns
    if args.date_column is not None:
        out["data"]["date_column"] = args.date_column
    if args.max_weight is not None:
        out["projection"]["max_weight"] = args.max_weight
    if args.min_nonzero_weight is not None:
        out["projection"]["min_nonzero_weight"] = args.min_nonzero_weight
    if args.method is not None:
        out["search"]["method"] = args.method
    if args.max_evaluations is not None:
        out["search"]["max_evaluations"] = args.max_evaluations
    if args.max_sweeps is not None:
        out["search"]["max_sweeps"] = args.max_sweeps
    if args.local_search is not None:
        out["search"]["local_search"] = args.local_search
    if args.seed is not None:
        out["search"]["seed"] = args.seed
    if args.no_thread:
        out["runtime"]["use_worker_thread"] = False
    if args.output is not None:
        out["report"]["output_dir"] = args.output
    if args.md:
        out["report"]["write_markdown"] = True
    if args.top is not None:
        out["report"]["top_n"] = args.top
    return {k: v for k, v in out.items() if v}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="maxsharpe", description="Capped long-only max-Sharpe allocation search")
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--returns", type=str, default=None)
    parser.add_argument("--date-column", type=str, default=None)
    parser.add_argument("--max-weight", type=float, default=None)
    parser.add_argument("--min-nonzero-weight", type=float, default=None)
    parser.add_argument("--method", type=str, default=None, choices=["direct", "differential_evolution"])
    parser.add_argument("--max-evaluations", type=int, default=None)
    parser.add_argument("--max-sweeps", type=int, default=None)
    parser.add_argument("--local-search", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--output", type=str, default=None)
    parser.add_argument("--md", action="store_true")
    parser.add_argument("--top", type=int, default=None)
    parser.add_argument("--no-thread", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--version", action="version", version=__version__)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        cfg = load_run_config(args.config, overrides=_overrides(args))
        result = run(cfg)
    except (ConfigError, InputDataError) as e:
        logger.error("Invalid input: %s", e)
        return 2
    except (ProjectionDefect, OptimizerError) as e:
        logger.exception("Run aborted: %s", e)
        return 1

    print(render_run_report(result, top_n=cfg.report.top_n))
    if cfg.report.write_markdown:
        _, path = write_run_report(result, output_dir=cfg.report.output_dir, top_n=cfg.report.top_n)
        print(str(path))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
