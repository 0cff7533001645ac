from __future__ import annotations

import threading
from typing import Any, Callable, Dict, TypeVar

from . import get_logger
from .config import RunConfig
from .optimize.search import minimize
from .portfolio.objective import SharpeObjective, portfolio_figures
from .portfolio.statistics import load_statistics
from .types import ReturnStatistics, RunResult, SearchBounds


logger = get_logger(__name__)

T = TypeVar("T")


def run_in_worker(fn: Callable[[], T], *, stack_size_mb: int = 32, name: str = "maxsharpe-search") -> T:
    """
    Run `fn` on a single dedicated thread with an enlarged stack and wait
    for it. Whatever `fn` raises is raised again in the calling thread.
    """
    box: Dict[str, Any] = {}

    def _target() -> None:
        try:
            box["value"] = fn()
        except BaseException as e:
            box["error"] = e

    previous = threading.stack_size()
    threading.stack_size(int(stack_size_mb) * 1024 * 1024)
    try:
        worker = threading.Thread(target=_target, name=name)
        worker.start()
    finally:
        threading.stack_size(previous)
    worker.join()

    if "error" in box:
        raise box["error"]
    return box["value"]


def optimize_portfolio(stats: ReturnStatistics, cfg: RunConfig) -> RunResult:
    cfg.validate(stats.n_assets)
    bounds = SearchBounds.box(stats.n_assets, cfg.projection.max_weight)
    objective = SharpeObjective(stats=stats, limits=cfg.projection)

    outcome = minimize(objective, bounds.lower, bounds.upper, cfg.search)

    best = objective.project(outcome.x)
    figures = portfolio_figures(best.weights, stats)
    if best.fallback:
        logger.warning("Best point projects to the uniform fallback allocation")
    return RunResult(
        statistics=stats,
        outcome=outcome,
        weights=best.weights,
        figures=figures,
        fallback=best.fallback,
    )


def run(cfg: RunConfig) -> RunResult:
    cfg.validate()
    stats = load_statistics(
        cfg.data.returns_csv,
        date_col=cfg.data.date_column,
        expected_assets=cfg.data.n_assets,
    )
    if not cfg.runtime.use_worker_thread:
        return optimize_portfolio(stats, cfg)
    return run_in_worker(
        lambda: optimize_portfolio(stats, cfg),
        stack_size_mb=cfg.runtime.stack_size_mb,
    )
