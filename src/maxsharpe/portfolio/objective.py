from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..config import ProjectionConfig
from ..types import PortfolioFigures, ReturnStatistics
from .projection import Projection, WeightsLike, project


def portfolio_figures(weights: WeightsLike, stats: ReturnStatistics) -> PortfolioFigures:
    # zero or round-off-negative variance gives inf/NaN, never an exception
    w = np.asarray(weights, dtype=float).reshape(-1)
    with np.errstate(divide="ignore", invalid="ignore"):
        ret = np.dot(w, stats.mean)
        var = np.dot(w, stats.cov @ w)
        vol = np.sqrt(var)
        ratio = np.divide(ret, vol)
    return PortfolioFigures(expected_return=float(ret), volatility=float(vol), ratio=float(ratio))


@dataclass(frozen=True)
class SharpeObjective:
    """
    Negated return/volatility of the projected allocation.

    Depends only on the immutable statistics and the raw point, so a single
    instance can be called any number of times from any thread.
    """

    stats: ReturnStatistics
    limits: ProjectionConfig

    def project(self, raw: WeightsLike) -> Projection:
        return project(raw, self.limits)

    def figures(self, raw: WeightsLike) -> PortfolioFigures:
        return portfolio_figures(self.project(raw).weights, self.stats)

    def __call__(self, raw: WeightsLike) -> float:
        return -self.figures(raw).ratio
