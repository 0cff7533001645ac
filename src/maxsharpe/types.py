from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .errors import InputDataError


def _frozen_array(x: Any, ndim: int, name: str) -> np.ndarray:
    arr = np.array(x, dtype=float, copy=True)
    if arr.ndim != ndim:
        raise InputDataError(f"{name}: expected {ndim}-d array, got shape {arr.shape}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class ReturnStatistics:
    """
    Mean vector and sample covariance of per-asset returns.

    Built once before a run and shared read-only by every objective call.
    The arrays are copies with the write flag cleared, and the asset count
    is checked against both of them here so nothing downstream re-checks it.
    """

    assets: Tuple[str, ...]
    mean: np.ndarray
    cov: np.ndarray
    n_obs: int

    def __post_init__(self) -> None:
        assets = tuple(str(a) for a in self.assets)
        mean = _frozen_array(self.mean, 1, "mean")
        cov = _frozen_array(self.cov, 2, "cov")
        n = len(assets)
        if n == 0:
            raise InputDataError("statistics: no assets")
        if mean.shape != (n,):
            raise InputDataError(f"mean: expected length {n}, got {mean.shape[0]}")
        if cov.shape != (n, n):
            raise InputDataError(f"cov: expected {n}x{n}, got {cov.shape}")
        if not (np.isfinite(mean).all() and np.isfinite(cov).all()):
            raise InputDataError("statistics contain NaN/inf")
        object.__setattr__(self, "assets", assets)
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "cov", cov)
        object.__setattr__(self, "n_obs", int(self.n_obs))

    @property
    def n_assets(self) -> int:
        return len(self.assets)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "n_assets": self.n_assets,
            "n_obs": self.n_obs,
            "assets": list(self.assets),
        }


@dataclass(frozen=True)
class SearchBounds:
    lower: np.ndarray
    upper: np.ndarray

    @staticmethod
    def box(n_assets: int, max_weight: float) -> "SearchBounds":
        lower = np.zeros(int(n_assets), dtype=float)
        upper = np.full(int(n_assets), float(max_weight), dtype=float)
        lower.setflags(write=False)
        upper.setflags(write=False)
        return SearchBounds(lower=lower, upper=upper)


@dataclass(frozen=True)
class OptimizerOutcome:
    x: np.ndarray
    fun: float
    success: bool
    status: int
    message: str
    method: str
    nfev: int = 0
    nit: int = 0
    local_nfev: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "fun": float(self.fun),
            "success": bool(self.success),
            "status": int(self.status),
            "message": self.message,
            "method": self.method,
            "nfev": int(self.nfev),
            "nit": int(self.nit),
            "local_nfev": int(self.local_nfev),
        }


@dataclass(frozen=True)
class PortfolioFigures:
    expected_return: float
    volatility: float
    ratio: float

    def as_dict(self) -> Dict[str, float]:
        return {
            "expected_return": float(self.expected_return),
            "volatility": float(self.volatility),
            "ratio": float(self.ratio),
        }


@dataclass(frozen=True)
class RunResult:
    statistics: ReturnStatistics
    outcome: OptimizerOutcome
    weights: np.ndarray
    figures: PortfolioFigures
    fallback: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    def weights_by_asset(self, top_n: Optional[int] = None, *, include_zero: bool = False) -> Dict[str, float]:
        pairs = [
            (a, float(w))
            for a, w in zip(self.statistics.assets, self.weights)
            if include_zero or w > 0.0
        ]
        pairs.sort(key=lambda kv: kv[1], reverse=True)
        if top_n is not None:
            pairs = pairs[: int(top_n)]
        return dict(pairs)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "created_at": self.created_at.replace(microsecond=0).isoformat(),
            "statistics": self.statistics.as_dict(),
            "outcome": self.outcome.as_dict(),
            "figures": self.figures.as_dict(),
            "fallback": bool(self.fallback),
            "weights": self.weights_by_asset(),
            "n_holdings": int(np.count_nonzero(self.weights)),
            "weight_sum": float(np.sum(self.weights)),
            "max_weight": float(np.max(self.weights)),
        }
