"""
Global search over the weight box, behind one entry point:

    minimize(objective, lower, upper, control) -> OptimizerOutcome

Backends are scipy.optimize routines. ``direct`` (DIRECT, a deterministic
recursive box-partitioning search) is the default; ``differential_evolution``
is the population-based alternative. Control parameters map as follows:

=================  ==========================  ==============================
SearchConfig       direct                      differential_evolution
=================  ==========================  ==============================
max_sweeps         maxiter                     maxiter (capped by budget)
max_evaluations    maxfun                      maxiter * popsize * N budget
max_depth          len_tol = 1 / max_depth     unused
local_search       L-BFGS-B polish maxiter     L-BFGS-B polish maxiter
local_tolerance    L-BFGS-B ftol               L-BFGS-B ftol
seed               unused                      seed
hessian_sparsity   validated, unused           validated, unused
=================  ==========================  ==============================

The polish runs from the global best with whatever evaluation budget is left
and is kept only if it improves the value.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

import numpy as np
from scipy import optimize

from .. import get_logger
from ..config import SearchConfig
from ..errors import OptimizerError, ProjectionDefect
from ..types import OptimizerOutcome


logger = get_logger(__name__)

# stands in for NaN/inf objective values so the backends never see them
NONFINITE_SCORE = 1.0e10

DE_POPSIZE = 15

Objective = Callable[[np.ndarray], float]


class _TolerantObjective:
    def __init__(self, fn: Objective) -> None:
        self.fn = fn
        self.calls = 0
        self.nonfinite = 0

    def __call__(self, x: np.ndarray) -> float:
        self.calls += 1
        v = float(self.fn(x))
        if not np.isfinite(v):
            self.nonfinite += 1
            return NONFINITE_SCORE
        return v


def _run_direct(fn: _TolerantObjective, bounds: optimize.Bounds, control: SearchConfig) -> optimize.OptimizeResult:
    return optimize.direct(
        fn,
        bounds,
        maxfun=int(control.max_evaluations),
        maxiter=int(control.max_sweeps),
        locally_biased=True,
        len_tol=1.0 / float(control.max_depth),
    )


def _run_differential_evolution(
    fn: _TolerantObjective, bounds: optimize.Bounds, control: SearchConfig
) -> optimize.OptimizeResult:
    n = int(bounds.lb.size)
    per_generation = DE_POPSIZE * n
    maxiter = min(int(control.max_sweeps), max(1, int(control.max_evaluations) // per_generation - 1))
    return optimize.differential_evolution(
        fn,
        bounds,
        maxiter=maxiter,
        popsize=DE_POPSIZE,
        seed=control.seed,
        polish=False,
        updating="immediate",
    )


_BACKENDS: Dict[str, Callable[[_TolerantObjective, optimize.Bounds, SearchConfig], optimize.OptimizeResult]] = {
    "direct": _run_direct,
    "differential_evolution": _run_differential_evolution,
}


def _polish(
    fn: _TolerantObjective,
    x0: np.ndarray,
    bounds: optimize.Bounds,
    control: SearchConfig,
    budget: int,
) -> Optional[optimize.OptimizeResult]:
    if control.local_search <= 0 or budget <= 0:
        return None
    return optimize.minimize(
        fn,
        x0,
        method="L-BFGS-B",
        bounds=bounds,
        options={
            "maxiter": int(control.local_search),
            "maxfun": int(budget),
            "ftol": float(control.local_tolerance),
        },
    )


def minimize(
    objective: Objective,
    lower: np.ndarray,
    upper: np.ndarray,
    control: SearchConfig,
) -> OptimizerOutcome:
    lo = np.asarray(lower, dtype=float).reshape(-1)
    hi = np.asarray(upper, dtype=float).reshape(-1)
    if lo.shape != hi.shape:
        raise ValueError(f"bounds shapes differ: {lo.shape} vs {hi.shape}")
    if lo.size == 0:
        raise ValueError("bounds are empty")
    if not (hi > lo).all():
        raise ValueError("every upper bound must exceed its lower bound")
    control.validate()
    control.hessian_pattern(lo.size)

    backend = _BACKENDS[control.method]
    bounds = optimize.Bounds(lo, hi)
    fn = _TolerantObjective(objective)

    logger.info(
        "Starting %s search: %d dims, max_sweeps=%d, max_evaluations=%d",
        control.method,
        lo.size,
        control.max_sweeps,
        control.max_evaluations,
    )
    try:
        res = backend(fn, bounds, control)
    except ProjectionDefect:
        raise
    except (ValueError, RuntimeError, MemoryError) as e:
        raise OptimizerError(f"{control.method} search failed: {e}") from e

    x = np.clip(np.asarray(res.x, dtype=float), lo, hi)
    fun = float(res.fun)
    global_calls = fn.calls
    logger.debug("%s finished: fun=%.6g nfev=%d message=%s", control.method, fun, global_calls, res.message)

    local_nfev = 0
    budget = int(control.max_evaluations) - global_calls
    try:
        local = _polish(fn, x, bounds, control, budget)
    except ProjectionDefect:
        raise
    except (ValueError, RuntimeError) as e:
        raise OptimizerError(f"local search failed: {e}") from e
    if local is not None:
        local_nfev = fn.calls - global_calls
        if float(local.fun) < fun:
            logger.debug("Local search improved %.6g -> %.6g", fun, float(local.fun))
            x = np.clip(np.asarray(local.x, dtype=float), lo, hi)
            fun = float(local.fun)

    if fn.nonfinite:
        logger.debug("%d evaluations returned NaN/inf", fn.nonfinite)

    success = bool(getattr(res, "success", False))
    status = int(getattr(res, "status", 0 if success else 1))
    outcome = OptimizerOutcome(
        x=x,
        fun=fun,
        success=success,
        status=status,
        message=str(getattr(res, "message", "")),
        method=control.method,
        nfev=fn.calls,
        nit=int(getattr(res, "nit", 0)),
        local_nfev=local_nfev,
    )
    logger.info(
        "Search finished: fun=%.6g nfev=%d status=%d success=%s (%s)",
        fun,
        outcome.nfev,
        status,
        success,
        outcome.message,
    )
    return outcome
