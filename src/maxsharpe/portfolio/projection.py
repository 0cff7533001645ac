"""
Map an arbitrary candidate vector from the search box onto a feasible
long-only allocation.

A feasible allocation has non-negative entries that sum to one, none above
``max_weight`` and every nonzero entry at or above ``min_nonzero_weight``.
The search proposes points in ``[0, max_weight]^N`` that satisfy none of the
aggregate constraints, so every objective evaluation goes through here.

Steps:

1. entries below ``min_nonzero_weight`` are set to exactly zero;
2. degenerate vectors (all zero, NaN/inf, too few active entries) are
   replaced by the uniform allocation and returned as is;
3. the vector is normalised to sum to one. When it summed to more than
   one this shrinks every entry and can drop survivors below
   ``min_nonzero_weight``, so those are zeroed and the rest renormalised,
   with step 2 repeated each time, until every nonzero entry clears the
   floor. The cap loop below never lowers an uncapped entry, so the floor
   still holds at the end;
4. while some entry exceeds the cap, everything is scaled so the largest
   entry sits exactly on the cap, capped entries are pinned, and the freed
   mass ``1 - scaling`` is handed back to the remaining nonzero entries in
   proportion to their current size. That can lift other entries over the
   cap, hence the loop;
5. the invariants are re-checked at ``100 * eps`` and any violation raises
   ``ProjectionDefect``.

``max_iterations`` (2000 by default) is an empirical limit on step 4, not a
proven bound. Exceeding it raises ``ProjectionConvergenceError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from ..config import MACHINE_EPSILON, ProjectionConfig
from ..errors import ProjectionConvergenceError, ProjectionDefect


EPS = MACHINE_EPSILON
CHECK_TOL = 100.0 * EPS

WeightsLike = Union[Sequence[float], np.ndarray]


@dataclass(frozen=True)
class Projection:
    weights: np.ndarray
    fallback: bool
    iterations: int


def uniform_weights(n_assets: int) -> np.ndarray:
    return np.full(int(n_assets), 1.0 / float(n_assets), dtype=float)


def _is_degenerate(w: np.ndarray, min_active: int) -> bool:
    if not np.isfinite(w).all():
        return True
    if float(w.max()) == 0.0:
        return True
    return int(np.count_nonzero(w > EPS)) < int(min_active)


def _check_invariants(w: np.ndarray, raw: np.ndarray, cap: float, floor: float) -> None:
    if not np.isfinite(w).all():
        raise ProjectionDefect("projected weights contain NaN/inf", raw=raw, weights=w)
    if (w < 0.0).any():
        raise ProjectionDefect(f"negative projected weight {float(w.min())!r}", raw=raw, weights=w)

    total = float(w.sum())
    if abs(total - 1.0) > CHECK_TOL:
        raise ProjectionDefect(f"projected weights sum to {total!r}, expected 1", raw=raw, weights=w)

    top = float(w.max())
    if top > cap + CHECK_TOL:
        raise ProjectionDefect(f"projected max weight {top!r} exceeds cap {cap!r}", raw=raw, weights=w)

    active = w[w > EPS]
    if active.size and float(active.min()) < floor - CHECK_TOL:
        raise ProjectionDefect(
            f"smallest nonzero weight {float(active.min())!r} is below floor {floor!r}", raw=raw, weights=w
        )


def project(raw: WeightsLike, limits: ProjectionConfig) -> Projection:
    r = np.asarray(raw, dtype=float).reshape(-1)
    n = r.size
    if n == 0:
        raise ValueError("raw weights are empty")

    cap = float(limits.max_weight)
    floor = float(limits.min_nonzero_weight)

    # np.where allocates, the caller's array is never written to
    w = np.where(r < floor, 0.0, r)

    if _is_degenerate(w, limits.min_active_assets):
        return Projection(weights=uniform_weights(n), fallback=True, iterations=0)

    w = w / w.sum()

    # normalising can push survivors under the floor; prune until none are left
    while floor > 0.0:
        low = (w > 0.0) & (w < floor)
        if not low.any():
            break
        w[low] = 0.0
        if _is_degenerate(w, limits.min_active_assets):
            return Projection(weights=uniform_weights(n), fallback=True, iterations=0)
        w = w / w.sum()

    iterations = 0
    deficit = 0.0
    flex_sum = 0.0
    while float(w.max()) > cap + EPS:
        if iterations >= limits.max_iterations:
            raise ProjectionConvergenceError(
                f"cap redistribution did not settle after {iterations} passes",
                iterations=iterations,
                deficit=deficit,
                flex_sum=flex_sum,
                raw=r,
                weights=w,
            )
        iterations += 1

        scaling = cap / float(w.max())
        w = w * scaling
        deficit = 1.0 - scaling

        capped = w >= cap - EPS
        flex = ~capped & (w != 0.0)
        flex_sum = float(w[flex].sum())

        w[capped] = cap
        if flex_sum > 0.0:
            w[flex] += deficit * (w[flex] / flex_sum)

    _check_invariants(w, r, cap, floor)
    return Projection(weights=w, fallback=False, iterations=iterations)


def project_weights(raw: WeightsLike, limits: ProjectionConfig) -> np.ndarray:
    return project(raw, limits).weights
