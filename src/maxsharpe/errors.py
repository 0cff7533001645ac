from __future__ import annotations

from typing import Optional

import numpy as np


class ConfigError(ValueError):
    """Run parameters are missing, malformed or mutually inconsistent."""


class InputDataError(ValueError):
    """The returns file cannot be turned into usable statistics."""


class ProjectionDefect(RuntimeError):
    """
    The projected weights broke one of their invariants.

    This is never an expected runtime condition: the degenerate inputs that a
    projection can legitimately receive are handled by the uniform fallback.
    The raw input and the offending vector are kept for post-mortem.
    """

    def __init__(
        self,
        message: str,
        *,
        raw: Optional[np.ndarray] = None,
        weights: Optional[np.ndarray] = None,
    ) -> None:
        super().__init__(message)
        self.raw = None if raw is None else np.array(raw, dtype=float, copy=True)
        self.weights = None if weights is None else np.array(weights, dtype=float, copy=True)


class ProjectionConvergenceError(ProjectionDefect):
    """Cap-and-redistribute did not settle within the iteration bound."""

    def __init__(
        self,
        message: str,
        *,
        iterations: int,
        deficit: float,
        flex_sum: float,
        raw: Optional[np.ndarray] = None,
        weights: Optional[np.ndarray] = None,
    ) -> None:
        super().__init__(message, raw=raw, weights=weights)
        self.iterations = int(iterations)
        self.deficit = float(deficit)
        self.flex_sum = float(flex_sum)


class OptimizerError(RuntimeError):
    """The search backend failed before producing a result."""


__all__ = [
    "ConfigError",
    "InputDataError",
    "ProjectionDefect",
    "ProjectionConvergenceError",
    "OptimizerError",
]
