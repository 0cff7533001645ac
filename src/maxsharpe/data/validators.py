from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

import numpy as np
import pandas as pd

from .. import get_logger
from ..errors import InputDataError


logger = get_logger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    name: str
    rows: int
    cols: int
    dropped_rows: int
    first_period: Optional[Any]
    last_period: Optional[Any]


def _require_non_empty(df: pd.DataFrame, name: str) -> None:
    if df is None:
        raise InputDataError(f"{name}: is None")
    if len(df) == 0:
        raise InputDataError(f"{name}: empty")
    if df.shape[1] == 0:
        raise InputDataError(f"{name}: no columns")


def _require_unique_columns(df: pd.DataFrame, name: str) -> None:
    if df.columns.has_duplicates:
        dup = df.columns[df.columns.duplicated()].unique()
        raise InputDataError(f"{name}: duplicate columns: {list(dup)[:10]}")


def _require_numeric(df: pd.DataFrame, name: str) -> None:
    for c in df.columns:
        if not pd.api.types.is_numeric_dtype(df[c].dtype):
            raise InputDataError(f"{name}: column {c} is not numeric: {df[c].dtype}")


def require_min_rows(df: pd.DataFrame, min_rows: int, name: str) -> None:
    if len(df) < int(min_rows):
        raise InputDataError(f"{name}: expected at least {int(min_rows)} rows, got {int(len(df))}")


def validate_returns_frame(
    df: pd.DataFrame,
    name: str = "returns",
    *,
    min_rows: int = 2,
    expected_columns: Optional[int] = None,
) -> Tuple[pd.DataFrame, ValidationResult]:
    _require_non_empty(df, name)
    _require_unique_columns(df, name)
    _require_numeric(df, name)

    out = df.astype(float).replace([np.inf, -np.inf], np.nan)
    before = len(out)
    out = out.dropna(how="any")
    dropped = before - len(out)
    if dropped:
        logger.warning("%s: dropped %d of %d rows with missing or non-finite values", name, dropped, before)

    require_min_rows(out, min_rows, name)
    if expected_columns is not None and out.shape[1] != int(expected_columns):
        raise InputDataError(f"{name}: expected {int(expected_columns)} asset columns, got {out.shape[1]}")

    res = ValidationResult(
        name=name,
        rows=int(len(out)),
        cols=int(out.shape[1]),
        dropped_rows=int(dropped),
        first_period=out.index[0] if len(out) else None,
        last_period=out.index[-1] if len(out) else None,
    )
    return out, res


def check_covariance(cov: np.ndarray, name: str = "cov", *, rtol: float = 1e-10) -> None:
    """
    Symmetry is required. A negative eigenvalue beyond round-off only warns,
    since a sample covariance is PSD by construction and a small violation
    means collinear or near-constant columns rather than bad input.
    """
    c = np.asarray(cov, dtype=float)
    if c.ndim != 2 or c.shape[0] != c.shape[1]:
        raise InputDataError(f"{name}: must be square, got {c.shape}")
    scale = float(np.max(np.abs(c))) if c.size else 0.0
    if not np.allclose(c, c.T, rtol=0.0, atol=rtol * max(scale, 1.0)):
        raise InputDataError(f"{name}: not symmetric")
    if scale == 0.0:
        logger.warning("%s: all entries are zero", name)
        return
    min_eig = float(np.linalg.eigvalsh(c).min())
    if min_eig < -rtol * scale * c.shape[0]:
        logger.warning("%s: not positive semidefinite (min eigenvalue %.3e)", name, min_eig)
