from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from .. import get_logger
from ..data.loaders import load_returns_csv
from ..data.validators import check_covariance, validate_returns_frame
from ..types import ReturnStatistics


logger = get_logger(__name__)


def sample_statistics(returns: pd.DataFrame, *, ddof: int = 1) -> ReturnStatistics:
    df, res = validate_returns_frame(returns, "returns", min_rows=int(ddof) + 1)
    x = df.to_numpy(dtype=float, copy=False)
    mean = x.mean(axis=0)
    cov = np.cov(x, rowvar=False, ddof=int(ddof))
    cov = np.atleast_2d(cov)
    check_covariance(cov)
    return ReturnStatistics(
        assets=tuple(str(c) for c in df.columns),
        mean=mean,
        cov=cov,
        n_obs=res.rows,
    )


def _log_preview(stats: ReturnStatistics, k: int = 5) -> None:
    n = stats.n_assets
    k = min(int(k), n)
    head = np.array2string(stats.mean[:k], precision=6)
    tail = np.array2string(stats.mean[n - k :], precision=6)
    block = np.array2string(stats.cov[:k, :k], precision=6)
    logger.info("Historical mean (first %d): %s", k, head)
    logger.info("Historical mean (last %d): %s", k, tail)
    logger.info("Covariance (first %d rows and cols):\n%s", k, block)


def load_statistics(
    path: Union[str, Path],
    *,
    date_col: str = "date",
    expected_assets: Optional[int] = None,
) -> ReturnStatistics:
    """
    Read the returns file and estimate mean and covariance in one step.

    Called once per run; the result is immutable and gets handed to the
    objective rather than cached at module level.
    """
    df = load_returns_csv(path, date_col=date_col, expected_assets=expected_assets)
    stats = sample_statistics(df)
    _log_preview(stats)
    return stats
