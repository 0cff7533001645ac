from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import pandas as pd

from .. import get_logger
from ..errors import InputDataError
from .validators import validate_returns_frame


logger = get_logger(__name__)


def load_returns_csv(
    path: Union[str, Path],
    *,
    date_col: str = "date",
    expected_assets: Optional[int] = None,
) -> pd.DataFrame:
    """
    Load a CSV of per-period asset returns.

    The file needs a header row. `date_col` identifies the period and becomes
    the index; every other column is one asset. The period values are kept
    as read, they are only used for ordering in the log output.
    """
    p = Path(path)
    if not p.exists():
        raise InputDataError(f"Returns file not found: {p}")
    try:
        df = pd.read_csv(p)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise InputDataError(f"Could not parse returns file {p}: {e}") from e

    if date_col not in df.columns:
        raise InputDataError(
            "CSV missing required period column '" + date_col + "'. Found: " + str(list(df.columns)[:10])
        )
    df = df.set_index(date_col)
    df.columns = [str(c).strip() for c in df.columns]

    df, res = validate_returns_frame(df, p.name, expected_columns=expected_assets)
    logger.info(
        "Loaded %s: %d periods x %d assets (%s .. %s)",
        p.name,
        res.rows,
        res.cols,
        res.first_period,
        res.last_period,
    )
    return df
