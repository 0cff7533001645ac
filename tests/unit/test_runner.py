import threading

import numpy as np
import pandas as pd
import pytest

from maxsharpe.config import RunConfig
from maxsharpe.errors import ConfigError, InputDataError
from maxsharpe.portfolio.projection import CHECK_TOL
from maxsharpe.runner import optimize_portfolio, run, run_in_worker
from maxsharpe.types import ReturnStatistics


N_ASSETS = 12


def _write_returns(path, n_rows=60, seed=42):
    rng = np.random.default_rng(seed)
    cols = [f"A{i:02d}" for i in range(N_ASSETS)]
    drift = np.linspace(0.0, 0.002, N_ASSETS)
    data = rng.normal(drift, 0.01, (n_rows, N_ASSETS))
    df = pd.DataFrame(data, columns=cols)
    df.insert(0, "date", pd.date_range("2023-01-02", periods=n_rows, freq="B").strftime("%Y-%m-%d"))
    df.to_csv(path, index=False)
    return path


def _cfg(csv_path, **search):
    base_search = {"max_evaluations": 600, "max_sweeps": 20, "local_search": 0}
    base_search.update(search)
    return RunConfig.from_dict(
        {
            "data": {"returns_csv": str(csv_path), "n_assets": N_ASSETS},
            "projection": {"max_weight": 0.2},
            "search": base_search,
        }
    )


def test_end_to_end_run_gives_feasible_weights(tmp_path):
    cfg = _cfg(_write_returns(tmp_path / "rets.csv"))
    result = run(cfg)

    w = result.weights
    assert w.shape == (N_ASSETS,)
    assert (w >= 0.0).all()
    assert w.sum() == pytest.approx(1.0, abs=1e-12)
    assert w.max() <= 0.2 + CHECK_TOL
    assert result.statistics.n_assets == N_ASSETS
    assert result.figures.ratio == pytest.approx(-result.outcome.fun)


def test_run_without_worker_thread_matches_threaded_run(tmp_path):
    csv_path = _write_returns(tmp_path / "rets.csv")
    threaded = run(_cfg(csv_path))
    inline = run(_cfg(csv_path).with_overrides({"runtime": {"use_worker_thread": False}}))
    np.testing.assert_array_equal(threaded.weights, inline.weights)
    assert threaded.outcome.fun == inline.outcome.fun


def test_run_rejects_bad_input_before_searching(tmp_path):
    with pytest.raises(InputDataError):
        run(_cfg(tmp_path / "missing.csv"))


def test_cap_too_small_for_universe_is_rejected():
    stats = ReturnStatistics(assets=tuple("ABC"), mean=[0.1, 0.2, 0.3], cov=np.eye(3), n_obs=10)
    cfg = RunConfig.from_dict({"projection": {"max_weight": 0.2, "min_active_assets": 5}})
    with pytest.raises(ConfigError):
        optimize_portfolio(stats, cfg)


def test_optimize_portfolio_prefers_the_better_asset():
    # two identical uncorrelated blocks, the second with a higher mean
    mean = np.r_[np.full(6, 0.01), np.full(6, 0.05)]
    stats = ReturnStatistics(assets=tuple(f"A{i}" for i in range(12)), mean=mean, cov=np.eye(12) * 0.01, n_obs=100)
    cfg = RunConfig.from_dict(
        {"projection": {"max_weight": 0.2}, "search": {"max_evaluations": 2000, "max_sweeps": 50, "local_search": 0}}
    )
    result = optimize_portfolio(stats, cfg)
    assert result.weights[6:].sum() > result.weights[:6].sum()


def test_run_in_worker_uses_a_separate_thread():
    name = run_in_worker(lambda: threading.current_thread().name, stack_size_mb=8, name="search-test")
    assert name == "search-test"


def test_run_in_worker_reraises_in_caller():
    def boom():
        raise ZeroDivisionError("inside worker")

    with pytest.raises(ZeroDivisionError, match="inside worker"):
        run_in_worker(boom, stack_size_mb=8)


def test_run_in_worker_restores_stack_size():
    before = threading.stack_size()
    run_in_worker(lambda: None, stack_size_mb=16)
    assert threading.stack_size() == before
