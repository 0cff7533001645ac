import numpy as np
import pytest

from maxsharpe.config import SearchConfig
from maxsharpe.errors import ConfigError, ProjectionDefect
from maxsharpe.optimize.search import NONFINITE_SCORE, minimize


TARGET = np.array([0.3, 0.6, 0.2])


def _bowl(x):
    return float(np.sum((np.asarray(x) - TARGET) ** 2))


LOWER = np.zeros(3)
UPPER = np.ones(3)


def test_direct_finds_the_bowl_minimum():
    control = SearchConfig(max_evaluations=2000, max_sweeps=200, local_search=0)
    out = minimize(_bowl, LOWER, UPPER, control)
    assert out.method == "direct"
    assert out.fun < 1e-3
    assert out.local_nfev == 0
    assert out.nfev > 0
    assert ((out.x >= LOWER) & (out.x <= UPPER)).all()
    assert out.fun == pytest.approx(_bowl(out.x))


def test_local_search_polishes_the_global_result():
    control = SearchConfig(max_evaluations=1000, max_sweeps=3, local_search=50, local_tolerance=1e-14)
    out = minimize(_bowl, LOWER, UPPER, control)
    assert out.local_nfev > 0
    assert out.fun < 1e-8
    np.testing.assert_allclose(out.x, TARGET, atol=1e-4)


def test_status_and_message_are_reported():
    control = SearchConfig(max_evaluations=50, max_sweeps=1000, local_search=0)
    out = minimize(_bowl, LOWER, UPPER, control)
    assert isinstance(out.status, int)
    assert isinstance(out.message, str) and out.message
    assert isinstance(out.success, bool)


def test_differential_evolution_backend():
    control = SearchConfig(method="differential_evolution", max_evaluations=3000, max_sweeps=100, local_search=0, seed=0)
    out = minimize(_bowl, LOWER, UPPER, control)
    assert out.method == "differential_evolution"
    assert out.fun < 1e-2


def test_non_finite_values_are_treated_as_worst():
    def objective(x):
        if x[0] < 0.25:
            return float("nan")
        return _bowl(x)

    control = SearchConfig(max_evaluations=1500, max_sweeps=200, local_search=0)
    out = minimize(objective, LOWER, UPPER, control)
    assert np.isfinite(out.fun)
    assert out.fun < NONFINITE_SCORE
    assert out.x[0] >= 0.25


def test_projection_defect_is_not_wrapped():
    def objective(x):
        raise ProjectionDefect("boom")

    control = SearchConfig(method="differential_evolution", max_evaluations=500, local_search=0, seed=1)
    with pytest.raises(ProjectionDefect, match="boom"):
        minimize(objective, LOWER, UPPER, control)


def test_invalid_bounds_are_rejected():
    control = SearchConfig(max_evaluations=100, local_search=0)
    with pytest.raises(ValueError):
        minimize(_bowl, np.zeros(3), np.ones(2), control)
    with pytest.raises(ValueError):
        minimize(_bowl, np.ones(3), np.ones(3), control)


def test_invalid_control_is_rejected():
    with pytest.raises(ConfigError):
        minimize(_bowl, LOWER, UPPER, SearchConfig(method="mcs"))
    with pytest.raises(ConfigError):
        minimize(_bowl, LOWER, UPPER, SearchConfig(hessian_sparsity=((1.0,),)))
