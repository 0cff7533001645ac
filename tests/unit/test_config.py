import numpy as np
import pytest
import yaml

from maxsharpe import paths
from maxsharpe.config import (
    MACHINE_EPSILON,
    ProjectionConfig,
    RunConfig,
    SearchConfig,
    ensure_config_file,
    load_run_config,
)
from maxsharpe.errors import ConfigError


ENV_KEYS = (
    "MAXSHARPE_RETURNS_CSV",
    "MAXSHARPE_MAX_WEIGHT",
    "MAXSHARPE_MIN_NONZERO_WEIGHT",
    "MAXSHARPE_METHOD",
    "MAXSHARPE_MAX_EVALUATIONS",
)


@pytest.fixture
def clean_env(monkeypatch):
    for k in ENV_KEYS:
        monkeypatch.delenv(k, raising=False)
    return monkeypatch


def test_defaults_follow_the_reference_run():
    cfg = RunConfig()
    assert cfg.projection.max_weight == 0.1
    assert cfg.projection.min_nonzero_weight == 0.0
    assert cfg.projection.min_active_assets == 11
    assert cfg.projection.max_iterations == 2000
    assert cfg.search.max_sweeps == 1000
    assert cfg.search.max_evaluations == 2_000_000
    assert cfg.search.local_search == 100
    assert cfg.search.local_tolerance == MACHINE_EPSILON
    assert cfg.search.max_depth == 2000
    assert cfg.runtime.stack_size_mb == 32


def test_missing_file_gives_defaults(tmp_path, clean_env):
    cfg = load_run_config(tmp_path / "absent.yaml")
    assert cfg == RunConfig()


def test_yaml_file_is_merged_over_defaults(tmp_path, clean_env):
    path = tmp_path / "run.yaml"
    path.write_text(
        yaml.safe_dump({"projection": {"max_weight": 0.2}, "search": {"method": "differential_evolution", "seed": 3}}),
        encoding="utf-8",
    )
    cfg = load_run_config(path)
    assert cfg.projection.max_weight == 0.2
    assert cfg.projection.max_iterations == 2000
    assert cfg.search.method == "differential_evolution"
    assert cfg.search.seed == 3


def test_env_overrides_file_and_explicit_overrides_win(tmp_path, clean_env):
    path = tmp_path / "run.yaml"
    path.write_text(yaml.safe_dump({"projection": {"max_weight": 0.2}}), encoding="utf-8")
    clean_env.setenv("MAXSHARPE_MAX_WEIGHT", "0.15")
    clean_env.setenv("MAXSHARPE_MAX_EVALUATIONS", "5000")

    cfg = load_run_config(path)
    assert cfg.projection.max_weight == 0.15
    assert cfg.search.max_evaluations == 5000

    cfg = load_run_config(path, overrides={"projection": {"max_weight": 0.25}})
    assert cfg.projection.max_weight == 0.25


def test_bad_env_value_is_a_config_error(tmp_path, clean_env):
    clean_env.setenv("MAXSHARPE_MAX_WEIGHT", "lots")
    with pytest.raises(ConfigError):
        load_run_config(tmp_path / "absent.yaml")


def test_non_mapping_yaml_is_rejected(tmp_path, clean_env):
    path = tmp_path / "run.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_run_config(path)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_weight": 0.0},
        {"max_weight": 1.5},
        {"min_nonzero_weight": -0.1},
        {"max_weight": 0.1, "min_nonzero_weight": 0.2},
        {"min_active_assets": 0},
        {"max_iterations": 0},
    ],
)
def test_projection_validation(kwargs):
    with pytest.raises(ConfigError):
        ProjectionConfig(**kwargs).validate()


def test_cap_must_allow_the_smallest_active_set_to_sum_to_one():
    ProjectionConfig(max_weight=0.1, min_active_assets=10).validate(206)
    with pytest.raises(ConfigError, match="raise min_active_assets to at least 20"):
        ProjectionConfig(max_weight=0.05).validate(206)
    ProjectionConfig(max_weight=0.05, min_active_assets=20).validate(206)


def test_cap_must_allow_a_full_allocation():
    ProjectionConfig(max_weight=0.1).validate(10)
    with pytest.raises(ConfigError, match="cannot sum to 1"):
        ProjectionConfig(max_weight=0.1).validate(9)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"method": "mcs"},
        {"max_sweeps": 0},
        {"max_evaluations": 0},
        {"local_search": -1},
        {"local_tolerance": 0.0},
        {"max_depth": 1},
        {"hessian_sparsity": "sparse"},
    ],
)
def test_search_validation(kwargs):
    with pytest.raises(ConfigError):
        SearchConfig(**kwargs).validate()


def test_hessian_hint_dense_and_explicit():
    np.testing.assert_array_equal(SearchConfig().hessian_pattern(3), np.ones((3, 3)))
    cfg = SearchConfig.from_dict({"hessian_sparsity": [[1, 0], [0, 1]]})
    np.testing.assert_array_equal(cfg.hessian_pattern(2), np.eye(2))
    with pytest.raises(ConfigError):
        cfg.hessian_pattern(3)


def test_integer_strings_with_underscores():
    cfg = SearchConfig.from_dict({"max_evaluations": "2_000_000"})
    assert cfg.max_evaluations == 2_000_000


def test_ensure_config_file_round_trips(tmp_path, clean_env):
    path = ensure_config_file(tmp_path / "configs" / "run.yaml")
    assert path.exists()
    assert load_run_config(path) == RunConfig()


def test_shipped_config_keeps_reports_under_the_repo_root(clean_env):
    cfg = load_run_config(paths.configs / "run.yaml")
    assert cfg.report.output_dir == paths.reports
    assert cfg.data.n_assets == 206
