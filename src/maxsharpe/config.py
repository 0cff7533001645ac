from __future__ import annotations

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union
import math
import os

import numpy as np
import yaml

from . import paths
from .errors import ConfigError


MACHINE_EPSILON = float(np.finfo(float).eps)

SEARCH_METHODS = ("direct", "differential_evolution")

HessianHint = Union[str, Tuple[Tuple[float, ...], ...]]


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"YAML must be a mapping at top level: {path}")
    return dict(data)


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, Mapping) and isinstance(out.get(k), Mapping):
            out[k] = _deep_merge(dict(out[k]), v)
        else:
            out[k] = v
    return out


def _as_float(x: Any) -> float:
    if isinstance(x, bool):
        raise ConfigError("Bool is not a valid number for this field")
    if isinstance(x, (int, float)):
        return float(x)
    if isinstance(x, str):
        s = x.strip()
        if not s:
            raise ConfigError("Empty numeric string")
        try:
            return float(s)
        except ValueError as e:
            raise ConfigError(f"Not a number: {x!r}") from e
    raise ConfigError(f"Unsupported numeric type: {type(x)}")


def _as_int(x: Any) -> int:
    if isinstance(x, bool):
        raise ConfigError("Bool is not a valid int for this field")
    if isinstance(x, int):
        return int(x)
    if isinstance(x, float):
        if int(x) != x:
            raise ConfigError(f"Expected integer-like value, got {x}")
        return int(x)
    if isinstance(x, str):
        s = x.strip().replace("_", "")
        if not s:
            raise ConfigError("Empty integer string")
        try:
            return int(s)
        except ValueError as e:
            raise ConfigError(f"Not an integer: {x!r}") from e
    raise ConfigError(f"Unsupported int type: {type(x)}")


def _as_bool(x: Any) -> bool:
    if isinstance(x, bool):
        return x
    if isinstance(x, (int, float)):
        return bool(x)
    if isinstance(x, str):
        s = x.strip().lower()
        if s in {"true", "1", "yes", "y", "on"}:
            return True
        if s in {"false", "0", "no", "n", "off"}:
            return False
    raise ConfigError(f"Unsupported bool value: {x!r}")


def _as_optional_int(x: Any) -> Optional[int]:
    if x is None:
        return None
    if isinstance(x, str) and x.strip().lower() in {"", "none", "null"}:
        return None
    return _as_int(x)


def _get_env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(key)
    if val is None:
        return default
    val = val.strip()
    return val if val else default


def _get_env_float(key: str, default: Optional[float] = None) -> Optional[float]:
    val = _get_env_str(key)
    if val is None:
        return default
    return _as_float(val)


def _get_env_int(key: str, default: Optional[int] = None) -> Optional[int]:
    val = _get_env_str(key)
    if val is None:
        return default
    return _as_int(val)


@dataclass(frozen=True)
class DataConfig:
    returns_csv: Path = Path("rets.csv")
    date_column: str = "date"
    n_assets: Optional[int] = None

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "DataConfig":
        returns_csv = Path(str(d.get("returns_csv", "rets.csv")))
        date_column = str(d.get("date_column", "date"))
        n_assets = _as_optional_int(d.get("n_assets"))
        return DataConfig(returns_csv=returns_csv, date_column=date_column, n_assets=n_assets)


@dataclass(frozen=True)
class ProjectionConfig:
    max_weight: float = 0.1
    min_nonzero_weight: float = 0.0
    min_active_assets: int = 11
    max_iterations: int = 2000

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "ProjectionConfig":
        return ProjectionConfig(
            max_weight=_as_float(d.get("max_weight", 0.1)),
            min_nonzero_weight=_as_float(d.get("min_nonzero_weight", 0.0)),
            min_active_assets=_as_int(d.get("min_active_assets", 11)),
            max_iterations=_as_int(d.get("max_iterations", 2000)),
        )

    def validate(self, n_assets: Optional[int] = None) -> None:
        if not (0.0 < self.max_weight <= 1.0):
            raise ConfigError(f"max_weight must be in (0, 1], got {self.max_weight}")
        if not (0.0 <= self.min_nonzero_weight <= self.max_weight):
            raise ConfigError(
                f"min_nonzero_weight must be in [0, max_weight={self.max_weight}], got {self.min_nonzero_weight}"
            )
        if self.min_active_assets < 1:
            raise ConfigError("min_active_assets must be >= 1")
        if self.max_iterations < 1:
            raise ConfigError("max_iterations must be >= 1")
        # a point may keep as few as min_active_assets entries, each at most the cap
        if self.min_active_assets * self.max_weight < 1.0 - MACHINE_EPSILON:
            raise ConfigError(
                f"{self.min_active_assets} active assets capped at {self.max_weight} cannot sum to 1; "
                f"raise min_active_assets to at least {math.ceil(1.0 / self.max_weight - MACHINE_EPSILON)}"
            )
        if n_assets is not None and n_assets * self.max_weight < 1.0:
            raise ConfigError(
                f"{n_assets} assets capped at {self.max_weight} cannot sum to 1"
            )


@dataclass(frozen=True)
class SearchConfig:
    method: str = "direct"
    max_sweeps: int = 1_000
    max_evaluations: int = 2_000_000
    local_search: int = 100
    local_tolerance: float = MACHINE_EPSILON
    max_depth: int = 2_000
    hessian_sparsity: HessianHint = "dense"
    seed: Optional[int] = None

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "SearchConfig":
        hess_raw = d.get("hessian_sparsity", "dense")
        if isinstance(hess_raw, str):
            hess: HessianHint = hess_raw.strip().lower()
        elif isinstance(hess_raw, (list, tuple)):
            hess = tuple(tuple(_as_float(v) for v in row) for row in hess_raw)
        else:
            raise ConfigError("hessian_sparsity must be 'dense' or a square matrix")
        return SearchConfig(
            method=str(d.get("method", "direct")).lower().strip(),
            max_sweeps=_as_int(d.get("max_sweeps", 1_000)),
            max_evaluations=_as_int(d.get("max_evaluations", 2_000_000)),
            local_search=_as_int(d.get("local_search", 100)),
            local_tolerance=_as_float(d.get("local_tolerance", MACHINE_EPSILON)),
            max_depth=_as_int(d.get("max_depth", 2_000)),
            hessian_sparsity=hess,
            seed=_as_optional_int(d.get("seed")),
        )

    def validate(self) -> None:
        if self.method not in SEARCH_METHODS:
            raise ConfigError(f"Unsupported search method: {self.method}. Supported: {list(SEARCH_METHODS)}")
        if self.max_sweeps < 1:
            raise ConfigError("max_sweeps must be >= 1")
        if self.max_evaluations < 1:
            raise ConfigError("max_evaluations must be >= 1")
        if self.local_search < 0:
            raise ConfigError("local_search must be >= 0")
        if self.local_tolerance <= 0.0:
            raise ConfigError("local_tolerance must be > 0")
        if self.max_depth < 2:
            raise ConfigError("max_depth must be >= 2")
        if isinstance(self.hessian_sparsity, str) and self.hessian_sparsity != "dense":
            raise ConfigError(f"Unknown hessian_sparsity hint: {self.hessian_sparsity}")

    def hessian_pattern(self, n_assets: int) -> np.ndarray:
        if isinstance(self.hessian_sparsity, str):
            return np.ones((n_assets, n_assets), dtype=float)
        h = np.asarray(self.hessian_sparsity, dtype=float)
        if h.shape != (n_assets, n_assets):
            raise ConfigError(f"hessian_sparsity must be {n_assets}x{n_assets}, got {h.shape}")
        return h


@dataclass(frozen=True)
class RuntimeConfig:
    use_worker_thread: bool = True
    stack_size_mb: int = 32

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "RuntimeConfig":
        return RuntimeConfig(
            use_worker_thread=_as_bool(d.get("use_worker_thread", True)),
            stack_size_mb=_as_int(d.get("stack_size_mb", 32)),
        )


@dataclass(frozen=True)
class ReportConfig:
    output_dir: Path = paths.reports
    write_markdown: bool = False
    top_n: Optional[int] = None

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "ReportConfig":
        return ReportConfig(
            output_dir=Path(str(d.get("output_dir", str(paths.reports)))),
            write_markdown=_as_bool(d.get("write_markdown", False)),
            top_n=_as_optional_int(d.get("top_n")),
        )


@dataclass(frozen=True)
class RunConfig:
    data: DataConfig = field(default_factory=DataConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    def with_overrides(self, overrides: Mapping[str, Any]) -> "RunConfig":
        merged = _deep_merge(self.to_dict(), overrides)
        return RunConfig.from_dict(merged)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["data"]["returns_csv"] = str(self.data.returns_csv)
        d["report"]["output_dir"] = str(self.report.output_dir)
        hess = self.search.hessian_sparsity
        d["search"]["hessian_sparsity"] = hess if isinstance(hess, str) else [list(r) for r in hess]
        return d

    def validate(self, n_assets: Optional[int] = None) -> None:
        n = n_assets if n_assets is not None else self.data.n_assets
        if self.data.n_assets is not None and self.data.n_assets < 1:
            raise ConfigError("n_assets must be >= 1")
        self.projection.validate(n)
        self.search.validate()
        if self.runtime.stack_size_mb < 1:
            raise ConfigError("stack_size_mb must be >= 1")

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "RunConfig":
        return RunConfig(
            data=DataConfig.from_dict(d.get("data", {}) or {}),
            projection=ProjectionConfig.from_dict(d.get("projection", {}) or {}),
            search=SearchConfig.from_dict(d.get("search", {}) or {}),
            runtime=RuntimeConfig.from_dict(d.get("runtime", {}) or {}),
            report=ReportConfig.from_dict(d.get("report", {}) or {}),
        )


def _env_overrides() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    csv_path = _get_env_str("MAXSHARPE_RETURNS_CSV")
    if csv_path is not None:
        out = _deep_merge(out, {"data": {"returns_csv": csv_path}})
    max_w = _get_env_float("MAXSHARPE_MAX_WEIGHT")
    if max_w is not None:
        out = _deep_merge(out, {"projection": {"max_weight": max_w}})
    min_w = _get_env_float("MAXSHARPE_MIN_NONZERO_WEIGHT")
    if min_w is not None:
        out = _deep_merge(out, {"projection": {"min_nonzero_weight": min_w}})
    method = _get_env_str("MAXSHARPE_METHOD")
    if method is not None:
        out = _deep_merge(out, {"search": {"method": method}})
    nf = _get_env_int("MAXSHARPE_MAX_EVALUATIONS")
    if nf is not None:
        out = _deep_merge(out, {"search": {"max_evaluations": nf}})
    return out


def load_run_config(path: Optional[Union[str, Path]] = None, overrides: Optional[Mapping[str, Any]] = None) -> RunConfig:
    """
    Defaults, then the YAML file, then MAXSHARPE_* environment variables,
    then explicit overrides. The result is validated before it is returned.
    """
    cfg = RunConfig()
    config_path = Path(path) if path is not None else (paths.configs / "run.yaml")
    file_data = _read_yaml(config_path)
    if file_data:
        cfg = cfg.with_overrides(file_data)
    env = _env_overrides()
    if env:
        cfg = cfg.with_overrides(env)
    if overrides:
        cfg = cfg.with_overrides(overrides)
    cfg.validate()
    return cfg


def ensure_config_file(path: Optional[Union[str, Path]] = None) -> Path:
    config_path = Path(path) if path is not None else (paths.configs / "run.yaml")
    config_path.parent.mkdir(parents=True, exist_ok=True)
    if not config_path.exists():
        with config_path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(RunConfig().to_dict(), f, sort_keys=False)
    return config_path
