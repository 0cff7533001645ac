from __future__ import annotations

from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
import logging


def _resolve_version() -> str:
    try:
        return metadata.version("maxsharpe")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__version__ = _resolve_version()


@dataclass(frozen=True)
class RuntimePaths:
    """Where configs are read from, reports are written to and templates live."""

    repo_root: Path
    configs: Path
    reports: Path
    templates: Path

    @staticmethod
    def discover() -> "RuntimePaths":
        package_dir = Path(__file__).resolve().parent
        # src/maxsharpe -> repo root in a checkout or an editable install
        root = next((p for p in package_dir.parents if (p / "pyproject.toml").exists()), package_dir.parents[1])
        return RuntimePaths(
            repo_root=root,
            configs=root / "configs",
            reports=root / "outputs" / "reports",
            templates=package_dir / "reports" / "templates",
        )


paths = RuntimePaths.discover()


default_log_format = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
default_log_datefmt = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    logging.basicConfig(level=level, format=default_log_format, datefmt=default_log_datefmt)


def get_logger(name: str = "maxsharpe") -> logging.Logger:
    return logging.getLogger(name)


__all__ = [
    "__version__",
    "RuntimePaths",
    "paths",
    "configure_logging",
    "get_logger",
]
