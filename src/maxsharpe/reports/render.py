from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound

from .. import get_logger, paths
from ..types import RunResult


logger = get_logger(__name__)

DEFAULT_TEMPLATE = "run_report.md.j2"


def _as_path(p: Union[str, Path]) -> Path:
    return p if isinstance(p, Path) else Path(str(p))


def _slug(text: str) -> str:
    s = "".join(ch.lower() if ch.isalnum() else "_" for ch in str(text).strip())
    while "__" in s:
        s = s.replace("__", "_")
    return s.strip("_") or "report"


def _to_plain(obj: Any) -> Any:
    if obj is None:
        return None
    if is_dataclass(obj):
        return {k: _to_plain(v) for k, v in asdict(obj).items()}
    if isinstance(obj, dict):
        return {str(k): _to_plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_plain(v) for v in obj]
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Path):
        return str(obj)
    return obj


def _format_number(x: Any, digits: int = 4) -> Any:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return x
    if v != v:
        return "nan"
    if v in (float("inf"), float("-inf")):
        return "inf" if v > 0 else "-inf"
    return f"{v:.{int(digits)}f}"


def _env(template_dir: Union[str, Path]) -> Environment:
    loader = FileSystemLoader(str(_as_path(template_dir)))
    e = Environment(
        loader=loader,
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    e.filters["num"] = _format_number
    return e


def _payload(result: RunResult, top_n: Optional[int]) -> Dict[str, Any]:
    d = result.as_dict()
    d["weights"] = result.weights_by_asset(top_n)
    return _to_plain(d)


def _default_text(report: Dict[str, Any]) -> str:
    outcome = report["outcome"]
    figures = report["figures"]
    lines = [
        f"Best weights ({report['n_holdings']} holdings):",
    ]
    for asset, w in report["weights"].items():
        lines.append(f"  {asset}: {_format_number(w, 6)}")
    lines.append(f"Exit status: {outcome['status']} ({outcome['message']})")
    lines.append(f"Best objective value: {_format_number(outcome['fun'], 8)}")
    lines.append(f"Sharpe ratio: {_format_number(figures['ratio'], 6)}")
    return "\n".join(lines) + "\n"


def render_run_report(
    result: RunResult,
    *,
    template_dir: Union[str, Path] = paths.templates,
    template_name: str = DEFAULT_TEMPLATE,
    top_n: Optional[int] = None,
) -> str:
    report = _payload(result, top_n)
    try:
        t = _env(template_dir).get_template(template_name)
    except TemplateNotFound:
        logger.warning("Template %s not found in %s, using plain text", template_name, template_dir)
        return _default_text(report)
    return t.render(report=report)


def write_run_report(
    result: RunResult,
    *,
    output_dir: Union[str, Path] = paths.reports,
    filename: Optional[str] = None,
    template_dir: Union[str, Path] = paths.templates,
    top_n: Optional[int] = None,
) -> Tuple[str, Path]:
    out_dir = _as_path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    stamp = _slug(result.created_at.strftime("%Y%m%d_%H%M%S"))
    fname = filename or f"run_report_{_slug(result.outcome.method)}_{stamp}.md"
    out_path = out_dir / fname
    text = render_run_report(result, template_dir=template_dir, top_n=top_n)
    out_path.write_text(text, encoding="utf-8")
    logger.info("Report written to %s", out_path)
    return text, out_path
