"""Chart discovery helpers for ChartVerifier."""

import os
from pathlib import Path
from typing import Iterable, List, Optional

import yaml

from chartverifier.errors import VerifierError
from chartverifier.errors_catalog import actionable_error
from chartverifier.models import ChartInfo

CHART_FILE = "Chart.yaml"


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().strip("'\"").strip()
    return text or None


def parse_chart_file(chart_file: Path, relative_path: str) -> Optional[ChartInfo]:
    try:
        parsed = yaml.safe_load(chart_file.read_text(encoding="utf-8"))
    except (yaml.YAMLError, OSError) as exc:
        raise VerifierError(f"Invalid chart file '{chart_file}': {exc}") from exc

    if not isinstance(parsed, dict):
        return None

    name = _clean(parsed.get("name"))
    if not name:
        return None

    version = _clean(parsed.get("version"))
    app_version = _clean(parsed.get("appVersion"))
    if not app_version and version:
        app_version = f"v{version}"

    return ChartInfo(name=name, version=version, app_version=app_version, path=relative_path)


def read_chart(chart_dir: str) -> ChartInfo:
    chart_file = Path(chart_dir) / CHART_FILE
    if not chart_file.is_file():
        raise VerifierError(actionable_error("chart_not_found", path=chart_dir))

    info = parse_chart_file(chart_file, str(chart_dir))
    if info is None:
        raise VerifierError(f"Chart file '{chart_file}' does not declare a chart name.")
    return info


def find_charts(root: str, exclusions: Iterable[str] = ()) -> List[ChartInfo]:
    """Walks ``root`` for Chart.yaml files.

    Charts without a name, or whose name is listed in ``exclusions``, are
    skipped. Paths are relative to ``root`` using forward slashes and the
    result is ordered shallowest first, then by chart name.
    """
    base = Path(root)
    if not base.is_dir():
        return []

    excluded = set(exclusions)
    charts: List[ChartInfo] = []

    for current_root, dirs, files in os.walk(base):
        dirs.sort()
        if CHART_FILE not in files:
            continue

        chart_dir = Path(current_root)
        relative = chart_dir.relative_to(base).as_posix()
        info = parse_chart_file(chart_dir / CHART_FILE, relative)
        if info is None or info.name in excluded:
            continue
        charts.append(info)

    charts.sort(key=lambda chart: (chart.path.count("/"), chart.name))
    return charts
