from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def collect_measurements(output_dir: Path) -> dict[str, Any]:
    """Merge the statistics of every `*.json` result under `<benchmark>/<metric>` keys."""
    measurements: dict[str, Any] = {}
    for path in sorted(output_dir.glob("*.json")):
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.debug("skipping unreadable result %s: %s", path.name, exc)
            continue
        measurements.update(format_measurement(data, path.stem))
    return measurements


# Only the statistics part of a benchee result is kept.
def format_measurement(measurement: Any, benchmark_name: Any) -> dict[str, Any]:
    if not isinstance(measurement, dict) or not isinstance(benchmark_name, str):
        return {}
    statistics = measurement.get("statistics")
    if not isinstance(statistics, dict):
        return {}
    return {f"{benchmark_name}/{name}": data for name, data in statistics.items()}
