from __future__ import annotations

from pathlib import Path

from bench_runner.settings import Settings, get_settings


def benchmarks_output_path(job_id: str, settings: Settings | None = None) -> Path:
    """Host directory owned by a single job (results, lockfile, compose config)."""
    settings = settings or get_settings()
    return Path(settings.benchmarks_output_path).resolve() / job_id


def topology_path(job_id: str, settings: Settings | None = None) -> Path:
    return benchmarks_output_path(job_id, settings) / f"{job_id}-config.yml"
