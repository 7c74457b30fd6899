from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Settings:
    benchmarks_output_path: str = field(
        default_factory=lambda: os.getenv("BENCHMARKS_OUTPUT_PATH", "/tmp/benchmarks")
    )
    container_benchmarks_output_path: str = field(
        default_factory=lambda: os.getenv(
            "CONTAINER_BENCHMARKS_OUTPUT_PATH", "/var/bench"
        )
    )
    job_timeout: float = field(
        default_factory=lambda: float(os.getenv("JOB_TIMEOUT", "3600"))
    )
    runner_image: str = field(
        default_factory=lambda: os.getenv("RUNNER_IMAGE", "elixirbench/runner")
    )
    benchmark_command: str = field(
        default_factory=lambda: os.getenv(
            "BENCHMARK_COMMAND", "mix run bench/bench_helper.exs"
        )
    )
    wait_for_timeout: int = field(
        default_factory=lambda: int(os.getenv("WAIT_FOR_TIMEOUT", "200"))
    )
    compose_bin: str = field(
        default_factory=lambda: os.getenv("COMPOSE_BIN", "docker-compose")
    )
    docker_bin: str = field(default_factory=lambda: os.getenv("DOCKER_BIN", "docker"))
    lockfile_name: str = field(
        default_factory=lambda: os.getenv("LOCKFILE_NAME", "mix.lock")
    )
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


def get_settings() -> Settings:
    return Settings()
