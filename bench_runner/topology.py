"""Build the docker-compose document for a benchmark job.

Every service runs with host networking so the runner reaches its
dependencies on localhost. That shares one network namespace between all
containers on the host, which is why only one job runs at a time.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from bench_runner.config import benchmarks_output_path, topology_path
from bench_runner.models import DependencyService, JobDescriptor, Topology
from bench_runner.settings import Settings, get_settings

NETWORK_MODE = "host"
RUNNER_SERVICE = "runner"
ENV_PREFIX = "ELIXIRBENCH"

# Input-only key; docker-compose rejects unknown service keys.
WAIT_KEY = "wait"


def dependency_service_name(job_id: str, dep: DependencyService) -> str:
    return f"job_{job_id}_{dep.name}"


def synthesize(job: JobDescriptor, settings: Settings | None = None) -> Topology:
    settings = settings or get_settings()
    services: dict[str, dict[str, Any]] = {}
    for dep in job.config.deps:
        spec = dep.compose_fields()
        spec["network_mode"] = NETWORK_MODE
        services[dependency_service_name(job.id, dep)] = spec

    services[RUNNER_SERVICE] = _runner_service(job, list(services), settings)
    return Topology(services=strip_key(services, WAIT_KEY))


def _runner_service(
    job: JobDescriptor, dep_names: list[str], settings: Settings
) -> dict[str, Any]:
    host_output = benchmarks_output_path(job.id, settings)
    return {
        "network_mode": NETWORK_MODE,
        "image": f"{settings.runner_image}:{job.config.runtime_version_tag}",
        "volumes": [f"{host_output}:{settings.container_benchmarks_output_path}:Z"],
        "depends_on": dep_names,
        "environment": _runner_environment(job),
        "command": runner_command(job.config.deps, settings),
    }


def _runner_environment(job: JobDescriptor) -> dict[str, Any]:
    env = dict(job.config.environment_variables)
    env[f"{ENV_PREFIX}_REPO_SLUG"] = job.repo_slug
    env[f"{ENV_PREFIX}_REPO_BRANCH"] = job.branch
    env[f"{ENV_PREFIX}_REPO_COMMIT"] = job.commit
    return env


def runner_command(deps: list[DependencyService], settings: Settings) -> str:
    """Prefix the benchmark command with one wait-for.sh call per waited port.

    The first declared dependency ends up outermost.
    """
    parts = [
        f"wait-for.sh localhost:{dep.wait_port} -t {settings.wait_for_timeout} -- "
        for dep in deps
        if dep.wait_port is not None
    ]
    return "".join(parts) + settings.benchmark_command


def strip_key(value: Any, key: str) -> Any:
    if isinstance(value, dict):
        return {k: strip_key(v, key) for k, v in value.items() if k != key}
    if isinstance(value, list):
        return [strip_key(item, key) for item in value]
    return value


def render_topology(topology: Topology) -> str:
    # JSON is a subset of YAML, docker-compose reads it as-is.
    return json.dumps(topology.model_dump(), indent=2)


def write_topology(job: JobDescriptor, settings: Settings | None = None) -> Path:
    settings = settings or get_settings()
    path = topology_path(job.id, settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_topology(synthesize(job, settings)), encoding="utf-8")
    return path
