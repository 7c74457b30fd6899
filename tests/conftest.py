import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bench_runner.models import JobDescriptor  # noqa: E402
from bench_runner.settings import Settings  # noqa: E402


@pytest.fixture
def make_bin(tmp_path):
    """Write an executable shell script standing in for docker/docker-compose."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()

    def make(name: str, body: str) -> str:
        path = bin_dir / name
        path.write_text(f"#!/bin/sh\n{body}\n")
        path.chmod(0o755)
        return str(path)

    return make


@pytest.fixture
def settings(tmp_path, make_bin):
    return Settings(
        benchmarks_output_path=str(tmp_path / "benchmarks"),
        container_benchmarks_output_path="/var/bench",
        job_timeout=20,
        runner_image="elixirbench/runner",
        benchmark_command="mix run bench/bench_helper.exs",
        wait_for_timeout=200,
        compose_bin=make_bin("docker-compose", 'echo "compose $*"'),
        docker_bin=make_bin("docker", "exit 0"),
        lockfile_name="mix.lock",
    )


@pytest.fixture
def job_data():
    return {
        "id": "test_job",
        "repo_slug": "elixir-ecto/ecto",
        "branch": "mm/benches",
        "commit": "2a5a8efbc3afee3c6893f4cba33679e98142df3f",
        "config": {
            "deps": [],
            "environment_variables": {},
            "elixir_version": "1.5.2",
            "erlang_version": "20.1.2",
        },
    }


@pytest.fixture
def job(job_data):
    return JobDescriptor.model_validate(job_data)


@pytest.fixture
def deps():
    return [
        {
            "container_name": "postgres",
            "image": "postgres:9.6.6-alpine",
            "wait": {"port": "5432"},
        },
        {
            "container_name": "mysql",
            "environment": {"MYSQL_ALLOW_EMPTY_PASSWORD": "true"},
            "image": "mysql:5.7.20",
            "wait": {"port": "3306"},
        },
    ]
