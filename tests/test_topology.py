import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from bench_runner.models import DependencyService, JobDescriptor
from bench_runner.topology import render_topology, synthesize, write_topology

BENCH_COMMAND = "mix run bench/bench_helper.exs"


def _contains_key(value, key):
    if isinstance(value, dict):
        return key in value or any(_contains_key(v, key) for v in value.values())
    if isinstance(value, list):
        return any(_contains_key(v, key) for v in value)
    return False


def test_simple_job(job, settings):
    topology = synthesize(job, settings)

    assert topology.version == "3"
    assert list(topology.services) == ["runner"]
    runner = topology.services["runner"]
    host_output = Path(settings.benchmarks_output_path).resolve() / "test_job"
    assert runner == {
        "network_mode": "host",
        "image": "elixirbench/runner:1.5.2-20.1.2",
        "volumes": [f"{host_output}:/var/bench:Z"],
        "depends_on": [],
        "environment": {
            "ELIXIRBENCH_REPO_SLUG": "elixir-ecto/ecto",
            "ELIXIRBENCH_REPO_BRANCH": "mm/benches",
            "ELIXIRBENCH_REPO_COMMIT": "2a5a8efbc3afee3c6893f4cba33679e98142df3f",
        },
        "command": BENCH_COMMAND,
    }


def test_job_with_deps_and_environment(job_data, deps, settings):
    job_data["config"]["deps"] = deps
    job_data["config"]["environment_variables"] = {
        "MYSQL_URL": "root@localhost",
        "PG_URL": "postgres:postgres@localhost",
    }
    services = synthesize(JobDescriptor.model_validate(job_data), settings).services

    assert set(services) == {"job_test_job_postgres", "job_test_job_mysql", "runner"}
    runner = services["runner"]
    assert runner["command"] == (
        "wait-for.sh localhost:5432 -t 200 -- "
        "wait-for.sh localhost:3306 -t 200 -- " + BENCH_COMMAND
    )
    assert runner["depends_on"] == ["job_test_job_postgres", "job_test_job_mysql"]
    assert runner["environment"]["PG_URL"] == "postgres:postgres@localhost"
    assert runner["environment"]["MYSQL_URL"] == "root@localhost"

    assert services["job_test_job_mysql"] == {
        "container_name": "mysql",
        "image": "mysql:5.7.20",
        "environment": {"MYSQL_ALLOW_EMPTY_PASSWORD": "true"},
        "network_mode": "host",
    }


def test_dependency_order_follows_declaration(job_data, deps, settings):
    job_data["config"]["deps"] = list(reversed(deps))
    runner = synthesize(JobDescriptor.model_validate(job_data), settings).services["runner"]

    assert runner["depends_on"] == ["job_test_job_mysql", "job_test_job_postgres"]
    assert runner["command"].startswith(
        "wait-for.sh localhost:3306 -t 200 -- wait-for.sh localhost:5432 -t 200 -- "
    )


def test_dependency_without_wait_adds_no_prefix(job_data, settings):
    job_data["config"]["deps"] = [
        {"image": "redis:4"},
        {"image": "postgres:10", "wait": {"port": 5432}},
    ]
    runner = synthesize(JobDescriptor.model_validate(job_data), settings).services["runner"]

    assert runner["command"] == "wait-for.sh localhost:5432 -t 200 -- " + BENCH_COMMAND
    assert runner["depends_on"] == ["job_test_job_redis", "job_test_job_postgres"]


def test_wait_key_never_emitted(job_data, deps, settings):
    deps[1]["environment"]["nested"] = {"wait": {"port": 1}, "keep": "me"}
    deps[1]["volumes"] = [{"wait": "x", "source": "/data"}]
    job_data["config"]["deps"] = deps
    topology = synthesize(JobDescriptor.model_validate(job_data), settings)

    document = json.loads(render_topology(topology))
    assert not _contains_key(document, "wait")
    mysql = document["services"]["job_test_job_mysql"]
    assert mysql["environment"]["nested"] == {"keep": "me"}
    assert mysql["volumes"] == [{"source": "/data"}]


def test_dependency_names():
    assert DependencyService(container_name="postgres").name == "postgres"
    assert DependencyService(image="mysql:5.7.20").name == "mysql"
    assert DependencyService(image="bitnami/redis:6.0").name == "redis"
    assert DependencyService(image="elasticsearch").name == "elasticsearch"


@pytest.mark.parametrize("dep", [{}, {"image": ""}, {"environment": {"A": "1"}}])
def test_dependency_without_identity_is_rejected(job_data, dep):
    job_data["config"]["deps"] = [dep]
    with pytest.raises(ValidationError):
        JobDescriptor.model_validate(job_data)


@pytest.mark.parametrize(
    "duplicates",
    [
        [{"image": "postgres:9"}, {"image": "other/postgres:10"}],
        [{"container_name": "db", "image": "mysql:5"}, {"container_name": "db"}],
        [{"container_name": "redis"}, {"image": "redis:4"}],
    ],
)
def test_duplicate_dependency_names_are_rejected(job_data, duplicates):
    job_data["config"]["deps"] = duplicates
    with pytest.raises(ValidationError):
        JobDescriptor.model_validate(job_data)


def test_non_string_environment_values(job_data, settings):
    job_data["config"]["environment_variables"] = {
        "PORT": 5432,
        "RATIO": 0.5,
        "VERBOSE": True,
        "NAME": "bench",
    }
    runner = synthesize(JobDescriptor.model_validate(job_data), settings).services["runner"]

    assert runner["environment"]["PORT"] == 5432
    assert runner["environment"]["RATIO"] == 0.5
    assert runner["environment"]["VERBOSE"] is True
    assert runner["environment"]["NAME"] == "bench"


def test_write_topology(job, settings):
    path = write_topology(job, settings)

    assert path.name == "test_job-config.yml"
    assert path.parent == Path(settings.benchmarks_output_path).resolve() / "test_job"
    document = json.loads(path.read_text())
    assert document["services"]["runner"]["image"] == "elixirbench/runner:1.5.2-20.1.2"
