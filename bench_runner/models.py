from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


def image_slug(image: str) -> str:
    """`"library/mysql:5.7.20"` -> `"mysql"`."""
    return image.rsplit("/", 1)[-1].split(":", 1)[0]


class WaitSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    port: int | str | None = None


class DependencyService(BaseModel):
    """A helper container (database, cache, ...) started next to the runner.

    Only the fields the runner needs are typed. Anything else a user puts in
    the dependency (environment, volumes, command, ...) is kept as-is and
    forwarded to docker-compose.
    """

    model_config = ConfigDict(extra="allow")

    container_name: str | None = None
    image: str | None = None
    wait: WaitSpec | None = None

    @model_validator(mode="after")
    def _check_identity(self) -> "DependencyService":
        if not self.name:
            raise ValueError("dependency needs a container_name or an image")
        if "build" in self.passthrough:
            # compose runs with --no-build, so this key has no effect
            logger.warning("ignoring build directive on dependency %s", self.name)
        return self

    @property
    def name(self) -> str:
        if self.container_name:
            return self.container_name
        if self.image:
            return image_slug(self.image)
        return ""

    @property
    def wait_port(self) -> int | str | None:
        return self.wait.port if self.wait else None

    @property
    def passthrough(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def compose_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if self.container_name is not None:
            fields["container_name"] = self.container_name
        if self.image is not None:
            fields["image"] = self.image
        fields.update(self.passthrough)
        return fields


class RunnerConfig(BaseModel):
    deps: list[DependencyService] = Field(default_factory=list)
    environment_variables: dict[str, str | int | float | bool] = Field(
        default_factory=dict
    )
    elixir_version: str
    erlang_version: str

    @model_validator(mode="after")
    def _check_unique_deps(self) -> "RunnerConfig":
        seen: set[str] = set()
        for dep in self.deps:
            if dep.name in seen:
                raise ValueError(f"more than one dependency is named {dep.name!r}")
            seen.add(dep.name)
        return self

    @property
    def runtime_version_tag(self) -> str:
        return f"{self.elixir_version}-{self.erlang_version}"


class JobDescriptor(BaseModel):
    id: str = Field(min_length=1, pattern=r"^[A-Za-z0-9_.-]+$")
    repo_slug: str
    branch: str
    commit: str
    config: RunnerConfig


class Topology(BaseModel):
    version: str = "3"
    services: dict[str, dict[str, Any]] = Field(default_factory=dict)


class WorkerContext(BaseModel):
    dependency_versions: dict[str, str] = Field(default_factory=dict)
    cpu_count: int | None = None
    worker_os: str
    memory: str
    cpu_speed: str


class JobResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    status: int
    log: str = ""
    measurements: dict[str, Any] = Field(default_factory=dict)
    context: WorkerContext | None = None
