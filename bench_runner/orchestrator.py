from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from bench_runner.config import benchmarks_output_path
from bench_runner.context import collect_context
from bench_runner.executor import JobBody, run_compose, run_with_deadline
from bench_runner.guard import SingleFlightGuard
from bench_runner.measurements import collect_measurements
from bench_runner.models import JobDescriptor, JobResult
from bench_runner.reclaim import reclaim
from bench_runner.settings import Settings, get_settings
from bench_runner.topology import write_topology

logger = logging.getLogger(__name__)


class JobOrchestrator:
    """Runs one benchmark job at a time under a hard timeout."""

    def __init__(
        self,
        settings: Settings | None = None,
        guard: SingleFlightGuard | None = None,
        job_body: JobBody | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.guard = guard or SingleFlightGuard()
        self.job_body = job_body or self.run_job

    @property
    def active_job_id(self) -> str | None:
        return self.guard.active_job_id

    async def start_job(
        self, job: JobDescriptor, timeout: float | None = None
    ) -> JobResult:
        """Execute a benchmarking job, rejecting it if another one is running.

        Teardown runs after the job task has finished or been cancelled, and
        outside the deadline, so a prune is always awaited to its exit code.
        """
        timeout = self.settings.job_timeout if timeout is None else timeout
        with self.guard.hold(job.id):
            logger.info("starting job %s (%s@%s)", job.id, job.repo_slug, job.commit)
            try:
                result = await run_with_deadline(job, self.job_body, timeout)
            finally:
                await self._reclaim(benchmarks_output_path(job.id, self.settings))
        logger.info("job %s finished with status %s", job.id, result.status)
        return result

    async def _reclaim(self, output_dir: Path) -> None:
        task = asyncio.create_task(reclaim(output_dir, self.settings))
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # caller went away; the prune still has to finish first
            await task
            raise

    async def run_job(self, job: JobDescriptor) -> JobResult:
        output_dir = benchmarks_output_path(job.id, self.settings)
        await asyncio.to_thread(output_dir.mkdir, parents=True, exist_ok=True)
        config_path = await asyncio.to_thread(write_topology, job, self.settings)
        status, log = await run_compose(config_path, self.settings)
        measurements = await asyncio.to_thread(collect_measurements, output_dir)
        context = await asyncio.to_thread(collect_context, output_dir, self.settings)
        return JobResult(
            id=job.id,
            status=status,
            log=log,
            measurements=measurements,
            context=context,
        )
