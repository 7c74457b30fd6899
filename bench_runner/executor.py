from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Awaitable, Callable

import psutil

from bench_runner.models import JobDescriptor, JobResult
from bench_runner.settings import Settings, get_settings

logger = logging.getLogger(__name__)

TIMEOUT_STATUS = 127
TIMEOUT_LOG = "Job execution timed out"
COMMAND_NOT_FOUND = 127

# --force-recreate          recreate containers even if their config is unchanged
# --no-build                users may not build images on the benchmark host
# --abort-on-container-exit stop the deps once the runner finishes
# --remove-orphans          drop containers for services not in this file
COMPOSE_UP_ARGS = [
    "up",
    "--force-recreate",
    "--no-build",
    "--abort-on-container-exit",
    "--remove-orphans",
]

JobBody = Callable[[JobDescriptor], Awaitable[JobResult]]


def compose_command(config_path: Path, settings: Settings | None = None) -> list[str]:
    settings = settings or get_settings()
    return [settings.compose_bin, "-f", str(config_path), *COMPOSE_UP_ARGS]


async def run_compose(
    config_path: Path, settings: Settings | None = None
) -> tuple[int, str]:
    """Run docker-compose to completion, returning exit status and combined output.

    If the awaiting task is cancelled the whole process tree is killed
    before the cancellation propagates.
    """
    cmd = compose_command(config_path, settings)
    logger.info("starting %s", " ".join(cmd))
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=os.environ.copy(),
            start_new_session=True,
        )
    except FileNotFoundError as exc:
        logger.error("failed to spawn %s: %s", cmd[0], exc)
        return COMMAND_NOT_FOUND, f"failed to spawn process: {exc}\n"

    try:
        output, _ = await process.communicate()
    except asyncio.CancelledError:
        logger.warning("cancelling compose run (pid %s)", process.pid)
        await asyncio.to_thread(kill_process_tree, process.pid)
        await process.wait()
        raise

    logger.info("compose finished with code %s", process.returncode)
    return process.returncode, output.decode(errors="replace")


def kill_process_tree(pid: int, grace: float = 3.0) -> None:
    try:
        parent = psutil.Process(pid)
        procs = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return
    for proc in procs:
        try:
            proc.terminate()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
    _, alive = psutil.wait_procs(procs, timeout=grace)
    for proc in alive:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass


def timed_out_result(job: JobDescriptor) -> JobResult:
    return JobResult(id=job.id, status=TIMEOUT_STATUS, log=TIMEOUT_LOG)


async def run_with_deadline(
    job: JobDescriptor, body: JobBody, timeout: float
) -> JobResult:
    """Run `body(job)` in its own task and wait at most `timeout` seconds.

    A crash inside the body is reported as a failed result. On timeout the
    task is cancelled and awaited, so its subprocesses are gone on return.
    """
    task = asyncio.create_task(body(job), name=f"job-{job.id}")
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        # the job must not outlive its caller
        task.cancel()
        await asyncio.wait({task})
        raise

    if not done:
        logger.warning("job %s exceeded %ss, cancelling", job.id, timeout)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("job %s failed while cancelling", job.id)
        return timed_out_result(job)

    try:
        return task.result()
    except Exception as exc:
        logger.exception("job %s crashed", job.id)
        return JobResult(id=job.id, status=1, log=f"Job execution crashed: {exc}\n")
