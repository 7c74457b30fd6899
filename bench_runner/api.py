from __future__ import annotations

import logging
import os
import signal

from fastapi import FastAPI, HTTPException

from bench_runner.errors import ConcurrencyViolation, ReclaimError
from bench_runner.models import JobDescriptor, JobResult
from bench_runner.orchestrator import JobOrchestrator

logger = logging.getLogger(__name__)

API_DESCRIPTION = """
Benchmark Runner - run one benchmarking job inside docker-compose.

`POST /jobs` takes a job descriptor, starts the runner container plus the
declared dependency containers, and returns once the job has finished or
timed out. The response carries the exit status, the combined compose log,
the collected measurements and the worker context.

Only one job runs at a time. A second request while a job is active is
rejected with `409 Conflict`; it is not queued.
"""

app = FastAPI(
    title="Benchmark Runner",
    version="0.1.0",
    description=API_DESCRIPTION,
)
orchestrator = JobOrchestrator()


def abort_worker() -> None:
    """Stop the process; leaked containers would break every later job."""
    os.kill(os.getpid(), signal.SIGTERM)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/status")
async def status():
    return {"active_job": orchestrator.active_job_id}


@app.post("/jobs", response_model=JobResult)
async def run_job(job: JobDescriptor) -> JobResult:
    try:
        return await orchestrator.start_job(job)
    except ConcurrencyViolation as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ReclaimError as exc:
        logger.critical("teardown after job %s failed: %s\n%s", job.id, exc, exc.log)
        abort_worker()
        raise HTTPException(status_code=500, detail=str(exc)) from exc
