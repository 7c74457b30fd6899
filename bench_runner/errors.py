"""
Error classes for the benchmark runner.

- ConcurrencyViolation: a job start was rejected because another job holds
  the slot. Callers must not retry automatically.
- GuardMisuse: a token was released that the guard never issued.
- ReclaimError: teardown failed. Containers may have leaked, so the worker
  must stop taking jobs.
"""


class RunnerError(Exception):
    """Base exception for the benchmark runner."""


class ConcurrencyViolation(RunnerError):
    def __init__(self, active_job_id: str) -> None:
        super().__init__(f"job {active_job_id} is already running")
        self.active_job_id = active_job_id


class GuardMisuse(RunnerError):
    pass


class ReclaimError(RunnerError):
    def __init__(self, message: str, log: str = "") -> None:
        super().__init__(message)
        self.log = log
