from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from bench_runner.errors import ConcurrencyViolation, GuardMisuse


@dataclass(eq=False)
class JobToken:
    job_id: str
    issuer: "SingleFlightGuard" = field(repr=False)
    released: bool = False


class SingleFlightGuard:
    """Admits at most one running job. A second start is rejected, never queued."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: JobToken | None = None

    @property
    def active_job_id(self) -> str | None:
        token = self._active
        return token.job_id if token else None

    def acquire(self, job_id: str) -> JobToken:
        with self._lock:
            if self._active is not None:
                raise ConcurrencyViolation(self._active.job_id)
            self._active = JobToken(job_id=job_id, issuer=self)
            return self._active

    def release(self, token: JobToken) -> None:
        with self._lock:
            if token.issuer is not self:
                raise GuardMisuse(f"token for job {token.job_id} was not issued here")
            if token.released:
                return
            if token is not self._active:
                raise GuardMisuse(f"token for job {token.job_id} is not active")
            token.released = True
            self._active = None

    @contextmanager
    def hold(self, job_id: str) -> Iterator[JobToken]:
        token = self.acquire(job_id)
        try:
            yield token
        finally:
            self.release(token)
