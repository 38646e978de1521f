"""Thread-result store for external jobs.

A job is recorded as running when dispatch returns its id and settled once
when the result arrives (via callback or inline reply). Pollers read it by
job id. Results are never deleted explicitly; durable stores expire them.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dispute_core_lib.models.analysis import JobStatus, ThreadResult

logger = logging.getLogger(__name__)


class JobResultStore(ABC):
    """Storage for ThreadResult records keyed by job id."""

    @abstractmethod
    async def get(self, job_id: str) -> Optional[ThreadResult]:
        ...

    @abstractmethod
    async def put(self, result: ThreadResult) -> ThreadResult:
        ...

    @abstractmethod
    async def put_new(self, result: ThreadResult) -> ThreadResult:
        """Store the record unless one exists for the job; return the stored record."""

    async def mark_running(self, job_id: str) -> ThreadResult:
        """Record a dispatched job.

        A result pushed before this call is kept and returned, so callers must
        check the returned status.
        """
        return await self.put_new(ThreadResult(job_id=job_id, status=JobStatus.RUNNING))

    async def mark_done(
        self,
        job_id: str,
        output: Any,
        raw: Optional[Dict[str, Any]] = None,
        billing_cost: Optional[str] = None,
    ) -> ThreadResult:
        return await self._settle(ThreadResult(
            job_id=job_id,
            status=JobStatus.DONE,
            output=output,
            raw=raw,
            billing_cost=billing_cost,
        ))

    async def mark_error(
        self, job_id: str, error: str, raw: Optional[Dict[str, Any]] = None
    ) -> ThreadResult:
        return await self._settle(ThreadResult(
            job_id=job_id,
            status=JobStatus.ERROR,
            error=error,
            raw=raw,
        ))

    async def _settle(self, result: ThreadResult) -> ThreadResult:
        existing = await self.get(result.job_id)
        if existing is not None and existing.status != JobStatus.RUNNING:
            logger.warning(
                f"[JobStore] Job {result.job_id} already settled as {existing.status.value}, "
                f"ignoring duplicate result"
            )
            return existing
        return await self.put(result.model_copy(update={"updated_at": datetime.now(timezone.utc)}))


class InMemoryJobResultStore(JobResultStore):
    """Process-local job results; lost on restart."""

    def __init__(self):
        self._results: Dict[str, ThreadResult] = {}
        self._lock = asyncio.Lock()

    async def get(self, job_id: str) -> Optional[ThreadResult]:
        async with self._lock:
            return self._results.get(job_id)

    async def put(self, result: ThreadResult) -> ThreadResult:
        async with self._lock:
            self._results[result.job_id] = result
        return result

    async def put_new(self, result: ThreadResult) -> ThreadResult:
        async with self._lock:
            return self._results.setdefault(result.job_id, result)
