"""Service wiring for the HTTP layer.

``Services`` bundles the collaborators one app instance works with. The
hosting service passes its own case-record and document stores; everything
else is built from settings (in-memory by default, Redis when
``STATE_BACKEND=redis``).
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import Depends, Request

from dispute_core_lib.clients.worker_client import AnalysisWorkerClient
from dispute_core_lib.config.settings import Settings
from dispute_core_lib.lifecycle import CaseLifecycle, CaseStatusMachine
from dispute_core_lib.orchestration import (
    AnalysisOrchestrator,
    InMemoryJobResultStore,
    InMemoryRateLimitStore,
    JobResultStore,
    RateLimiter,
    RateLimitPolicy,
    RateLimitStore,
)
from dispute_core_lib.repositories import (
    AnalysisRequestStore,
    AnalysisStore,
    CaseRecordStore,
    DocumentStore,
    InMemoryAnalysisRequestStore,
    InMemoryAnalysisStore,
    InMemoryCaseRecordStore,
    InMemoryDocumentStore,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    orchestrator: AnalysisOrchestrator
    lifecycle: CaseLifecycle
    redis_client: Optional[Any] = None


def build_services(
    settings: Settings,
    cases: Optional[CaseRecordStore] = None,
    documents: Optional[DocumentStore] = None,
    analyses: Optional[AnalysisStore] = None,
    requests: Optional[AnalysisRequestStore] = None,
    jobs: Optional[JobResultStore] = None,
    rate_limit_store: Optional[RateLimitStore] = None,
    worker: Optional[AnalysisWorkerClient] = None,
    clock: Optional[Callable[[], float]] = None,
) -> Services:
    """Wire the orchestrator; missing stores default to in-memory ones."""
    cases = cases or InMemoryCaseRecordStore()
    worker = worker or AnalysisWorkerClient(
        base_url=settings.worker_base_url,
        api_key=settings.worker_api_key,
        worker_id=settings.worker_id,
        timeout=settings.dispatch_timeout,
    )

    lifecycle = CaseLifecycle(CaseStatusMachine(cases))
    orchestrator = AnalysisOrchestrator(
        worker=worker,
        cases=cases,
        documents=documents or InMemoryDocumentStore(),
        analyses=analyses or InMemoryAnalysisStore(),
        requests=requests or InMemoryAnalysisRequestStore(),
        jobs=jobs or InMemoryJobResultStore(),
        rate_limiter=RateLimiter(rate_limit_store or InMemoryRateLimitStore(), clock=clock),
        lifecycle=lifecycle,
        phase_policy=RateLimitPolicy(
            name="analysis",
            max_attempts=settings.analysis_rate_limit_max_attempts,
            window_seconds=settings.analysis_rate_limit_window_seconds,
            refund_on_failure=True,
        ),
        extraction_policy=RateLimitPolicy(
            name="extract",
            max_attempts=settings.extraction_rate_limit_max_attempts,
            window_seconds=settings.extraction_rate_limit_window_seconds,
            refund_on_failure=False,
        ),
        kanton_workflow=settings.kanton_workflow,
        full_workflow=settings.full_workflow,
        extraction_workflow=settings.extraction_workflow,
        callback_url=settings.callback_url,
        dispatch_timeout=settings.dispatch_timeout,
    )
    return Services(orchestrator=orchestrator, lifecycle=lifecycle)


async def build_services_from_settings(settings: Settings, **stores) -> Services:
    """Like ``build_services`` but connects the Redis stores when configured."""
    if settings.uses_redis:
        # Imported lazily so memory-only deployments never open a Redis connection
        from dispute_core_lib.infrastructure import (
            RedisJobResultStore,
            RedisRateLimitStore,
            get_redis_client,
        )

        client = await get_redis_client(settings.redis)
        stores.setdefault("jobs", RedisJobResultStore(client, ttl_seconds=settings.job_result_ttl_seconds))
        stores.setdefault("rate_limit_store", RedisRateLimitStore(client))
        logger.info("Job results and rate limits backed by Redis")

        services = build_services(settings, **stores)
        services.redis_client = client
        return services

    return build_services(settings, **stores)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_orchestrator(services: Services = Depends(get_services)) -> AnalysisOrchestrator:
    return services.orchestrator
