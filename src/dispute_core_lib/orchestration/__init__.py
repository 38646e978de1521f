"""Analysis orchestration: rate limiting, job bookkeeping and phase runs."""

from dispute_core_lib.orchestration.rate_limiter import (
    InMemoryRateLimitStore,
    RateLimiter,
    RateLimitPolicy,
    RateLimitStore,
)
from dispute_core_lib.orchestration.job_store import InMemoryJobResultStore, JobResultStore
from dispute_core_lib.orchestration.orchestrator import (
    AnalysisOrchestrator,
    CallbackOutcome,
    PhaseOutcome,
    PollOutcome,
)

__all__ = [
    "RateLimitPolicy",
    "RateLimitStore",
    "InMemoryRateLimitStore",
    "RateLimiter",
    "JobResultStore",
    "InMemoryJobResultStore",
    "AnalysisOrchestrator",
    "PhaseOutcome",
    "CallbackOutcome",
    "PollOutcome",
]
