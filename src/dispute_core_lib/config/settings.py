"""Environment-driven settings.

Settings are read once from the environment into a dataclass. Explicit
constructor arguments win over the environment, which makes tests independent
of the host's variables.

Environment Variables:
    ANALYSIS_WORKER_BASE_URL: Worker API base URL (default: https://v1.mindstudio-api.com)
    ANALYSIS_WORKER_API_KEY: Bearer key for the worker API
    ANALYSIS_WORKER_ID: Worker (agent) identifier
    ANALYSIS_KANTON_WORKFLOW: Workflow for kanton_check (default: Main.flow)
    ANALYSIS_FULL_WORKFLOW: Workflow for full_analysis/second_run (default: FullAnalysis.flow)
    ANALYSIS_EXTRACTION_WORKFLOW: Workflow for document extraction (default: Extraction.flow)
    PUBLIC_BASE_URL: Externally reachable base URL of this service (async callbacks)
    ANALYSIS_CALLBACK_PATH: Callback route below PUBLIC_BASE_URL (default: /api/mindstudio/callback)
    ANALYSIS_DISPATCH_TIMEOUT: Seconds a synchronous dispatch may take (default: 300)
    ANALYSIS_RATE_LIMIT_MAX_ATTEMPTS / ANALYSIS_RATE_LIMIT_WINDOW_SECONDS: Phase policy (5 / 120)
    EXTRACTION_RATE_LIMIT_MAX_ATTEMPTS / EXTRACTION_RATE_LIMIT_WINDOW_SECONDS: Extraction policy (10 / 3600)
    STATE_BACKEND: "memory" (default) or "redis" for job results and rate limits
    JOB_RESULT_TTL_SECONDS: Expiry of job results in Redis (default: 86400)
    REDIS_MODE, REDIS_HOST, REDIS_PORT, REDIS_DB, REDIS_PASSWORD,
    REDIS_SENTINEL_HOSTS, REDIS_MASTER_SET: Redis connection (see infrastructure.redis_setup)
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}='{raw}', using default {default}")
        return default
    if value <= 0:
        logger.warning(f"Non-positive {name}='{raw}', using default {default}")
        return default
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}='{raw}', using default {default}")
        return default
    if value <= 0:
        logger.warning(f"Non-positive {name}='{raw}', using default {default}")
        return default
    return value


@dataclass
class RedisSettings:
    """Redis connection settings (standalone or Sentinel)."""

    mode: str = "standalone"
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    sentinel_hosts: str = ""
    master_set: str = "mymaster"

    @classmethod
    def from_env(cls) -> "RedisSettings":
        port = _env_int("REDIS_PORT", 6379)
        db_raw = os.getenv("REDIS_DB", "0")
        try:
            db = int(db_raw)
        except ValueError:
            logger.warning(f"Invalid REDIS_DB='{db_raw}', using default 0")
            db = 0
        return cls(
            mode=os.getenv("REDIS_MODE", "standalone").lower(),
            host=os.getenv("REDIS_HOST", "localhost"),
            port=port,
            db=db,
            password=os.getenv("REDIS_PASSWORD") or None,
            sentinel_hosts=os.getenv("REDIS_SENTINEL_HOSTS", ""),
            master_set=os.getenv("REDIS_MASTER_SET", "mymaster"),
        )


@dataclass
class Settings:
    """Orchestration core settings."""

    worker_base_url: str = "https://v1.mindstudio-api.com"
    worker_api_key: Optional[str] = None
    worker_id: Optional[str] = None
    kanton_workflow: str = "Main.flow"
    full_workflow: str = "FullAnalysis.flow"
    extraction_workflow: str = "Extraction.flow"

    public_base_url: Optional[str] = None
    callback_path: str = "/api/mindstudio/callback"

    dispatch_timeout: float = 300.0

    analysis_rate_limit_max_attempts: int = 5
    analysis_rate_limit_window_seconds: float = 120.0
    extraction_rate_limit_max_attempts: int = 10
    extraction_rate_limit_window_seconds: float = 3600.0

    state_backend: str = "memory"
    job_result_ttl_seconds: int = 86400

    redis: RedisSettings = field(default_factory=RedisSettings)

    @property
    def callback_url(self) -> Optional[str]:
        """Absolute callback URL, or None when the service is not publicly reachable."""
        if not self.public_base_url:
            return None
        return f"{self.public_base_url.rstrip('/')}/{self.callback_path.lstrip('/')}"

    @property
    def uses_redis(self) -> bool:
        return self.state_backend == "redis"

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from the environment; keyword arguments take precedence."""
        backend = os.getenv("STATE_BACKEND", "memory").lower()
        if backend not in ("memory", "redis"):
            logger.warning(f"Invalid STATE_BACKEND '{backend}', defaulting to 'memory'")
            backend = "memory"

        values = dict(
            worker_base_url=os.getenv("ANALYSIS_WORKER_BASE_URL", cls.worker_base_url),
            worker_api_key=os.getenv("ANALYSIS_WORKER_API_KEY") or None,
            worker_id=os.getenv("ANALYSIS_WORKER_ID") or None,
            kanton_workflow=os.getenv("ANALYSIS_KANTON_WORKFLOW", cls.kanton_workflow),
            full_workflow=os.getenv("ANALYSIS_FULL_WORKFLOW", cls.full_workflow),
            extraction_workflow=os.getenv("ANALYSIS_EXTRACTION_WORKFLOW", cls.extraction_workflow),
            public_base_url=os.getenv("PUBLIC_BASE_URL") or None,
            callback_path=os.getenv("ANALYSIS_CALLBACK_PATH", cls.callback_path),
            dispatch_timeout=_env_float("ANALYSIS_DISPATCH_TIMEOUT", cls.dispatch_timeout),
            analysis_rate_limit_max_attempts=_env_int(
                "ANALYSIS_RATE_LIMIT_MAX_ATTEMPTS", cls.analysis_rate_limit_max_attempts
            ),
            analysis_rate_limit_window_seconds=_env_float(
                "ANALYSIS_RATE_LIMIT_WINDOW_SECONDS", cls.analysis_rate_limit_window_seconds
            ),
            extraction_rate_limit_max_attempts=_env_int(
                "EXTRACTION_RATE_LIMIT_MAX_ATTEMPTS", cls.extraction_rate_limit_max_attempts
            ),
            extraction_rate_limit_window_seconds=_env_float(
                "EXTRACTION_RATE_LIMIT_WINDOW_SECONDS", cls.extraction_rate_limit_window_seconds
            ),
            state_backend=backend,
            job_result_ttl_seconds=_env_int("JOB_RESULT_TTL_SECONDS", cls.job_result_ttl_seconds),
            redis=RedisSettings.from_env(),
        )
        values.update(overrides)
        return cls(**values)


# Singleton instance for global access
_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global Settings instance.

    Returns:
        Settings read from the environment on first access
    """
    global _settings_instance

    if _settings_instance is None:
        _settings_instance = Settings.from_env()
        logger.info(
            f"Settings loaded: worker={_settings_instance.worker_base_url}, "
            f"backend={_settings_instance.state_backend}, "
            f"callbacks={'on' if _settings_instance.callback_url else 'off'}"
        )

    return _settings_instance


def reset_settings():
    """Reset the global Settings instance.

    Useful for testing or after changing environment variables.
    """
    global _settings_instance
    _settings_instance = None
