"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dispute_core_lib.api.dependencies import Services, build_services_from_settings
from dispute_core_lib.api.routes import router
from dispute_core_lib.config.settings import Settings, get_settings
from dispute_core_lib.errors import OrchestrationError, RateLimitedError
from dispute_core_lib.lifecycle import InvalidStatusTransitionError
from dispute_core_lib.models.api_models import ErrorResponse

logger = logging.getLogger(__name__)


async def orchestration_error_handler(request: Request, exc: OrchestrationError) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    body = ErrorResponse(**exc.to_dict())
    return JSONResponse(status_code=exc.http_status, content=body.model_dump(mode="json"), headers=headers)


async def invalid_transition_handler(request: Request, exc: InvalidStatusTransitionError) -> JSONResponse:
    body = ErrorResponse(
        kind="invalid_status_transition",
        message=str(exc),
        details={"from_status": exc.from_status.value, "to_status": exc.to_status.value},
    )
    return JSONResponse(status_code=409, content=body.model_dump(mode="json"))


def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Create the API app.

    Args:
        services: Pre-wired services (tests, or a host with its own stores)
        settings: Settings used when services are built at startup (default: environment)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "services", None) is None:
            owned = await build_services_from_settings(settings or get_settings())
            app.state.services = owned
        yield
        if owned is not None and owned.redis_client is not None:
            await owned.redis_client.aclose()
            logger.info("Redis client closed")

    app = FastAPI(title="Dispute Case Analysis", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    app.add_exception_handler(OrchestrationError, orchestration_error_handler)
    app.add_exception_handler(InvalidStatusTransitionError, invalid_transition_handler)
    app.include_router(router)
    return app
