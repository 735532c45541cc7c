"""
App Factory
===========
FastAPI app creation: middleware, error mapping, routers.

Error mapping:
- DataValidationError -> 400
- DependencyError (reasoning service, geocoding, open circuit) -> 502
- PipelineCancelledError -> 409
- any other planner error (stage failure) -> 500
"""

import logging
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.trustedhost import TrustedHostMiddleware

from src.api.dependencies import limiter
from src.api.middleware import RequestContextMiddleware
from src.domain.exceptions import (
    DataValidationError,
    DependencyError,
    ExpansionPlannerError,
    PipelineCancelledError,
    StageFailure,
)
from src.infrastructure.config.config_manager import AppConfig
from src.infrastructure.container import Container

logger = logging.getLogger(__name__)


def create_app(
    container: Optional[Container] = None,
    lifespan: Callable[..., Any] | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI app

    Args:
        container: DI container; built from the environment when omitted
        lifespan: Optional lifespan async context manager. The default one
                  closes the container's network and database handles on shutdown.

    Returns:
        configured FastAPI instance
    """
    container = container or Container(AppConfig.from_env())

    app = FastAPI(
        title="Expansion Planner API",
        description="Restaurant network expansion: pipeline, portfolio optimization, scenarios",
        version="1.0.0",
        lifespan=lifespan or _default_lifespan,
    )
    app.state.container = container

    # Rate Limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    _register_error_handlers(app)

    # Trusted Host (only when configured)
    allowed_hosts = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "").split(",") if h.strip()]
    if allowed_hosts and "*" not in allowed_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)

    # CORS
    allowed_origins = os.getenv(
        "ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    app.add_middleware(RequestContextMiddleware)

    _register_routers(app)
    return app


@asynccontextmanager
async def _default_lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await app.state.container.aclose()


def _error_body(error: Exception, **detail: Any) -> dict[str, Any]:
    return {
        "error": str(error),
        "type": type(error).__name__,
        "detail": {k: v for k, v in detail.items() if v is not None},
    }


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DataValidationError)
    async def handle_validation(request: Request, exc: DataValidationError) -> JSONResponse:
        logger.info(f"Rejected {request.url.path}: {exc}")
        return JSONResponse(
            status_code=400,
            content=_error_body(exc, field=exc.field, constraint=exc.constraint),
        )

    @app.exception_handler(DependencyError)
    async def handle_dependency(request: Request, exc: DependencyError) -> JSONResponse:
        logger.error(f"Dependency failure on {request.url.path}: {exc.dependency}: {exc}")
        return JSONResponse(
            status_code=502,
            content=_error_body(exc, dependency=exc.dependency, retryable=exc.is_retryable),
        )

    @app.exception_handler(PipelineCancelledError)
    async def handle_cancelled(request: Request, exc: PipelineCancelledError) -> JSONResponse:
        logger.info(f"Pipeline {exc.pipeline_id} cancelled on {request.url.path}")
        return JSONResponse(status_code=409, content=_error_body(exc, pipeline_id=exc.pipeline_id))

    @app.exception_handler(ExpansionPlannerError)
    async def handle_planner_error(request: Request, exc: ExpansionPlannerError) -> JSONResponse:
        stage = exc.stage if isinstance(exc, StageFailure) else None
        logger.error(f"Planner error on {request.url.path}: {type(exc).__name__}: {exc}")
        return JSONResponse(status_code=500, content=_error_body(exc, stage=stage))


def _register_routers(app: FastAPI) -> None:
    from src.api.routes.expansion import router as expansion_router
    from src.api.routes.health import router as health_router
    from src.api.routes.portfolio import router as portfolio_router
    from src.api.routes.scenarios import router as scenarios_router

    app.include_router(health_router)
    app.include_router(portfolio_router)
    app.include_router(scenarios_router)
    app.include_router(expansion_router)
