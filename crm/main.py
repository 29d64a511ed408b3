from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crm.api.companies import router as companies_router
from crm.api.health import router as health_router
from crm.api.invitations import router as invitations_router
from crm.api.metrics_endpoint import router as metrics_router
from crm.api.organizations import router as organizations_router
from crm.api.team import router as team_router
from crm.core.config import SETTINGS
from crm.core.logging import setup_logging
from crm.db.engine import lifespan_db
from crm.db.redis import lifespan_redis
from crm.middleware.metrics import MetricsMiddleware
from crm.middleware.request_context import RequestContextMiddleware
from crm.services.errors import StorageError, TenancyError

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="crm-tenancy",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)


@app.exception_handler(TenancyError)
async def tenancy_error_handler(_request: Request, exc: TenancyError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error("Storage unavailable: %s", exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=[SETTINGS.app_base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: RequestContext -> Metrics -> CORS -> route.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(organizations_router)
app.include_router(team_router)
app.include_router(invitations_router)
app.include_router(companies_router)

logger.info(
    "crm-tenancy started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
