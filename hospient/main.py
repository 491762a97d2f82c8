from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hospient.api.v1.health import router as health_router
from hospient.api.v1.integrations import router as integrations_router
from hospient.config import get_settings
from hospient.core.store import SqlIntegrationStore
from hospient.db import engine
from hospient.integrations.errors import PersistenceError
from hospient.integrations.lifecycle import recover_stale_syncs


settings = get_settings()

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        recovered = await recover_stale_syncs(SqlIntegrationStore(), settings)
        if recovered:
            logger.warning("Recovered %d stale sync run(s) on startup", recovered)
    except PersistenceError as e:
        logger.error("Stale sync recovery skipped: %s", e)
    logger.info("Application startup completed")
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Application shutdown completed")


app = FastAPI(
    title="Hospient Integrations",
    description="Third-party POS/PMS integration sync engine",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

origins = (
    [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    if settings.allowed_origins != "*"
    else ["*"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(integrations_router)
