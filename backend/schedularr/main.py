"""Schedularr — FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from schedularr.config import settings
from schedularr.api import health, schedule

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup: create tables, probe integrations
    from schedularr.database import engine, init_db
    from schedularr.services.integration_probe import probe_all

    await init_db()
    app.state.integrations = await probe_all(settings)
    logger.info(f"Integrations: {app.state.integrations}")
    yield
    # Shutdown: close DB pool
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Personal TV channel style schedule generator",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

# CORS: frontend dev server + production URL
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",     # Vite dev server
        settings.app_url,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Mount routers ────────────────────────────────────────────────
app.include_router(health.router,    prefix="/api/v1", tags=["system"])
app.include_router(schedule.router,  prefix="/api/v1", tags=["schedule"])


def run():
    """Console entry point."""
    import uvicorn

    uvicorn.run("schedularr.main:app", host=settings.host, port=settings.port,
                log_level=settings.log_level.lower())
