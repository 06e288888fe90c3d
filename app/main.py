# app/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.router import api_router
from app.core.config import get_settings
from app.core.logging import setup_logging
from app.core.scheduler import init_scheduler, shutdown_scheduler
from app.db.session import close_engines
from app.http_problem_handlers import register_exception_handlers
from app.obs.metrics import PrometheusMiddleware

settings = get_settings()
setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)
logger = logging.getLogger("replenish")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_scheduler(settings)
    try:
        yield
    finally:
        shutdown_scheduler()
        await close_engines()


app = FastAPI(
    title="Replenishment & Lot Allocation",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(PrometheusMiddleware)
register_exception_handlers(app)
app.include_router(api_router)


@app.get("/ping", tags=["meta"])
async def ping():
    return {"pong": True, "env": settings.ENV}
