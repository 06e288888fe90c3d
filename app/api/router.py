# app/api/router.py
from __future__ import annotations

from fastapi import APIRouter

from app.api.routers import allocations, batches, metrics, reorder, reports

api_router = APIRouter()

api_router.include_router(batches.router)
api_router.include_router(allocations.router)
api_router.include_router(reorder.router)
api_router.include_router(reports.router)
api_router.include_router(metrics.router)
