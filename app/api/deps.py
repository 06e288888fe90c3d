# app/api/deps.py
from __future__ import annotations

from fastapi import Depends

from app.adapters.purchasing import SqlPurchasing
from app.db.session import get_session
from app.domain.ports import Purchasing
from app.services.batch_service import BatchService
from app.services.fefo_allocator import FefoAllocator
from app.services.reorder_alert_service import ReorderAlertService
from app.services.reorder_evaluator import ReorderEvaluator
from app.services.reorder_factory import build_alert_service, build_evaluator
from app.services.reorder_report_service import ReorderReportService
from app.services.reorder_settings_service import ReorderSettingsService

__all__ = [
    "get_session",
    "get_batch_service",
    "get_allocator",
    "get_settings_service",
    "get_purchasing",
    "get_evaluator",
    "get_alert_service",
    "get_report_service",
]


def get_batch_service() -> BatchService:
    return BatchService()


def get_allocator(batches: BatchService = Depends(get_batch_service)) -> FefoAllocator:
    return FefoAllocator(batches)


def get_settings_service() -> ReorderSettingsService:
    return ReorderSettingsService()


def get_purchasing() -> Purchasing:
    return SqlPurchasing()


def get_evaluator() -> ReorderEvaluator:
    return build_evaluator()


def get_alert_service(purchasing: Purchasing = Depends(get_purchasing)) -> ReorderAlertService:
    return build_alert_service(purchasing=purchasing)


def get_report_service(evaluator: ReorderEvaluator = Depends(get_evaluator)) -> ReorderReportService:
    return ReorderReportService(evaluator)
