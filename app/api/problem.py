# app/api/problem.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypedDict

from fastapi import HTTPException

from app.services.replenishment_errors import (
    AlertNotFound,
    AllocationConflict,
    BatchNotFound,
    BatchStateError,
    InsufficientBatchQuantity,
    InvalidAlertTransition,
    InvalidBatchQuantity,
    ItemNotFound,
    PurchasingUnavailable,
    ReorderPolicyMissing,
)


class ProblemDetail(TypedDict, total=False):
    # required
    type: str  # validation|batch|allocation|alert|purchasing|state
    # optional locators
    path: str
    reason: str
    item_id: int
    warehouse_id: Optional[int]
    batch_id: int
    alert_id: int

    required_qty: int
    available_qty: int
    short_qty: int


@dataclass(frozen=True)
class Problem:
    error_code: str
    message: str
    http_status: int
    context: Optional[Dict[str, Any]] = None
    details: Optional[List[ProblemDetail]] = None
    trace_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
            "http_status": int(self.http_status),
        }
        if self.context:
            out["context"] = self.context
        if self.details:
            out["details"] = self.details
        if self.trace_id:
            out["trace_id"] = self.trace_id
        return out


def make_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[Sequence[ProblemDetail]] = None,
    trace_id: Optional[str] = None,
) -> Dict[str, Any]:
    p = Problem(
        error_code=str(error_code),
        message=str(message),
        http_status=int(status_code),
        context=context,
        details=list(details) if details else None,
        trace_id=trace_id,
    )
    return p.to_dict()


def raise_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[Sequence[ProblemDetail]] = None,
    trace_id: Optional[str] = None,
) -> None:
    raise HTTPException(
        status_code=int(status_code),
        detail=make_problem(
            status_code=int(status_code),
            error_code=error_code,
            message=message,
            context=context,
            details=details,
            trace_id=trace_id,
        ),
    )


def raise_404(error_code: str, message: str) -> None:
    raise_problem(status_code=404, error_code=error_code, message=message)


# ---------------------------------------------------------------
# Domain error -> (status, error_code, details)
# ---------------------------------------------------------------

DOMAIN_ERRORS: Tuple[type, ...] = (
    InvalidBatchQuantity,
    InsufficientBatchQuantity,
    BatchNotFound,
    BatchStateError,
    AllocationConflict,
    PurchasingUnavailable,
    AlertNotFound,
    InvalidAlertTransition,
    ReorderPolicyMissing,
    ItemNotFound,
)


def problem_for(exc: Exception) -> Tuple[int, str, List[ProblemDetail]]:
    reason = str(exc)
    if isinstance(exc, InvalidBatchQuantity):
        return 422, "invalid_batch_quantity", [{"type": "validation", "path": "qty", "reason": reason}]
    if isinstance(exc, InsufficientBatchQuantity):
        d: ProblemDetail = {
            "type": "batch",
            "batch_id": exc.batch_id,
            "required_qty": exc.requested,
            "reason": reason,
        }
        if exc.available is not None:
            d["available_qty"] = exc.available
            d["short_qty"] = max(0, exc.requested - exc.available)
        return 409, "insufficient_batch_quantity", [d]
    if isinstance(exc, AllocationConflict):
        return 409, "allocation_conflict", [
            {"type": "allocation", "item_id": exc.item_id, "warehouse_id": exc.warehouse_id, "reason": reason}
        ]
    if isinstance(exc, InvalidAlertTransition):
        return 409, "invalid_alert_transition", [{"type": "alert", "alert_id": exc.alert_id, "reason": reason}]
    if isinstance(exc, BatchStateError):
        return 409, "batch_state_error", [{"type": "state", "reason": reason}]
    if isinstance(exc, ReorderPolicyMissing):
        return 409, "reorder_policy_missing", [{"type": "state", "reason": reason}]
    if isinstance(exc, PurchasingUnavailable):
        return 503, "purchasing_unavailable", [{"type": "purchasing", "reason": reason}]
    if isinstance(exc, BatchNotFound):
        return 404, "batch_not_found", []
    if isinstance(exc, AlertNotFound):
        return 404, "alert_not_found", []
    if isinstance(exc, ItemNotFound):
        return 404, "item_not_found", []
    return 500, "internal_error", []
