# app/services/replenishment_errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(eq=False)
class InvalidBatchQuantity(Exception):
    qty: int

    def __str__(self) -> str:
        return f"batch quantity must be > 0, got {self.qty}"


@dataclass(eq=False)
class InsufficientBatchQuantity(Exception):
    batch_id: int
    requested: int
    available: Optional[int] = None

    def __str__(self) -> str:
        return (
            f"batch {self.batch_id}: requested {self.requested}, "
            f"available {self.available if self.available is not None else '?'}"
        )


class BatchNotFound(Exception):
    pass


class BatchStateError(Exception):
    """Operation not allowed for the batch's current status."""


@dataclass(eq=False)
class AllocationConflict(Exception):
    item_id: int
    warehouse_id: int
    attempts: int = 2

    def __str__(self) -> str:
        return (
            f"allocation for item={self.item_id} wh={self.warehouse_id} "
            f"conflicted after {self.attempts} attempts; re-request"
        )


class PurchasingUnavailable(Exception):
    """Purchasing collaborator failed or timed out (recoverable)."""


class AlertNotFound(Exception):
    pass


@dataclass(eq=False)
class InvalidAlertTransition(Exception):
    alert_id: int
    current: str
    target: str

    def __str__(self) -> str:
        return f"alert {self.alert_id}: {self.current} -> {self.target} not allowed"


class ReorderPolicyMissing(Exception):
    """Auto-reorder disabled or no preferred vendor configured."""


class ItemNotFound(Exception):
    pass
