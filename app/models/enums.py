# app/models/enums.py
from __future__ import annotations

from enum import StrEnum


class BatchStatus(StrEnum):
    """
    Lot lifecycle:

    - ACTIVE     allocatable while qty_remaining > 0
    - DEPLETED   qty_remaining == 0 (restocking flips it back to ACTIVE)
    - EXPIRED    expiry_date reached; monotonic, never back to ACTIVE
    - RECALLED   pulled by quality; never allocatable
    """

    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    DEPLETED = "DEPLETED"
    RECALLED = "RECALLED"


class BatchTxnType(StrEnum):
    """batch_transactions.type (audit trail, append-only)."""

    RECEIVE = "RECEIVE"
    CONSUME = "CONSUME"
    ADJUSTMENT = "ADJUSTMENT"
    EXPIRE = "EXPIRE"
    RECALL = "RECALL"


class AllocationMethod(StrEnum):
    FEFO = "FEFO"
    FIFO = "FIFO"


class AlertStatus(StrEnum):
    """
    PENDING -> ACKNOWLEDGED | PO_CREATED | DISMISSED
    ACKNOWLEDGED -> PO_CREATED | DISMISSED
    PO_CREATED / DISMISSED are terminal.
    """

    PENDING = "PENDING"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    PO_CREATED = "PO_CREATED"
    DISMISSED = "DISMISSED"


OPEN_ALERT_STATUSES = (AlertStatus.PENDING, AlertStatus.ACKNOWLEDGED)
TERMINAL_ALERT_STATUSES = (AlertStatus.PO_CREATED, AlertStatus.DISMISSED)

ALERT_TRANSITIONS: dict[AlertStatus, frozenset[AlertStatus]] = {
    AlertStatus.PENDING: frozenset(
        {AlertStatus.ACKNOWLEDGED, AlertStatus.PO_CREATED, AlertStatus.DISMISSED}
    ),
    AlertStatus.ACKNOWLEDGED: frozenset({AlertStatus.PO_CREATED, AlertStatus.DISMISSED}),
    AlertStatus.PO_CREATED: frozenset(),
    AlertStatus.DISMISSED: frozenset(),
}


class PurchaseOrderStatus(StrEnum):
    DRAFT = "DRAFT"
    CREATED = "CREATED"
    RECEIVED = "RECEIVED"
    CLOSED = "CLOSED"
