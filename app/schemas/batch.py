# app/schemas/batch.py
from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.enums import BatchStatus


class _Base(BaseModel):
    """
    - from_attributes: ORM rows serialize directly
    - extra="ignore": tolerate extra keys from older clients
    """

    model_config = ConfigDict(
        from_attributes=True,
        extra="ignore",
        populate_by_name=True,
    )


class BatchCreate(_Base):
    item_id: int = Field(..., gt=0)
    warehouse_id: int = Field(..., gt=0)
    qty: int = Field(..., description="received quantity, must be > 0")
    batch_number: Annotated[Optional[str], Field(default=None, max_length=64)] = None
    manufacture_date: Optional[date] = None
    expiry_date: Optional[date] = None
    supplier_id: Optional[int] = None
    notes: Optional[str] = None
    ref: Optional[str] = Field(default=None, max_length=128)

    @field_validator("batch_number", mode="before")
    @classmethod
    def _trim_batch_number(cls, v):
        return v.strip() if isinstance(v, str) else v

    model_config = _Base.model_config | {
        "json_schema_extra": {
            "example": {
                "item_id": 1,
                "warehouse_id": 1,
                "qty": 100,
                "batch_number": "B-20260101-A",
                "manufacture_date": "2026-01-01",
                "expiry_date": "2026-07-01",
            }
        }
    }


class BatchUpdate(_Base):
    """Metadata only; at least one field."""

    manufacture_date: Optional[date] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _at_least_one(self):
        if self.manufacture_date is None and self.expiry_date is None and self.notes is None:
            raise ValueError("provide at least one field to update")
        return self


class BatchAdjustIn(_Base):
    delta: int = Field(..., description="signed correction, non-zero")
    reason: str = Field(..., min_length=1, max_length=64)
    notes: Optional[str] = None


class BatchRecallIn(_Base):
    notes: Optional[str] = None


class BatchOut(_Base):
    id: int
    item_id: int
    warehouse_id: int
    batch_number: str
    initial_qty: int
    qty_remaining: int
    manufacture_date: Optional[date] = None
    expiry_date: Optional[date] = None
    status: BatchStatus
    supplier_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime


class PageMeta(_Base):
    page: int
    limit: int
    total: int
    total_pages: int


class BatchListOut(_Base):
    data: List[BatchOut]
    meta: PageMeta


class BatchTransactionOut(_Base):
    id: int
    batch_id: int
    type: str
    qty: int
    after_qty: int
    ref: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class ReconcileExpiryIn(_Base):
    as_of: Optional[date] = None


class ReconcileExpiryOut(_Base):
    as_of: date
    expired: int
