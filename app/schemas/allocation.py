# app/schemas/allocation.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import Field

from app.models.enums import AllocationMethod
from app.schemas.batch import _Base


class AllocationIn(_Base):
    item_id: int = Field(..., gt=0)
    warehouse_id: int = Field(..., gt=0)
    required_qty: int = Field(..., gt=0)
    method: AllocationMethod = AllocationMethod.FEFO
    as_of: Optional[date] = Field(
        default=None, description="also skip lots expiring on or before this date"
    )


class AllocationCommitIn(AllocationIn):
    ref: Optional[str] = Field(default=None, max_length=128)


class AllocationLineOut(_Base):
    batch_id: int
    qty: int
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None


class AllocationPlanOut(_Base):
    item_id: int
    warehouse_id: int
    required_qty: int
    method: AllocationMethod
    lines: List[AllocationLineOut]
    allocated_qty: int
    shortfall: int


class AllocationCommitOut(AllocationPlanOut):
    attempts: int
