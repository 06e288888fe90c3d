# app/api/routers/allocations.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_allocator, get_session
from app.schemas.allocation import (
    AllocationCommitIn,
    AllocationCommitOut,
    AllocationIn,
    AllocationPlanOut,
)
from app.services.fefo_allocator import AllocationPlan, FefoAllocator

router = APIRouter(prefix="/allocations", tags=["allocations"])


def _plan_out(plan: AllocationPlan) -> dict:
    return {
        "item_id": plan.item_id,
        "warehouse_id": plan.warehouse_id,
        "required_qty": plan.required_qty,
        "method": plan.method,
        "lines": [
            {
                "batch_id": ln.batch_id,
                "qty": ln.qty,
                "batch_number": ln.batch_number,
                "expiry_date": ln.expiry_date,
            }
            for ln in plan.lines
        ],
        "allocated_qty": plan.allocated_qty,
        "shortfall": plan.shortfall,
    }


@router.post("/plan", response_model=AllocationPlanOut)
async def plan_allocation(
    body: AllocationIn,
    session: AsyncSession = Depends(get_session),
    alloc: FefoAllocator = Depends(get_allocator),
) -> AllocationPlanOut:
    """Read-only preview; nothing is depleted."""
    plan = await alloc.allocate(
        session,
        item_id=body.item_id,
        warehouse_id=body.warehouse_id,
        required_qty=body.required_qty,
        method=body.method,
        as_of=body.as_of,
    )
    return AllocationPlanOut(**_plan_out(plan))


@router.post("/commit", response_model=AllocationCommitOut)
async def commit_allocation(
    body: AllocationCommitIn,
    session: AsyncSession = Depends(get_session),
    alloc: FefoAllocator = Depends(get_allocator),
) -> AllocationCommitOut:
    """
    Plan and deplete in one request. A shortfall is returned, not raised;
    the caller decides on backorder.
    """
    async with session.begin():
        result = await alloc.allocate_and_commit(
            session,
            item_id=body.item_id,
            warehouse_id=body.warehouse_id,
            required_qty=body.required_qty,
            method=body.method,
            as_of=body.as_of,
            ref=body.ref,
        )
    return AllocationCommitOut(**_plan_out(result.plan), attempts=result.attempts)
