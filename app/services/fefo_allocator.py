# app/services/fefo_allocator.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import AsyncIterator, Iterable, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.batch import Batch
from app.models.enums import AllocationMethod
from app.obs.metrics import allocation_commit_total, allocation_retry_total
from app.services.batch_service import BatchService
from app.services.replenishment_errors import AllocationConflict, InsufficientBatchQuantity
from app.utils.time import as_utc_naive

log = logging.getLogger("replenish.allocation")

_FAR_FUTURE = date.max
_EPOCH = datetime.min


@dataclass(frozen=True)
class AllocationLine:
    batch_id: int
    qty: int
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None


@dataclass(frozen=True)
class AllocationPlan:
    item_id: int
    warehouse_id: int
    required_qty: int
    method: AllocationMethod
    lines: List[AllocationLine] = field(default_factory=list)
    shortfall: int = 0
    as_of: Optional[date] = None

    @property
    def allocated_qty(self) -> int:
        return sum(ln.qty for ln in self.lines)


@dataclass(frozen=True)
class CommitResult:
    plan: AllocationPlan
    attempts: int

    @property
    def lines(self) -> List[AllocationLine]:
        return self.plan.lines

    @property
    def committed_qty(self) -> int:
        return self.plan.allocated_qty

    @property
    def shortfall(self) -> int:
        return self.plan.shortfall

    @property
    def recomputed(self) -> bool:
        return self.attempts > 1


# ---------------------------------------------------------------
# Pure ordering / slicing (no I/O)
# ---------------------------------------------------------------


def rank_batches(batches: Iterable[Batch], method: AllocationMethod) -> List[Batch]:
    """
    FEFO: expiry_date ASC (NULL last), then created_at ASC, then id ASC.
    FIFO: created_at ASC, then id ASC.
    """
    method = AllocationMethod(method)

    def _created(b: Batch) -> datetime:
        return as_utc_naive(b.created_at) or _EPOCH

    if method is AllocationMethod.FEFO:
        key = lambda b: (  # noqa: E731
            b.expiry_date is None,
            b.expiry_date or _FAR_FUTURE,
            _created(b),
            int(b.id),
        )
    else:
        key = lambda b: (_created(b), int(b.id))  # noqa: E731
    return sorted(batches, key=key)


def slice_greedy(ranked: Sequence[Batch], required_qty: int) -> tuple[List[AllocationLine], int]:
    """Take min(remaining, still_needed) from each batch in order. Returns (lines, shortfall)."""
    remaining = int(required_qty)
    lines: List[AllocationLine] = []
    for b in ranked:
        if remaining <= 0:
            break
        take = min(remaining, int(b.qty_remaining))
        if take > 0:
            lines.append(
                AllocationLine(
                    batch_id=int(b.id),
                    qty=take,
                    batch_number=b.batch_number,
                    expiry_date=b.expiry_date,
                )
            )
            remaining -= take
    return lines, max(0, remaining)


class FefoAllocator:
    """
    Lot allocation engine (FEFO / FIFO) on top of the batch registry.

    Contract:
    ------------------------------------------
    - allocate() is read-only: ACTIVE batches with qty_remaining > 0,
      ranked, sliced greedily. A shortfall is a normal result.
    - commit_allocation() depletes every line, in plan order, as one unit.
      If a line no longer fits (a concurrent commit got there first) the unit
      rolls back, the plan is recomputed once against fresh rows and applied
      again; a second failure raises AllocationConflict.
    - Commits for the same (item, warehouse) are serialized on PostgreSQL by a
      transaction-scoped advisory lock; other keys never wait on each other.
      Every backend additionally relies on the conditional decrement in
      BatchService.deplete, so no batch can go negative.
    ------------------------------------------

    Transactions: when the session already holds a transaction, commits run in
    a SAVEPOINT and the caller commits; otherwise each attempt runs in its own
    transaction.

        async with session.begin():
            plan = await alloc.allocate(session, item_id=1, warehouse_id=1, required_qty=35)
            result = await alloc.commit_allocation(session, plan)
    """

    def __init__(self, registry: Optional[BatchService] = None) -> None:
        self.registry = registry or BatchService()

    # ---------------------------------------------------------------
    # Planning
    # ---------------------------------------------------------------
    async def allocate(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: int,
        required_qty: int,
        method: AllocationMethod = AllocationMethod.FEFO,
        as_of: Optional[date] = None,
    ) -> AllocationPlan:
        """
        Compute a plan. as_of additionally skips ACTIVE batches whose
        expiry_date <= as_of that the expiry reconcile has not flipped yet.
        """
        if int(required_qty) <= 0:
            raise ValueError("required_qty must be > 0")
        method = AllocationMethod(method)

        batches = await self.registry.get_available_batches(
            session, item_id=item_id, warehouse_id=warehouse_id
        )
        if as_of is not None:
            batches = [b for b in batches if b.expiry_date is None or b.expiry_date > as_of]

        lines, shortfall = slice_greedy(rank_batches(batches, method), int(required_qty))
        return AllocationPlan(
            item_id=int(item_id),
            warehouse_id=int(warehouse_id),
            required_qty=int(required_qty),
            method=method,
            lines=lines,
            shortfall=shortfall,
            as_of=as_of,
        )

    # ---------------------------------------------------------------
    # Commit
    # ---------------------------------------------------------------
    async def commit_allocation(
        self,
        session: AsyncSession,
        plan: AllocationPlan,
        *,
        ref: Optional[str] = None,
    ) -> CommitResult:
        own_tx = not session.in_transaction()
        current = plan

        for attempt in (1, 2):
            try:
                async with self._unit(session, own_tx=own_tx):
                    await self._lock_key(session, plan.item_id, plan.warehouse_id)
                    if attempt > 1:
                        current = await self.allocate(
                            session,
                            item_id=plan.item_id,
                            warehouse_id=plan.warehouse_id,
                            required_qty=plan.required_qty,
                            method=plan.method,
                            as_of=plan.as_of,
                        )
                    for line in current.lines:
                        await self.registry.deplete(
                            session, batch_id=line.batch_id, qty=line.qty, ref=ref
                        )
            except InsufficientBatchQuantity as e:
                if attempt >= 2:
                    allocation_commit_total.labels("conflict").inc()
                    log.warning(
                        "allocation conflict item=%s wh=%s ref=%s: %s",
                        plan.item_id, plan.warehouse_id, ref, e,
                    )
                    raise AllocationConflict(
                        item_id=plan.item_id, warehouse_id=plan.warehouse_id, attempts=attempt
                    ) from e
                allocation_retry_total.inc()
                log.warning(
                    "allocation plan stale item=%s wh=%s (%s); recomputing once",
                    plan.item_id, plan.warehouse_id, e,
                )
                continue

            allocation_commit_total.labels("partial" if current.shortfall else "committed").inc()
            log.info(
                "allocation committed item=%s wh=%s method=%s qty=%s shortfall=%s attempts=%s",
                plan.item_id, plan.warehouse_id, plan.method.value,
                current.allocated_qty, current.shortfall, attempt,
            )
            return CommitResult(plan=current, attempts=attempt)

        raise AssertionError("unreachable")  # pragma: no cover

    async def allocate_and_commit(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: int,
        required_qty: int,
        method: AllocationMethod = AllocationMethod.FEFO,
        as_of: Optional[date] = None,
        ref: Optional[str] = None,
    ) -> CommitResult:
        plan = await self.allocate(
            session,
            item_id=item_id,
            warehouse_id=warehouse_id,
            required_qty=required_qty,
            method=method,
            as_of=as_of,
        )
        return await self.commit_allocation(session, plan, ref=ref)

    # ---------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------
    @staticmethod
    @asynccontextmanager
    async def _unit(session: AsyncSession, *, own_tx: bool) -> AsyncIterator[None]:
        if own_tx:
            async with session.begin():
                yield
        else:
            async with session.begin_nested():
                yield

    @staticmethod
    async def _lock_key(session: AsyncSession, item_id: int, warehouse_id: int) -> None:
        if session.get_bind().dialect.name != "postgresql":
            return
        await session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:k))"),
            {"k": f"alloc:{int(item_id)}:{int(warehouse_id)}"},
        )

