# app/services/reorder_alert_service.py
from __future__ import annotations

import asyncio
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import and_, func, or_, select, true, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.domain.ports import Purchasing
from app.models.enums import ALERT_TRANSITIONS, OPEN_ALERT_STATUSES, AlertStatus
from app.models.reorder_alert import ReorderAlert
from app.obs.metrics import (
    purchasing_failures_total,
    reorder_alerts_created_total,
    reorder_po_created_total,
)
from app.services.reorder_evaluator import EvaluationResult, ReorderEvaluator
from app.services.replenishment_errors import (
    AlertNotFound,
    InvalidAlertTransition,
    PurchasingUnavailable,
    ReorderPolicyMissing,
)
from app.utils.time import utcnow

log = logging.getLogger("replenish.alerts")

_NO_SYNC = {"synchronize_session": False}
_OPEN = [s.value for s in OPEN_ALERT_STATUSES]

# PurchaseOrderOutcome.status
PO_CREATED = "created"
PO_ALREADY_CREATED = "already_created"
PO_IN_PROGRESS = "in_progress"
PO_FAILED = "failed"
PO_NOT_ELIGIBLE = "not_eligible"
PO_NOT_FOUND = "not_found"


@dataclass(frozen=True)
class PurchaseOrderOutcome:
    alert_id: int
    status: str
    purchase_order_id: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ItemOutcome:
    evaluation: EvaluationResult
    alert: Optional[ReorderAlert] = None
    alert_created: bool = False
    purchase_order: Optional[PurchaseOrderOutcome] = None


class ReorderAlertService:
    """
    Reorder alert lifecycle and auto-reorder.

    Alerts
    ------
    - At most one open (PENDING / ACKNOWLEDGED) alert per (item, warehouse),
      enforced by the unique open_key column; a terminal alert is never
      reopened, the next low-stock event creates a new row.
    - A PENDING alert is refreshed with the latest evaluation snapshot;
      ACKNOWLEDGED alerts keep the numbers the operator acknowledged.

    Purchase orders
    ---------------
    raise_purchase_order() is exactly-once per alert:

      1) claim: conditional UPDATE sets po_claim_token on an open alert that is
         unclaimed (or whose lease is older than PO_CLAIM_TTL_SECONDS); commit
      2) call Purchasing under a timeout (alert id is the idempotency key)
      3) success: PO_CREATED + purchase_order_id, conditioned on the token
         failure: release the lease; alert stays in its previous open state

    A second caller that loses the claim never calls Purchasing.

    This service commits the session (the lease must be durable before the
    outbound call), unlike the batch registry which only flushes.
    """

    def __init__(
        self,
        *,
        evaluator: ReorderEvaluator,
        purchasing: Purchasing,
        purchasing_timeout: Optional[float] = None,
        claim_ttl_seconds: Optional[int] = None,
    ) -> None:
        s = get_settings()
        self.evaluator = evaluator
        self.purchasing = purchasing
        self.purchasing_timeout = float(purchasing_timeout or s.PURCHASING_TIMEOUT_SECONDS)
        self.claim_ttl = timedelta(seconds=int(claim_ttl_seconds or s.PO_CLAIM_TTL_SECONDS))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def _select():
        return select(ReorderAlert).execution_options(populate_existing=True)

    async def get_alert(self, session: AsyncSession, alert_id: int) -> ReorderAlert:
        row = (
            await session.execute(self._select().where(ReorderAlert.id == int(alert_id)))
        ).scalar_one_or_none()
        if row is None:
            raise AlertNotFound(f"alert {alert_id} not found")
        return row

    async def get_open_alert(
        self, session: AsyncSession, *, item_id: int, warehouse_id: Optional[int]
    ) -> Optional[ReorderAlert]:
        key = ReorderAlert.make_open_key(item_id, warehouse_id)
        return (
            await session.execute(self._select().where(ReorderAlert.open_key == key))
        ).scalar_one_or_none()

    async def list_alerts(
        self,
        session: AsyncSession,
        *,
        status: Optional[AlertStatus] = None,
        item_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        page: int = 1,
        limit: int = 25,
    ) -> Tuple[List[ReorderAlert], dict]:
        conds = []
        if status is not None:
            conds.append(ReorderAlert.status == AlertStatus(status).value)
        if item_id is not None:
            conds.append(ReorderAlert.item_id == int(item_id))
        if warehouse_id is not None:
            conds.append(ReorderAlert.warehouse_id == int(warehouse_id))

        page = max(1, int(page))
        limit = max(1, min(int(limit), 500))
        where = and_(true(), *conds)

        total = int(
            (await session.execute(select(func.count(ReorderAlert.id)).where(where))).scalar() or 0
        )
        rows = (
            await session.execute(
                self._select()
                .where(where)
                .order_by(ReorderAlert.created_at.desc(), ReorderAlert.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).scalars().all()
        meta = {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        }
        return list(rows), meta

    # ------------------------------------------------------------------
    # Evaluation -> alert
    # ------------------------------------------------------------------

    async def process_item(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: Optional[int] = None,
        as_of: Optional[date] = None,
        auto_order: bool = True,
    ) -> ItemOutcome:
        """
        Evaluate one (item, warehouse); create or refresh its open alert when
        below reorder; raise the purchase order when the policy allows.
        Commits.
        """
        evaluation = await self.evaluator.evaluate(
            session, item_id=item_id, warehouse_id=warehouse_id, as_of=as_of
        )
        if not evaluation.below_reorder:
            await session.commit()
            return ItemOutcome(evaluation=evaluation)

        alert, created = await self.ensure_alert(session, evaluation)
        await session.commit()

        po_outcome = None
        if auto_order and evaluation.policy.can_auto_order:
            po_outcome = await self.raise_purchase_order(
                session, alert.id, raise_on_failure=False
            )
        return ItemOutcome(
            evaluation=evaluation,
            alert=alert,
            alert_created=created,
            purchase_order=po_outcome,
        )

    async def ensure_alert(
        self, session: AsyncSession, evaluation: EvaluationResult
    ) -> Tuple[ReorderAlert, bool]:
        """Return (open alert, created). Flushes only."""
        existing = await self.get_open_alert(
            session, item_id=evaluation.item_id, warehouse_id=evaluation.warehouse_id
        )
        if existing is not None:
            if existing.status == AlertStatus.PENDING:
                existing.suggested_qty = evaluation.suggested_qty
                existing.current_stock = evaluation.current_stock
                existing.reorder_level = evaluation.policy.reorder_level
                await session.flush()
            return existing, False

        now = utcnow()
        alert = ReorderAlert(
            item_id=evaluation.item_id,
            warehouse_id=evaluation.warehouse_id,
            status=AlertStatus.PENDING.value,
            open_key=ReorderAlert.make_open_key(evaluation.item_id, evaluation.warehouse_id),
            suggested_qty=evaluation.suggested_qty,
            current_stock=evaluation.current_stock,
            reorder_level=evaluation.policy.reorder_level,
            created_at=now,
            notified_at=now,
        )
        try:
            async with session.begin_nested():
                session.add(alert)
                await session.flush()
        except IntegrityError:
            # another sweep opened it first
            winner = await self.get_open_alert(
                session, item_id=evaluation.item_id, warehouse_id=evaluation.warehouse_id
            )
            if winner is None:
                raise
            return winner, False

        reorder_alerts_created_total.inc()
        log.info(
            "reorder alert created id=%s item=%s wh=%s stock=%s level=%s qty=%s",
            alert.id, alert.item_id, alert.warehouse_id,
            alert.current_stock, alert.reorder_level, alert.suggested_qty,
        )
        return alert, True

    # ------------------------------------------------------------------
    # Manual transitions
    # ------------------------------------------------------------------

    async def acknowledge(self, session: AsyncSession, alert_id: int) -> ReorderAlert:
        alert = await self._transition(session, alert_id, AlertStatus.ACKNOWLEDGED)
        await session.commit()
        return alert

    async def dismiss(self, session: AsyncSession, alert_id: int) -> ReorderAlert:
        alert = await self._transition(session, alert_id, AlertStatus.DISMISSED)
        await session.commit()
        return alert

    async def _transition(
        self, session: AsyncSession, alert_id: int, target: AlertStatus
    ) -> ReorderAlert:
        alert = await self.get_alert(session, alert_id)
        current = AlertStatus(alert.status)
        if target not in ALERT_TRANSITIONS[current]:
            raise InvalidAlertTransition(alert_id=int(alert_id), current=current.value, target=target.value)

        now = utcnow()
        values: dict = {"status": target.value}
        conds = [ReorderAlert.id == int(alert_id), ReorderAlert.status == current.value]
        if target is AlertStatus.ACKNOWLEDGED:
            values["acknowledged_at"] = now
        else:
            values.update(resolved_at=now, open_key=None)
            # a purchase order in flight owns the alert until its lease lapses
            conds.append(
                or_(
                    ReorderAlert.po_claim_token.is_(None),
                    ReorderAlert.po_claimed_at < now - self.claim_ttl,
                )
            )

        changed = (
            await session.execute(
                update(ReorderAlert)
                .where(*conds)
                .values(**values)
                .returning(ReorderAlert.id)
                .execution_options(**_NO_SYNC)
            )
        ).scalar_one_or_none()
        if changed is None:
            fresh = await self.get_alert(session, alert_id)
            raise InvalidAlertTransition(alert_id=int(alert_id), current=fresh.status, target=target.value)

        log.info("reorder alert %s: %s -> %s", alert_id, current.value, target.value)
        return await self.get_alert(session, alert_id)

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    async def raise_purchase_order(
        self,
        session: AsyncSession,
        alert_id: int,
        *,
        raise_on_failure: bool = True,
    ) -> PurchaseOrderOutcome:
        alert = await self.get_alert(session, alert_id)
        status = AlertStatus(alert.status)
        if status is AlertStatus.PO_CREATED:
            return PurchaseOrderOutcome(
                alert_id=alert.id, status=PO_ALREADY_CREATED, purchase_order_id=alert.purchase_order_id
            )
        if status not in OPEN_ALERT_STATUSES:
            err = InvalidAlertTransition(
                alert_id=alert.id, current=status.value, target=AlertStatus.PO_CREATED.value
            )
            if raise_on_failure:
                raise err
            await session.commit()
            return PurchaseOrderOutcome(alert_id=alert.id, status=PO_NOT_ELIGIBLE, error=str(err))

        item_id, warehouse_id, qty = int(alert.item_id), alert.warehouse_id, int(alert.suggested_qty)
        policy = await self.evaluator.settings_service.resolve_policy(
            session, item_id=item_id, warehouse_id=warehouse_id
        )
        if not policy.can_auto_order:
            err = ReorderPolicyMissing(
                f"item {item_id} wh={warehouse_id}: auto reorder off or no preferred vendor"
            )
            if raise_on_failure:
                raise err
            log.info("alert %s: not eligible for a purchase order (%s)", alert_id, err)
            await session.commit()
            return PurchaseOrderOutcome(alert_id=int(alert_id), status=PO_NOT_ELIGIBLE, error=str(err))

        # 1) claim
        token = uuid.uuid4().hex
        now = utcnow()
        claimed = (
            await session.execute(
                update(ReorderAlert)
                .where(
                    ReorderAlert.id == int(alert_id),
                    ReorderAlert.status.in_(_OPEN),
                    or_(
                        ReorderAlert.po_claim_token.is_(None),
                        ReorderAlert.po_claimed_at < now - self.claim_ttl,
                    ),
                )
                .values(po_claim_token=token, po_claimed_at=now)
                .returning(ReorderAlert.id)
                .execution_options(**_NO_SYNC)
            )
        ).scalar_one_or_none()
        await session.commit()

        if claimed is None:
            fresh = await self.get_alert(session, alert_id)
            if fresh.status == AlertStatus.PO_CREATED:
                return PurchaseOrderOutcome(
                    alert_id=fresh.id, status=PO_ALREADY_CREATED, purchase_order_id=fresh.purchase_order_id
                )
            log.debug("alert %s: purchase order already in progress elsewhere", alert_id)
            return PurchaseOrderOutcome(alert_id=fresh.id, status=PO_IN_PROGRESS)

        # 2) purchasing call
        try:
            po_id = await asyncio.wait_for(
                self.purchasing.create_draft_purchase_order(
                    vendor_id=int(policy.preferred_vendor_id),
                    item_id=item_id,
                    quantity=qty,
                    warehouse_id=warehouse_id,
                    idempotency_key=f"reorder-alert:{int(alert_id)}",
                ),
                timeout=self.purchasing_timeout,
            )
        except Exception as e:
            kind = "timeout" if isinstance(e, asyncio.TimeoutError) else "error"
            reason = f"{kind}: {e}" if str(e) else kind
            await self._release_claim(session, alert_id, token, reason)
            purchasing_failures_total.labels(kind).inc()
            log.warning(
                "purchasing failed for alert=%s item=%s wh=%s (%s); alert stays %s",
                alert_id, item_id, warehouse_id, reason, status.value,
            )
            if raise_on_failure:
                raise PurchasingUnavailable(f"alert {alert_id}: {reason}") from e
            return PurchaseOrderOutcome(alert_id=int(alert_id), status=PO_FAILED, error=reason)

        # 3) finalize under the token
        done = (
            await session.execute(
                update(ReorderAlert)
                .where(ReorderAlert.id == int(alert_id), ReorderAlert.po_claim_token == token)
                .values(
                    status=AlertStatus.PO_CREATED.value,
                    purchase_order_id=int(po_id),
                    resolved_at=utcnow(),
                    open_key=None,
                    po_claim_token=None,
                    last_error=None,
                )
                .returning(ReorderAlert.id)
                .execution_options(**_NO_SYNC)
            )
        ).scalar_one_or_none()
        await session.commit()
        if done is None:
            log.error(
                "alert %s: lease lost while purchase order %s was created; check for duplicates",
                alert_id, po_id,
            )

        reorder_po_created_total.inc()
        log.info(
            "purchase order %s raised for alert=%s item=%s wh=%s qty=%s vendor=%s",
            po_id, alert_id, item_id, warehouse_id, qty, policy.preferred_vendor_id,
        )
        return PurchaseOrderOutcome(alert_id=int(alert_id), status=PO_CREATED, purchase_order_id=int(po_id))

    async def bulk_raise_purchase_orders(
        self, session: AsyncSession, alert_ids: Sequence[int]
    ) -> List[PurchaseOrderOutcome]:
        """One outcome per id, in input order; one failure never stops the rest."""
        out: List[PurchaseOrderOutcome] = []
        for alert_id in dict.fromkeys(int(a) for a in alert_ids):
            try:
                out.append(await self.raise_purchase_order(session, alert_id, raise_on_failure=False))
            except AlertNotFound as e:
                out.append(PurchaseOrderOutcome(alert_id=alert_id, status=PO_NOT_FOUND, error=str(e)))
        return out

    async def _release_claim(
        self, session: AsyncSession, alert_id: int, token: str, reason: str
    ) -> None:
        await session.execute(
            update(ReorderAlert)
            .where(ReorderAlert.id == int(alert_id), ReorderAlert.po_claim_token == token)
            .values(po_claim_token=None, po_claimed_at=None, last_error=reason[:255])
            .execution_options(**_NO_SYNC)
        )
        await session.commit()
