"""Refund-window re-evaluation.

Idempotent and safe to run concurrently: every promotion is a
compare-and-set on the purchase's current status. Purchases that never
got a ``refund_eligible_at`` are back-filled first from their snapshot
window, the project default or the global fallback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from revshare.core.commission_status import compare_and_set_status
from revshare.core.config import settings
from revshare.core.time import utcnow
from revshare.models.enums import CommissionStatusEnum
from revshare.models.projects import Project
from revshare.models.purchases import Purchase
from revshare.models.users import User


logger = logging.getLogger(__name__)


@dataclass
class RefundWindowSummary:
    backfilled: int = 0
    ready: int = 0
    pending_creator_payment: int = 0

    @property
    def promoted(self) -> int:
        return self.ready + self.pending_creator_payment


def _scoped(query, creator_id: int | None):
    query = query.join(Project, Project.id == Purchase.project_id)
    if creator_id is not None:
        query = query.filter(Project.creator_id == creator_id)
    return query


def backfill_refund_eligible_at(db: Session, *, creator_id: int | None = None) -> int:
    rows = (
        _scoped(db.query(Purchase, Project), creator_id)
        .filter(
            Purchase.refund_eligible_at.is_(None),
            Purchase.commission_status == CommissionStatusEnum.AWAITING_REFUND_WINDOW.value,
        )
        .all()
    )
    filled = 0
    for purchase, project in rows:
        days = purchase.refund_window_days
        if days is None:
            days = project.refund_window_days
        if days is None:
            days = settings.DEFAULT_REFUND_WINDOW_DAYS
        filled += (
            db.query(Purchase)
            .filter(Purchase.id == purchase.id, Purchase.refund_eligible_at.is_(None))
            .update(
                {
                    Purchase.refund_eligible_at: purchase.occurred_at + timedelta(days=days),
                    Purchase.refund_window_days: days,
                },
                synchronize_session=False,
            )
        )
    return filled


def evaluate_refund_windows(
    db: Session,
    *,
    creator_id: int | None = None,
    now: datetime | None = None,
) -> RefundWindowSummary:
    now = now or utcnow()
    summary = RefundWindowSummary()
    summary.backfilled = backfill_refund_eligible_at(db, creator_id=creator_id)

    rows = (
        _scoped(db.query(Purchase.id, Purchase.commission_status, User.connected_account_id), creator_id)
        .join(User, User.id == Project.creator_id)
        .filter(
            (
                (Purchase.commission_status == CommissionStatusEnum.AWAITING_REFUND_WINDOW.value)
                & (Purchase.refund_eligible_at <= now)
            )
            | (Purchase.commission_status == CommissionStatusEnum.PENDING_CREATOR_PAYMENT.value)
        )
        .all()
    )

    moves: dict[tuple[CommissionStatusEnum, CommissionStatusEnum], list[int]] = {}
    for purchase_id, status, creator_account in rows:
        current = CommissionStatusEnum(status)
        target = (
            CommissionStatusEnum.READY_FOR_PAYOUT
            if creator_account
            else CommissionStatusEnum.PENDING_CREATOR_PAYMENT
        )
        if target == current:
            continue
        moves.setdefault((current, target), []).append(purchase_id)

    for (current, target), ids in moves.items():
        changed = compare_and_set_status(db, ids, expected=current, target=target)
        if target == CommissionStatusEnum.READY_FOR_PAYOUT:
            summary.ready += changed
        else:
            summary.pending_creator_payment += changed

    db.commit()
    if summary.backfilled or summary.promoted:
        logger.info(
            "refund_window.evaluated",
            extra={
                "creator_id": creator_id,
                "backfilled": summary.backfilled,
                "ready": summary.ready,
                "pending_creator_payment": summary.pending_creator_payment,
            },
        )
    return summary
