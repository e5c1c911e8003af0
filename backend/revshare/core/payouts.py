"""Commission payout batching for one creator.

Payout-eligible purchases are grouped per (destination account, currency),
pending adjustments for the same key are netted in, and one external
transfer is issued per group. A group's failure never touches another
group. A Transfer row is written PENDING and its purchases claimed before
the external call, so a concurrent batch cannot issue the same money.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, NamedTuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from revshare.core import audit
from revshare.core.commission import platform_fee
from revshare.core.config import settings
from revshare.core.errors import TransferError
from revshare.core.ingestion import create_clawback
from revshare.core.metrics import record_commission_transition, record_transfer
from revshare.core.refund_window import evaluate_refund_windows
from revshare.core.time import utcnow
from revshare.core.tracing import trace_span
from revshare.crud.payouts import list_pending_adjustments
from revshare.integrations.transfers import TransferClient, get_transfer_client
from revshare.models.enums import (
    AdjustmentStatusEnum,
    CommissionStatusEnum,
    PaymentStatusEnum,
    PayoutGroupStatusEnum,
    TransferKindEnum,
    TransferStatusEnum,
)
from revshare.models.payouts import CommissionAdjustment, Transfer
from revshare.models.projects import Project
from revshare.models.purchases import Purchase
from revshare.models.users import User
from revshare.notifications import dispatcher as notification_types
from revshare.notifications import messages, notify


logger = logging.getLogger(__name__)

SKIP_NON_POSITIVE = "net amount non-positive"
CONCURRENT_CLAIM = "concurrent payout claimed part of this group"

DestinationResolver = Callable[[Session, int], "str | None"]


class PayoutGroupKey(NamedTuple):
    destination_account: str
    currency: str


@dataclass
class PayoutGroup:
    key: PayoutGroupKey
    marketer_id: int
    purchases: list[Purchase] = field(default_factory=list)
    adjustments: list[CommissionAdjustment] = field(default_factory=list)

    @property
    def commission_total(self) -> int:
        return sum(p.commission_amount for p in self.purchases)

    @property
    def adjustment_total(self) -> int:
        return sum(a.amount for a in self.adjustments)

    @property
    def net_amount(self) -> int:
        return self.commission_total + self.adjustment_total


@dataclass
class PayoutGroupResult:
    marketer_id: int
    destination_account: str
    currency: str
    purchase_count: int
    amount: int
    status: PayoutGroupStatusEnum
    adjustment_count: int = 0
    transfer_id: str | None = None
    transfer_record_id: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "marketer_id": self.marketer_id,
            "destination_account": self.destination_account,
            "currency": self.currency,
            "purchase_count": self.purchase_count,
            "adjustment_count": self.adjustment_count,
            "amount": self.amount,
            "status": self.status.value,
            "transfer_id": self.transfer_id,
            "transfer_record_id": self.transfer_record_id,
            "error": self.error,
        }


def resolve_destination_account(db: Session, marketer_id: int) -> str | None:
    row = db.query(User.connected_account_id).filter(User.id == marketer_id).first()
    if row is None:
        return None
    return row[0] or None


def select_payout_candidates(db: Session, *, creator_id: int) -> list[Purchase]:
    return (
        db.query(Purchase)
        .join(Project, Project.id == Purchase.project_id)
        .outerjoin(Transfer, Transfer.id == Purchase.transfer_record_id)
        .filter(
            Project.creator_id == creator_id,
            Purchase.commission_status == CommissionStatusEnum.READY_FOR_PAYOUT.value,
            Purchase.payment_status.in_([PaymentStatusEnum.PENDING.value, PaymentStatusEnum.FAILED.value]),
            Purchase.commission_amount > 0,
            Purchase.marketer_id.isnot(None),
            or_(
                Purchase.transfer_record_id.is_(None),
                Transfer.status != TransferStatusEnum.PENDING.value,
            ),
        )
        .order_by(Purchase.id.asc())
        .all()
    )


def build_payout_groups(
    db: Session,
    *,
    creator_id: int,
    destination_resolver: DestinationResolver = resolve_destination_account,
) -> list[PayoutGroup]:
    destinations: dict[int, str | None] = {}

    def _destination(marketer_id: int) -> str | None:
        if marketer_id not in destinations:
            destinations[marketer_id] = destination_resolver(db, marketer_id)
        return destinations[marketer_id]

    groups: dict[PayoutGroupKey, PayoutGroup] = {}
    for purchase in select_payout_candidates(db, creator_id=creator_id):
        account = _destination(purchase.marketer_id)
        if not account:
            continue
        key = PayoutGroupKey(account, purchase.currency.lower())
        group = groups.setdefault(key, PayoutGroup(key=key, marketer_id=purchase.marketer_id))
        group.purchases.append(purchase)

    for adjustment in list_pending_adjustments(db, creator_id=creator_id):
        account = _destination(adjustment.marketer_id)
        if not account:
            continue
        key = PayoutGroupKey(account, adjustment.currency.lower())
        group = groups.setdefault(key, PayoutGroup(key=key, marketer_id=adjustment.marketer_id))
        group.adjustments.append(adjustment)

    return [groups[key] for key in sorted(groups)]


def preview_payouts(
    db: Session,
    *,
    creator_id: int,
    destination_resolver: DestinationResolver = resolve_destination_account,
) -> list[dict[str, Any]]:
    """Read-only view of the next payout run, with platform fees per sale."""
    preview = []
    for group in build_payout_groups(db, creator_id=creator_id, destination_resolver=destination_resolver):
        lines = []
        for purchase in group.purchases:
            fee = platform_fee(purchase.amount)
            lines.append(
                {
                    "purchase_id": purchase.id,
                    "project_id": purchase.project_id,
                    "amount": purchase.amount,
                    "marketer_commission": purchase.commission_amount,
                    "platform_fee": fee,
                    "merchant_net": purchase.amount - purchase.commission_amount - fee,
                }
            )
        net = group.net_amount
        preview.append(
            {
                "marketer_id": group.marketer_id,
                "destination_account": group.key.destination_account,
                "currency": group.key.currency,
                "commission_total": group.commission_total,
                "adjustment_total": group.adjustment_total,
                "net_amount": net,
                "platform_total": sum(line["platform_fee"] for line in lines),
                "will_skip": net < settings.PAYOUT_MIN_AMOUNT,
                "lines": lines,
            }
        )
    return preview


def _claim_group(db: Session, group: PayoutGroup, transfer_id: int) -> bool:
    by_previous_link: dict[int | None, list[int]] = {}
    for purchase in group.purchases:
        by_previous_link.setdefault(purchase.transfer_record_id, []).append(purchase.id)

    claimed = 0
    for previous, ids in by_previous_link.items():
        link_clause = (
            Purchase.transfer_record_id.is_(None)
            if previous is None
            else Purchase.transfer_record_id == previous
        )
        claimed += (
            db.query(Purchase)
            .filter(
                Purchase.id.in_(ids),
                link_clause,
                Purchase.commission_status == CommissionStatusEnum.READY_FOR_PAYOUT.value,
                Purchase.payment_status != PaymentStatusEnum.PAID.value,
            )
            .update({Purchase.transfer_record_id: transfer_id}, synchronize_session=False)
        )

    adjustment_ids = [a.id for a in group.adjustments]
    claimed_adjustments = 0
    if adjustment_ids:
        claimed_adjustments = (
            db.query(CommissionAdjustment)
            .filter(
                CommissionAdjustment.id.in_(adjustment_ids),
                CommissionAdjustment.status == AdjustmentStatusEnum.PENDING.value,
                CommissionAdjustment.transfer_record_id.is_(None),
            )
            .update({CommissionAdjustment.transfer_record_id: transfer_id}, synchronize_session=False)
        )
    return claimed == len(group.purchases) and claimed_adjustments == len(adjustment_ids)


def _release_adjustments(db: Session, transfer_id: int) -> None:
    (
        db.query(CommissionAdjustment)
        .filter(
            CommissionAdjustment.transfer_record_id == transfer_id,
            CommissionAdjustment.status == AdjustmentStatusEnum.PENDING.value,
        )
        .update({CommissionAdjustment.transfer_record_id: None}, synchronize_session=False)
    )


def _result(group: PayoutGroup, status: PayoutGroupStatusEnum, **kwargs) -> PayoutGroupResult:
    return PayoutGroupResult(
        marketer_id=group.marketer_id,
        destination_account=group.key.destination_account,
        currency=group.key.currency,
        purchase_count=len(group.purchases),
        adjustment_count=len(group.adjustments),
        amount=group.net_amount,
        status=status,
        **kwargs,
    )


def _mark_transfer_failed(
    db: Session,
    transfer: Transfer,
    reason: str,
    now: datetime,
    *,
    attempted: bool = True,
) -> None:
    transfer.status = TransferStatusEnum.FAILED.value
    transfer.failure_reason = reason
    transfer.completed_at = now
    if attempted:
        (
            db.query(Purchase)
            .filter(Purchase.transfer_record_id == transfer.id, Purchase.payment_status != PaymentStatusEnum.PAID.value)
            .update({Purchase.payment_status: PaymentStatusEnum.FAILED.value}, synchronize_session=False)
        )
    _release_adjustments(db, transfer.id)
    db.commit()


def _mark_transfer_paid(db: Session, transfer: Transfer, external_id: str, now: datetime) -> int:
    transfer.status = TransferStatusEnum.PAID.value
    transfer.external_transfer_id = external_id
    transfer.completed_at = now
    paid = (
        db.query(Purchase)
        .filter(
            Purchase.transfer_record_id == transfer.id,
            Purchase.commission_status == CommissionStatusEnum.READY_FOR_PAYOUT.value,
        )
        .update(
            {
                Purchase.commission_status: CommissionStatusEnum.PAID.value,
                Purchase.payment_status: PaymentStatusEnum.PAID.value,
                Purchase.transfer_id: external_id,
                Purchase.paid_at: now,
            },
            synchronize_session=False,
        )
    )
    for _ in range(paid):
        record_commission_transition(CommissionStatusEnum.READY_FOR_PAYOUT, CommissionStatusEnum.PAID)
    # Refunded while the transfer was in flight: the money went out anyway.
    refunded_in_flight = (
        db.query(Purchase, Project)
        .join(Project, Project.id == Purchase.project_id)
        .filter(
            Purchase.transfer_record_id == transfer.id,
            Purchase.commission_status.in_(
                [CommissionStatusEnum.REFUNDED.value, CommissionStatusEnum.CHARGEBACK.value]
            ),
        )
        .all()
    )
    for purchase, project in refunded_in_flight:
        purchase.payment_status = PaymentStatusEnum.PAID.value
        purchase.transfer_id = external_id
        purchase.paid_at = now
        create_clawback(db, purchase, project, reason="refunded while payout was in flight")
    (
        db.query(CommissionAdjustment)
        .filter(
            CommissionAdjustment.transfer_record_id == transfer.id,
            CommissionAdjustment.status == AdjustmentStatusEnum.PENDING.value,
        )
        .update(
            {
                CommissionAdjustment.status: AdjustmentStatusEnum.APPLIED.value,
                CommissionAdjustment.applied_at: now,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return paid


def _settle_group(
    db: Session,
    group: PayoutGroup,
    *,
    creator_id: int,
    client: TransferClient,
    now: datetime,
) -> PayoutGroupResult:
    net = group.net_amount
    if net < settings.PAYOUT_MIN_AMOUNT:
        reason = SKIP_NON_POSITIVE if net <= 0 else f"net amount below minimum payout of {settings.PAYOUT_MIN_AMOUNT}"
        logger.info(
            "payout.group_skipped",
            extra={"creator_id": creator_id, "marketer_id": group.marketer_id, "net_amount": net, "reason": reason},
        )
        return _result(group, PayoutGroupStatusEnum.SKIPPED, error=reason)

    transfer = Transfer(
        kind=TransferKindEnum.COMMISSION.value,
        creator_id=creator_id,
        marketer_id=group.marketer_id,
        destination_account=group.key.destination_account,
        amount=net,
        currency=group.key.currency,
        status=TransferStatusEnum.PENDING.value,
        item_count=len(group.purchases),
    )
    db.add(transfer)
    db.flush()
    if not _claim_group(db, group, transfer.id):
        _mark_transfer_failed(db, transfer, CONCURRENT_CLAIM, now, attempted=False)
        logger.warning("payout.claim_conflict", extra={"transfer_record_id": transfer.id})
        return _result(group, PayoutGroupStatusEnum.FAILED, transfer_record_id=transfer.id, error=CONCURRENT_CLAIM)
    db.commit()

    transfer_record_id = transfer.id
    purchase_ids = [p.id for p in group.purchases]
    metadata = {
        "creator_id": creator_id,
        "marketer_id": group.marketer_id,
        "purchase_ids": ",".join(str(pid) for pid in purchase_ids),
        "adjustment_ids": ",".join(str(a.id) for a in group.adjustments),
        "transfer_record_id": transfer_record_id,
    }
    try:
        with trace_span(
            "payout.transfer",
            transfer_record_id=transfer_record_id,
            destination_account=group.key.destination_account,
            amount=net,
            currency=group.key.currency,
        ):
            receipt = client.issue_transfer(
                destination_account=group.key.destination_account,
                amount=net,
                currency=group.key.currency,
                idempotency_key=f"transfer-{transfer_record_id}",
                metadata=metadata,
            )
    except TransferError as exc:
        reason = exc.message
    except Exception as exc:
        logger.exception("payout.transfer_unexpected_error", extra={"transfer_record_id": transfer_record_id})
        reason = str(exc) or exc.__class__.__name__
    else:
        _mark_transfer_paid(db, transfer, receipt.external_id, now)
        result = _result(
            group,
            PayoutGroupStatusEnum.PAID,
            transfer_id=receipt.external_id,
            transfer_record_id=transfer_record_id,
        )
        try:
            _after_paid(db, group, transfer, creator_id=creator_id)
        except Exception:
            db.rollback()
            logger.exception("payout.post_settlement_failed", extra={"transfer_record_id": transfer_record_id})
        return result

    _mark_transfer_failed(db, transfer, reason, now)
    _after_failed(db, group, transfer, creator_id=creator_id, reason=reason)
    return _result(group, PayoutGroupStatusEnum.FAILED, transfer_record_id=transfer_record_id, error=reason)


def _after_paid(db: Session, group: PayoutGroup, transfer: Transfer, *, creator_id: int) -> None:
    logger.info(
        "payout.transfer_paid",
        extra={
            "transfer_record_id": transfer.id,
            "external_transfer_id": transfer.external_transfer_id,
            "amount": transfer.amount,
            "currency": transfer.currency,
        },
    )
    audit.record_event(
        db,
        event_type=audit.PAYOUT_SENT,
        actor_id=creator_id,
        subject_type="transfer",
        subject_id=transfer.id,
        data={
            "marketer_id": group.marketer_id,
            "amount": transfer.amount,
            "currency": transfer.currency,
            "purchase_ids": [p.id for p in group.purchases],
            "adjustment_ids": [a.id for a in group.adjustments],
            "external_transfer_id": transfer.external_transfer_id,
        },
    )
    payload = {"transfer_record_id": transfer.id}
    title, message = messages.payout_sent(transfer.amount, transfer.currency)
    notify(db, user_id=group.marketer_id, type=notification_types.PAYOUT_SENT, title=title, message=message, data=payload)
    marketer = db.query(User).filter(User.id == group.marketer_id).first()
    name = marketer.display_name if marketer is not None else f"marketer {group.marketer_id}"
    title, message = messages.payout_issued(name, transfer.amount, transfer.currency)
    notify(db, user_id=creator_id, type=notification_types.PAYOUT_SENT, title=title, message=message, data=payload)


def _after_failed(db: Session, group: PayoutGroup, transfer: Transfer, *, creator_id: int, reason: str) -> None:
    logger.warning(
        "payout.transfer_failed",
        extra={"transfer_record_id": transfer.id, "failure_reason": reason},
    )
    audit.record_event(
        db,
        event_type=audit.PAYOUT_FAILED,
        actor_id=creator_id,
        subject_type="transfer",
        subject_id=transfer.id,
        data={"marketer_id": group.marketer_id, "amount": transfer.amount, "reason": reason},
    )
    title, message = messages.payout_failed(transfer.amount, transfer.currency)
    notify(
        db,
        user_id=creator_id,
        type=notification_types.PAYOUT_FAILED,
        title=title,
        message=message,
        data={"transfer_record_id": transfer.id, "reason": reason},
    )


def run_payout_batch(
    db: Session,
    *,
    creator_id: int,
    transfer_client: TransferClient | None = None,
    destination_resolver: DestinationResolver = resolve_destination_account,
    now: datetime | None = None,
) -> list[PayoutGroupResult]:
    now = now or utcnow()
    client = transfer_client or get_transfer_client()
    evaluate_refund_windows(db, creator_id=creator_id, now=now)
    groups = build_payout_groups(db, creator_id=creator_id, destination_resolver=destination_resolver)

    results: list[PayoutGroupResult] = []
    for group in groups:
        try:
            result = _settle_group(db, group, creator_id=creator_id, client=client, now=now)
        except Exception as exc:
            db.rollback()
            logger.exception(
                "payout.group_error",
                extra={"creator_id": creator_id, "marketer_id": group.marketer_id, "currency": group.key.currency},
            )
            result = _result(group, PayoutGroupStatusEnum.FAILED, error=str(exc) or exc.__class__.__name__)
        record_transfer(
            kind=TransferKindEnum.COMMISSION.value,
            status=result.status.value,
            amount=result.amount,
            currency=result.currency,
        )
        results.append(result)

    logger.info(
        "payout.batch_complete",
        extra={
            "creator_id": creator_id,
            "groups": len(results),
            "paid": sum(1 for r in results if r.status == PayoutGroupStatusEnum.PAID),
            "failed": sum(1 for r in results if r.status == PayoutGroupStatusEnum.FAILED),
            "skipped": sum(1 for r in results if r.status == PayoutGroupStatusEnum.SKIPPED),
        },
    )
    return results
