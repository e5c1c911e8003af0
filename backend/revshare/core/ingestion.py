"""Sale and refund ingestion.

A sale event becomes exactly one Purchase. Events are matched on their
external event id OR transaction id within the project, so replays and
out-of-order deliveries of the same sale are no-ops.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from revshare.core import audit
from revshare.core.commission import quote_commission
from revshare.core.commission_status import initial_status, is_terminal, transition
from revshare.core.errors import (
    coupon_not_found,
    invalid_sale_event,
    marketer_not_found,
    project_not_found,
    purchase_not_found,
)
from revshare.core.metrics import record_purchase_ingested
from revshare.core.time import normalize_ts, utcnow
from revshare.crud.projects import get_coupon_by_code, get_project
from revshare.crud.purchases import find_existing_purchase
from revshare.models.enums import (
    AdjustmentStatusEnum,
    CommissionStatusEnum,
    PaymentStatusEnum,
    UserRoleEnum,
)
from revshare.models.payouts import CommissionAdjustment
from revshare.models.projects import Project
from revshare.models.purchases import Purchase
from revshare.models.users import User
from revshare.notifications import messages, notify
from revshare.notifications import dispatcher as notification_types


logger = logging.getLogger(__name__)

_CURRENCY_RE = re.compile(r"^[a-z]{3}$")


@dataclass
class SaleEvent:
    project_id: int
    amount: int
    currency: str
    occurred_at: datetime
    event_id: str | None = None
    transaction_id: str | None = None
    marketer_id: int | None = None
    coupon_code: str | None = None


@dataclass
class IngestResult:
    purchase: Purchase
    created: bool


def _validate_amount(value, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise invalid_sale_event(f"{field_name} must be an integer amount in minor units", **{field_name: value})
    if value < 0:
        raise invalid_sale_event(f"{field_name} must not be negative", **{field_name: value})
    return value


def _validate_currency(value) -> str:
    currency = (value or "").strip().lower()
    if not _CURRENCY_RE.match(currency):
        raise invalid_sale_event("currency must be a three-letter code", currency=value)
    return currency


def _resolve_marketer(db: Session, project: Project, event: SaleEvent) -> tuple[int | None, int | None]:
    marketer_id = event.marketer_id
    coupon_id = None
    if event.coupon_code:
        coupon = get_coupon_by_code(db, project_id=project.id, code=event.coupon_code)
        if coupon is None:
            raise coupon_not_found(event.coupon_code)
        coupon_id = coupon.id
        if coupon.marketer_id is not None:
            marketer_id = coupon.marketer_id
    if marketer_id is None:
        return None, coupon_id
    marketer = db.query(User).filter(User.id == marketer_id).first()
    if marketer is None or marketer.role != UserRoleEnum.MARKETER.value:
        raise marketer_not_found(marketer_id)
    return marketer.id, coupon_id


def _notify_sale(db: Session, project: Project, purchase: Purchase) -> None:
    payload = {"purchase_id": purchase.id, "project_id": project.id}
    if purchase.marketer_id is not None:
        title, message = messages.referral_sale(project.name, purchase.amount, purchase.currency)
        notify(
            db,
            user_id=purchase.marketer_id,
            type=notification_types.REFERRAL_SALE,
            title=title,
            message=message,
            data=payload,
        )
    if purchase.commission_amount > 0:
        title, message = messages.commission_due(project.name, purchase.commission_amount, purchase.currency)
        kind = notification_types.COMMISSION_DUE
    else:
        title, message = messages.new_sale(project.name, purchase.amount, purchase.currency)
        kind = notification_types.SALE
    notify(db, user_id=project.creator_id, type=kind, title=title, message=message, data=payload)


def ingest_sale(db: Session, event: SaleEvent, *, now: datetime | None = None) -> IngestResult:
    now = now or utcnow()
    amount = _validate_amount(event.amount, "amount")
    currency = _validate_currency(event.currency)
    if not event.event_id and not event.transaction_id:
        raise invalid_sale_event("sale event needs an event id or a transaction id")
    occurred_at = normalize_ts(event.occurred_at)
    if occurred_at is None:
        raise invalid_sale_event("sale event needs occurred_at")

    project = get_project(db, event.project_id)
    if project is None:
        raise project_not_found(event.project_id)

    existing = find_existing_purchase(
        db,
        project_id=project.id,
        event_id=event.event_id,
        transaction_id=event.transaction_id,
    )
    if existing is not None:
        record_purchase_ingested("duplicate")
        logger.info(
            "ingest.duplicate",
            extra={"purchase_id": existing.id, "event_id": event.event_id, "transaction_id": event.transaction_id},
        )
        return IngestResult(purchase=existing, created=False)

    try:
        marketer_id, coupon_id = _resolve_marketer(db, project, event)
        quote = quote_commission(
            db,
            project=project,
            marketer_id=marketer_id,
            amount=amount,
            occurred_at=occurred_at,
        )
    except Exception:
        record_purchase_ingested("rejected")
        raise

    commission_status, payment_status = initial_status(quote.commission_amount, quote.refund_eligible_at, now)
    purchase = Purchase(
        project_id=project.id,
        marketer_id=marketer_id,
        coupon_id=coupon_id,
        amount=amount,
        currency=currency,
        commission_percent=quote.commission_percent,
        commission_amount=quote.commission_amount,
        commission_amount_original=quote.commission_amount,
        is_direct=quote.is_direct,
        commission_status=commission_status.value,
        payment_status=payment_status.value,
        refund_window_days=quote.refund_window_days,
        refund_eligible_at=quote.refund_eligible_at,
        occurred_at=occurred_at,
        paid_at=now if payment_status == PaymentStatusEnum.PAID else None,
        external_event_id=event.event_id,
        external_transaction_id=event.transaction_id,
    )
    db.add(purchase)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent delivery of the same sale.
        db.rollback()
        existing = find_existing_purchase(
            db,
            project_id=project.id,
            event_id=event.event_id,
            transaction_id=event.transaction_id,
        )
        if existing is None:
            raise
        record_purchase_ingested("duplicate")
        return IngestResult(purchase=existing, created=False)
    db.refresh(purchase)
    record_purchase_ingested("created")
    logger.info(
        "ingest.created",
        extra={
            "purchase_id": purchase.id,
            "project_id": project.id,
            "marketer_id": marketer_id,
            "commission_amount": purchase.commission_amount,
            "commission_status": purchase.commission_status,
        },
    )

    audit.record_event(
        db,
        event_type=audit.PURCHASE_CREATED,
        actor_id=marketer_id,
        project_id=project.id,
        subject_type="purchase",
        subject_id=purchase.id,
        data={
            "amount": purchase.amount,
            "currency": purchase.currency,
            "commission_amount": purchase.commission_amount,
            "commission_status": purchase.commission_status,
            "is_direct": purchase.is_direct,
        },
    )
    _notify_sale(db, project, purchase)
    return IngestResult(purchase=purchase, created=True)


def _clawback_exists(db: Session, purchase_id: int) -> bool:
    return (
        db.query(CommissionAdjustment.id)
        .filter(CommissionAdjustment.purchase_id == purchase_id, CommissionAdjustment.amount < 0)
        .first()
        is not None
    )


def create_clawback(db: Session, purchase: Purchase, project: Project, *, reason: str) -> CommissionAdjustment | None:
    """Queue a debit for commission that was already paid out. Caller commits."""
    if purchase.marketer_id is None or purchase.commission_amount <= 0:
        return None
    if _clawback_exists(db, purchase.id):
        return None
    adjustment = CommissionAdjustment(
        creator_id=project.creator_id,
        marketer_id=purchase.marketer_id,
        project_id=project.id,
        purchase_id=purchase.id,
        amount=-purchase.commission_amount,
        currency=purchase.currency,
        reason=reason,
        status=AdjustmentStatusEnum.PENDING.value,
    )
    db.add(adjustment)
    return adjustment


def record_refund(
    db: Session,
    *,
    project_id: int,
    transaction_id: str | None = None,
    event_id: str | None = None,
    refunded_amount: int | None = None,
    chargeback: bool = False,
    now: datetime | None = None,
) -> Purchase:
    """Apply a refund or chargeback to the matching purchase.

    Unsettled commission moves to ``REFUNDED``/``CHARGEBACK``. Commission
    that was already paid stays ``PAID`` and a negative adjustment is
    queued so the next payout recovers it. Repeat events are no-ops.
    """
    now = now or utcnow()
    if refunded_amount is not None:
        _validate_amount(refunded_amount, "refunded_amount")
    project = get_project(db, project_id)
    if project is None:
        raise project_not_found(project_id)
    purchase = find_existing_purchase(db, project_id=project_id, event_id=event_id, transaction_id=transaction_id)
    if purchase is None:
        raise purchase_not_found(project_id, transaction_id=transaction_id, event_id=event_id)

    current = CommissionStatusEnum(purchase.commission_status)
    if current in (CommissionStatusEnum.REFUNDED, CommissionStatusEnum.CHARGEBACK) or purchase.refunded_at is not None:
        logger.info("refund.duplicate", extra={"purchase_id": purchase.id})
        return purchase

    target = CommissionStatusEnum.CHARGEBACK if chargeback else CommissionStatusEnum.REFUNDED
    amount = refunded_amount if refunded_amount is not None else purchase.amount
    purchase.refunded_at = now
    purchase.refunded_amount = amount

    clawback = None
    if is_terminal(current):
        clawback = create_clawback(
            db,
            purchase,
            project,
            reason="chargeback after payout" if chargeback else "refund after payout",
        )
    else:
        transition(purchase, target)
    db.commit()
    db.refresh(purchase)
    logger.info(
        "refund.recorded",
        extra={
            "purchase_id": purchase.id,
            "commission_status": purchase.commission_status,
            "refunded_amount": amount,
            "chargeback": chargeback,
            "clawback_adjustment_id": clawback.id if clawback is not None else None,
        },
    )

    audit.record_event(
        db,
        event_type=audit.CHARGEBACK_CREATED if chargeback else audit.PURCHASE_REFUNDED,
        project_id=project.id,
        subject_type="purchase",
        subject_id=purchase.id,
        data={
            "refunded_amount": amount,
            "currency": purchase.currency,
            "previous_status": current.value,
            "commission_status": purchase.commission_status,
            "clawback_adjustment_id": clawback.id if clawback is not None else None,
        },
    )
    if clawback is not None:
        audit.record_event(
            db,
            event_type=audit.COMMISSION_CLAWBACK,
            project_id=project.id,
            subject_type="commission_adjustment",
            subject_id=clawback.id,
            data={"purchase_id": purchase.id, "amount": clawback.amount, "currency": clawback.currency},
        )
    builder = messages.chargeback_created if chargeback else messages.refund_recorded
    title, message = builder(project.name, amount, purchase.currency)
    kind = notification_types.CHARGEBACK if chargeback else notification_types.REFUND
    for user_id in {project.creator_id, purchase.marketer_id}:
        notify(db, user_id=user_id, type=kind, title=title, message=message, data={"purchase_id": purchase.id})
    return purchase
