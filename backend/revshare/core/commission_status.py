"""Commission lifecycle for a single purchase.

Statuses only move forward. ``PAID``, ``REFUNDED`` and ``CHARGEBACK`` are
terminal. Bulk promotions go through :func:`compare_and_set_status` so two
concurrent evaluators can never both move the same row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session

from revshare.core.errors import InvalidTransition
from revshare.core.metrics import record_commission_transition
from revshare.models.enums import CommissionStatusEnum, PaymentStatusEnum
from revshare.models.purchases import Purchase


_S = CommissionStatusEnum

ALLOWED_TRANSITIONS: dict[CommissionStatusEnum, frozenset[CommissionStatusEnum]] = {
    _S.AWAITING_REFUND_WINDOW: frozenset(
        {_S.PENDING_CREATOR_PAYMENT, _S.READY_FOR_PAYOUT, _S.REFUNDED, _S.CHARGEBACK}
    ),
    _S.PENDING_CREATOR_PAYMENT: frozenset({_S.READY_FOR_PAYOUT, _S.REFUNDED, _S.CHARGEBACK}),
    _S.READY_FOR_PAYOUT: frozenset({_S.PAID, _S.REFUNDED, _S.CHARGEBACK}),
    _S.PAID: frozenset(),
    _S.REFUNDED: frozenset(),
    _S.CHARGEBACK: frozenset(),
}

_uncovered = set(CommissionStatusEnum) - set(ALLOWED_TRANSITIONS)
if _uncovered:
    raise RuntimeError(f"commission statuses missing from transition table: {sorted(_uncovered)}")

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)


def coerce_status(value) -> CommissionStatusEnum:
    if isinstance(value, CommissionStatusEnum):
        return value
    return CommissionStatusEnum(value)


def can_transition(current, target) -> bool:
    return coerce_status(target) in ALLOWED_TRANSITIONS[coerce_status(current)]


def is_terminal(status) -> bool:
    return coerce_status(status) in TERMINAL_STATUSES


def initial_status(
    commission_amount: int,
    refund_eligible_at: datetime | None,
    now: datetime,
) -> tuple[CommissionStatusEnum, PaymentStatusEnum]:
    if commission_amount <= 0:
        return _S.PAID, PaymentStatusEnum.PAID
    if refund_eligible_at is not None and now >= refund_eligible_at:
        return _S.PENDING_CREATOR_PAYMENT, PaymentStatusEnum.PENDING
    return _S.AWAITING_REFUND_WINDOW, PaymentStatusEnum.PENDING


def transition(purchase: Purchase, target) -> CommissionStatusEnum:
    current = coerce_status(purchase.commission_status)
    target = coerce_status(target)
    if not can_transition(current, target):
        raise InvalidTransition(
            message=f"Cannot move commission from {current.value} to {target.value}",
            details={"purchase_id": purchase.id, "from": current.value, "to": target.value},
        )
    purchase.commission_status = target.value
    record_commission_transition(current, target)
    return target


def compare_and_set_status(
    db: Session,
    purchase_ids: Iterable[int],
    *,
    expected,
    target,
    values: dict | None = None,
) -> int:
    """Move rows still in ``expected`` to ``target``. Returns rows changed."""
    expected = coerce_status(expected)
    target = coerce_status(target)
    if not can_transition(expected, target):
        raise InvalidTransition(
            message=f"Cannot move commission from {expected.value} to {target.value}",
            details={"from": expected.value, "to": target.value},
        )
    ids = list(purchase_ids)
    if not ids:
        return 0
    updates = {Purchase.commission_status: target.value}
    for key, value in (values or {}).items():
        updates[getattr(Purchase, key)] = value
    changed = (
        db.query(Purchase)
        .filter(Purchase.id.in_(ids), Purchase.commission_status == expected.value)
        .update(updates, synchronize_session=False)
    )
    for _ in range(changed):
        record_commission_transition(expected, target)
    return changed
