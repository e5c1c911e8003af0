from sqlalchemy.orm import Session

from revshare.core.audit import ADJUSTMENT_CREATED, record_event
from revshare.core.errors import invalid_sale_event
from revshare.models.enums import AdjustmentStatusEnum
from revshare.models.payouts import CommissionAdjustment, Transfer


def create_adjustment(
    db: Session,
    *,
    creator_id: int,
    marketer_id: int,
    amount: int,
    currency: str,
    reason: str | None = None,
    project_id: int | None = None,
    purchase_id: int | None = None,
) -> CommissionAdjustment:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
        raise invalid_sale_event("Adjustment amount must be a non-zero integer", amount=amount)
    adjustment = CommissionAdjustment(
        creator_id=creator_id,
        marketer_id=marketer_id,
        amount=amount,
        currency=currency.lower(),
        reason=reason,
        project_id=project_id,
        purchase_id=purchase_id,
        status=AdjustmentStatusEnum.PENDING.value,
    )
    db.add(adjustment)
    db.commit()
    db.refresh(adjustment)
    record_event(
        db,
        event_type=ADJUSTMENT_CREATED,
        actor_id=creator_id,
        project_id=project_id,
        subject_type="commission_adjustment",
        subject_id=adjustment.id,
        data={"amount": amount, "currency": adjustment.currency, "marketer_id": marketer_id, "reason": reason},
    )
    return adjustment


def list_pending_adjustments(db: Session, *, creator_id: int) -> list[CommissionAdjustment]:
    return (
        db.query(CommissionAdjustment)
        .filter(
            CommissionAdjustment.creator_id == creator_id,
            CommissionAdjustment.status == AdjustmentStatusEnum.PENDING.value,
            CommissionAdjustment.transfer_record_id.is_(None),
        )
        .order_by(CommissionAdjustment.id.asc())
        .all()
    )


def list_transfers(
    db: Session,
    *,
    creator_id: int | None = None,
    status: str | None = None,
    limit: int = 100,
) -> list[Transfer]:
    query = db.query(Transfer)
    if creator_id is not None:
        query = query.filter(Transfer.creator_id == creator_id)
    if status:
        query = query.filter(Transfer.status == status)
    return query.order_by(Transfer.id.desc()).limit(limit).all()
