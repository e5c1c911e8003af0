# Audit events record money-relevant state changes (purchases created,
# refunds, payouts, reward grants). Writes are fire-and-forget: a failed
# audit insert is logged and rolled back, never raised to the caller.

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from revshare.models.activity import AuditEvent

logger = logging.getLogger(__name__)

PURCHASE_CREATED = "PURCHASE_CREATED"
PURCHASE_REFUNDED = "PURCHASE_REFUNDED"
CHARGEBACK_CREATED = "CHARGEBACK_CREATED"
COMMISSION_CLAWBACK = "COMMISSION_CLAWBACK"
ADJUSTMENT_CREATED = "ADJUSTMENT_CREATED"
PAYOUT_SENT = "PAYOUT_SENT"
PAYOUT_FAILED = "PAYOUT_FAILED"
REWARD_EARNED = "REWARD_EARNED"
REWARD_CLAIMED = "REWARD_CLAIMED"
REWARD_PAID = "REWARD_PAID"


def record_event(
    db: Session,
    *,
    event_type: str,
    subject_type: str,
    subject_id,
    actor_id: int | None = None,
    project_id: int | None = None,
    data: dict[str, Any] | None = None,
) -> AuditEvent | None:
    entry = AuditEvent(
        event_type=event_type,
        actor_id=actor_id,
        project_id=project_id,
        subject_type=subject_type,
        subject_id=str(subject_id),
        data_json=data or {},
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "audit.record_failed",
            extra={"event_type": event_type, "subject_type": subject_type, "subject_id": str(subject_id)},
        )
        return None
    return entry


def list_events(db: Session, *, subject_type: str | None = None, subject_id=None, limit: int = 100) -> list[AuditEvent]:
    query = db.query(AuditEvent)
    if subject_type:
        query = query.filter(AuditEvent.subject_type == subject_type)
    if subject_id is not None:
        query = query.filter(AuditEvent.subject_id == str(subject_id))
    return query.order_by(AuditEvent.id.desc()).limit(limit).all()
