from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from revshare.models.activity import Notification


logger = logging.getLogger(__name__)

REFERRAL_SALE = "REFERRAL_SALE"
COMMISSION_DUE = "COMMISSION_DUE"
SALE = "SALE"
REFUND = "REFUND"
CHARGEBACK = "CHARGEBACK"
PAYOUT_SENT = "PAYOUT_SENT"
PAYOUT_FAILED = "PAYOUT_FAILED"
REWARD = "REWARD"


def notify(
    db: Session,
    *,
    user_id: int | None,
    type: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> Notification | None:
    # Best effort: the money state is already committed when this runs.
    if user_id is None:
        return None
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data_json=data or {},
    )
    try:
        db.add(notification)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("notification.create_failed", extra={"user_id": user_id, "notification_type": type})
        return None
    return notification


def list_notifications(db: Session, *, user_id: int, limit: int = 50) -> list[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.id.desc())
        .limit(limit)
        .all()
    )
