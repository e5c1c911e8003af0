from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)

from revshare.core.db import Base
from revshare.models.enums import CommissionStatusEnum, PaymentStatusEnum
from revshare.models.mixins import TimestampMixin


class Purchase(TimestampMixin, Base):
    __tablename__ = "purchases"
    __table_args__ = (
        UniqueConstraint("project_id", "external_event_id", name="uq_purchases_project_event"),
        UniqueConstraint("project_id", "external_transaction_id", name="uq_purchases_project_transaction"),
        Index("ix_purchases_commission_status", "commission_status"),
        Index("ix_purchases_payment_status", "payment_status"),
        Index("ix_purchases_refund_eligible_at", "refund_eligible_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False, index=True)
    marketer_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)

    # Minor units (cents).
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    commission_percent = Column(Numeric(7, 6), nullable=False, default=0)
    commission_amount = Column(Integer, nullable=False, default=0)
    commission_amount_original = Column(Integer, nullable=False, default=0)
    refunded_amount = Column(Integer, nullable=True)
    is_direct = Column(Boolean, nullable=False, default=False)

    commission_status = Column(String, nullable=False, default=CommissionStatusEnum.AWAITING_REFUND_WINDOW.value)
    payment_status = Column(String, nullable=False, default=PaymentStatusEnum.PENDING.value)

    refund_window_days = Column(Integer, nullable=True)
    refund_eligible_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    occurred_at = Column(DateTime, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    # External processor transfer id, and the local Transfer row it settled through.
    transfer_id = Column(String, nullable=True)
    transfer_record_id = Column(Integer, ForeignKey("transfers.id", ondelete="SET NULL"), nullable=True, index=True)

    external_event_id = Column(String, nullable=True)
    external_transaction_id = Column(String, nullable=True)
