from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from revshare.core.db import Base
from revshare.models.enums import AdjustmentStatusEnum, TransferKindEnum, TransferStatusEnum
from revshare.models.mixins import TimestampMixin


class Transfer(TimestampMixin, Base):
    __tablename__ = "transfers"
    __table_args__ = (
        Index("ix_transfers_creator_status", "creator_id", "status"),
        Index("ix_transfers_marketer", "marketer_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String, nullable=False, default=TransferKindEnum.COMMISSION.value)
    creator_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    marketer_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    destination_account = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String, nullable=False, default=TransferStatusEnum.PENDING.value)
    item_count = Column(Integer, nullable=False, default=0)
    external_transfer_id = Column(String, nullable=True)
    failure_reason = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)


class CommissionAdjustment(TimestampMixin, Base):
    __tablename__ = "commission_adjustments"
    __table_args__ = (
        Index("ix_commission_adjustments_scope", "creator_id", "marketer_id", "currency", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    marketer_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    purchase_id = Column(Integer, ForeignKey("purchases.id", ondelete="SET NULL"), nullable=True)
    # Signed minor units: credits positive, debits (clawbacks) negative.
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    reason = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=AdjustmentStatusEnum.PENDING.value)
    transfer_record_id = Column(Integer, ForeignKey("transfers.id", ondelete="SET NULL"), nullable=True)
    applied_at = Column(DateTime, nullable=True)
