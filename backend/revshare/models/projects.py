from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from revshare.core.db import Base
from revshare.models.mixins import TimestampMixin


class Project(TimestampMixin, Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    name = Column(String, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    # Fraction in [0, 1]; None means marketers need an approved contract.
    marketer_commission_percent = Column(Numeric(7, 6), nullable=True)
    refund_window_days = Column(Integer, nullable=True)

    creator = relationship("User", lazy="joined")


class Contract(TimestampMixin, Base):
    __tablename__ = "contracts"
    __table_args__ = (
        UniqueConstraint("project_id", "marketer_id", name="uq_contracts_project_marketer"),
    )

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    marketer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    commission_percent = Column(Numeric(7, 6), nullable=False)
    refund_window_days = Column(Integer, nullable=True)
    status = Column(String, nullable=False, default="PENDING")


class Coupon(TimestampMixin, Base):
    __tablename__ = "coupons"
    __table_args__ = (
        UniqueConstraint("project_id", "code", name="uq_coupons_project_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    marketer_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    code = Column(String, nullable=False)
