from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from revshare.core.db import Base
from revshare.models.enums import (
    AttributionKindEnum,
    AvailabilityEnum,
    EarnLimitEnum,
    RewardEarnedStatusEnum,
    RewardStatusEnum,
)
from revshare.models.mixins import TimestampMixin
from revshare.core.time import utcnow


JSON_TYPE = JSONB().with_variant(JSON, "sqlite")


class Reward(TimestampMixin, Base):
    __tablename__ = "rewards"
    __table_args__ = (
        Index("ix_rewards_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    milestone_type = Column(String, nullable=False)
    # NET_REVENUE thresholds are minor units; other types are counts.
    milestone_value = Column(Integer, nullable=False)
    reward_type = Column(String, nullable=False)
    reward_amount = Column(Integer, nullable=True)
    reward_currency = Column(String(3), nullable=True)
    earn_limit = Column(String, nullable=False, default=EarnLimitEnum.ONCE_PER_MARKETER.value)
    availability = Column(String, nullable=False, default=AvailabilityEnum.UNLIMITED.value)
    availability_cap = Column(Integer, nullable=True)
    allowed_marketer_ids = Column(JSON_TYPE, nullable=True)
    status = Column(String, nullable=False, default=RewardStatusEnum.DRAFT.value)
    starts_at = Column(DateTime, nullable=True)

    project = relationship("Project", lazy="joined")


class RewardEarned(TimestampMixin, Base):
    __tablename__ = "rewards_earned"
    __table_args__ = (
        UniqueConstraint("reward_id", "marketer_id", "sequence", name="uq_rewards_earned_sequence"),
        Index("ix_rewards_earned_marketer", "marketer_id"),
        Index("ix_rewards_earned_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    reward_id = Column(Integer, ForeignKey("rewards.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    marketer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sequence = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=RewardEarnedStatusEnum.UNLOCKED.value)
    metric_value = Column(Integer, nullable=True)
    reward_amount = Column(Integer, nullable=True)
    reward_currency = Column(String(3), nullable=True)
    earned_at = Column(DateTime, nullable=False, default=utcnow)
    claimed_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    reward_transfer_id = Column(Integer, ForeignKey("transfers.id", ondelete="SET NULL"), nullable=True)

    reward = relationship("Reward", lazy="joined")


class AttributionClick(Base):
    __tablename__ = "attribution_clicks"
    __table_args__ = (
        Index("ix_attribution_clicks_scope", "project_id", "marketer_id", "kind", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    marketer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String, nullable=False, default=AttributionKindEnum.CLICK.value)
    device_id = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
