from datetime import datetime

from sqlalchemy.orm import Session

from revshare.core.errors import invalid_reward
from revshare.core.time import utcnow
from revshare.models.enums import (
    AttributionKindEnum,
    AvailabilityEnum,
    EarnLimitEnum,
    MilestoneTypeEnum,
    RewardStatusEnum,
    RewardTypeEnum,
)
from revshare.models.rewards import AttributionClick, Reward, RewardEarned


def _choice(enum_cls, value, field: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        raise invalid_reward(f"Unknown {field} {value!r}", **{field: value}) from None


def create_reward(
    db: Session,
    *,
    project_id: int,
    name: str,
    milestone_type: str,
    milestone_value: int,
    reward_type: str,
    earn_limit: str = EarnLimitEnum.ONCE_PER_MARKETER.value,
    availability: str = AvailabilityEnum.UNLIMITED.value,
    availability_cap: int | None = None,
    reward_amount: int | None = None,
    reward_currency: str | None = None,
    allowed_marketer_ids: list[int] | None = None,
    status: str = RewardStatusEnum.ACTIVE.value,
    starts_at: datetime | None = None,
    description: str | None = None,
) -> Reward:
    reward_type = _choice(RewardTypeEnum, reward_type, "reward_type")
    availability = _choice(AvailabilityEnum, availability, "availability")
    milestone_type = _choice(MilestoneTypeEnum, milestone_type, "milestone_type")
    earn_limit = _choice(EarnLimitEnum, earn_limit, "earn_limit")
    if availability == AvailabilityEnum.FIRST_N.value and not availability_cap:
        raise invalid_reward("FIRST_N rewards need a positive availability_cap", availability_cap=availability_cap)
    if reward_type == RewardTypeEnum.MONEY.value and (not reward_amount or not reward_currency):
        raise invalid_reward(
            "MONEY rewards need reward_amount and reward_currency",
            reward_amount=reward_amount,
            reward_currency=reward_currency,
        )
    reward = Reward(
        project_id=project_id,
        name=name,
        description=description,
        milestone_type=milestone_type,
        milestone_value=milestone_value,
        reward_type=reward_type,
        earn_limit=earn_limit,
        availability=availability,
        availability_cap=availability_cap,
        reward_amount=reward_amount if reward_type == RewardTypeEnum.MONEY.value else None,
        reward_currency=reward_currency.lower() if reward_currency and reward_type == RewardTypeEnum.MONEY.value else None,
        allowed_marketer_ids=list(allowed_marketer_ids) if allowed_marketer_ids else None,
        status=_choice(RewardStatusEnum, status, "status"),
        starts_at=starts_at,
    )
    db.add(reward)
    db.commit()
    db.refresh(reward)
    return reward


def list_active_rewards(db: Session, *, project_id: int | None = None) -> list[Reward]:
    query = db.query(Reward).filter(Reward.status == RewardStatusEnum.ACTIVE.value)
    if project_id is not None:
        query = query.filter(Reward.project_id == project_id)
    return query.order_by(Reward.id.asc()).all()


def list_rewards_earned(db: Session, *, reward_id: int | None = None, marketer_id: int | None = None) -> list[RewardEarned]:
    query = db.query(RewardEarned)
    if reward_id is not None:
        query = query.filter(RewardEarned.reward_id == reward_id)
    if marketer_id is not None:
        query = query.filter(RewardEarned.marketer_id == marketer_id)
    return query.order_by(RewardEarned.id.asc()).all()


def get_reward_earned(db: Session, reward_earned_id: int) -> RewardEarned | None:
    return db.query(RewardEarned).filter(RewardEarned.id == reward_earned_id).first()


def record_attribution(
    db: Session,
    *,
    project_id: int,
    marketer_id: int,
    kind: str = AttributionKindEnum.CLICK.value,
    device_id: str | None = None,
    created_at: datetime | None = None,
) -> AttributionClick:
    click = AttributionClick(
        project_id=project_id,
        marketer_id=marketer_id,
        kind=AttributionKindEnum(kind).value,
        device_id=device_id,
        created_at=created_at or utcnow(),
    )
    db.add(click)
    db.commit()
    db.refresh(click)
    return click
