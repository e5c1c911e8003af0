"""Reward milestone evaluation and claiming.

Grants are append-only: a run only inserts the sequences a marketer has
newly crossed, so re-running over unchanged data creates nothing. The
(reward, marketer, sequence) unique constraint settles races between
concurrent evaluators.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from revshare.core import audit
from revshare.core.errors import reward_not_claimable
from revshare.core.metrics import record_reward_grant
from revshare.core.time import utcnow
from revshare.crud.rewards import get_reward_earned, list_active_rewards
from revshare.models.enums import (
    AttributionKindEnum,
    AvailabilityEnum,
    CommissionStatusEnum,
    EarnLimitEnum,
    MilestoneTypeEnum,
    RewardEarnedStatusEnum,
    RewardTypeEnum,
)
from revshare.models.projects import Coupon
from revshare.models.purchases import Purchase
from revshare.models.rewards import AttributionClick, Reward, RewardEarned
from revshare.notifications import dispatcher as notification_types
from revshare.notifications import messages, notify


logger = logging.getLogger(__name__)

_EXCLUDED_STATUSES = [CommissionStatusEnum.REFUNDED.value, CommissionStatusEnum.CHARGEBACK.value]


@dataclass
class MarketerProgress:
    marketer_id: int
    metric: int
    first_activity_at: datetime | None


@dataclass
class RewardEvaluationSummary:
    rewards_evaluated: int = 0
    grants_created: int = 0
    marketers_failed: int = 0


def reward_start(reward: Reward) -> datetime:
    return reward.starts_at or reward.created_at


def _purchase_progress(db: Session, reward: Reward, start: datetime, now: datetime) -> list[tuple]:
    marketer_col = func.coalesce(Coupon.marketer_id, Purchase.marketer_id)
    if reward.milestone_type == MilestoneTypeEnum.NET_REVENUE.value:
        metric = func.sum(Purchase.amount - func.coalesce(Purchase.refunded_amount, 0))
    else:
        metric = func.count(Purchase.id)
    return (
        db.query(marketer_col, metric, func.min(Purchase.occurred_at))
        .select_from(Purchase)
        .outerjoin(Coupon, Coupon.id == Purchase.coupon_id)
        .filter(
            Purchase.project_id == reward.project_id,
            Purchase.commission_status.notin_(_EXCLUDED_STATUSES),
            Purchase.refund_eligible_at.isnot(None),
            Purchase.refund_eligible_at <= now,
            Purchase.occurred_at >= start,
        )
        .group_by(marketer_col)
        .all()
    )


def _attribution_progress(db: Session, reward: Reward, start: datetime, kind: AttributionKindEnum) -> list[tuple]:
    return (
        db.query(AttributionClick.marketer_id, func.count(AttributionClick.id), func.min(AttributionClick.created_at))
        .filter(
            AttributionClick.project_id == reward.project_id,
            AttributionClick.kind == kind.value,
            AttributionClick.created_at >= start,
        )
        .group_by(AttributionClick.marketer_id)
        .all()
    )


def marketer_progress(db: Session, reward: Reward, *, now: datetime) -> list[MarketerProgress]:
    start = reward_start(reward)
    milestone_type = MilestoneTypeEnum(reward.milestone_type)
    if milestone_type == MilestoneTypeEnum.CLICKS:
        rows = _attribution_progress(db, reward, start, AttributionKindEnum.CLICK)
    elif milestone_type == MilestoneTypeEnum.INSTALLS:
        rows = _attribution_progress(db, reward, start, AttributionKindEnum.INSTALL)
    else:
        rows = _purchase_progress(db, reward, start, now)

    allowed = {int(value) for value in (reward.allowed_marketer_ids or [])}
    progress = []
    for marketer_id, metric, first_at in rows:
        if marketer_id is None:
            continue
        if allowed and int(marketer_id) not in allowed:
            continue
        progress.append(MarketerProgress(int(marketer_id), int(metric or 0), first_at))
    # Earliest activity first, so FIRST_N admits in arrival order.
    progress.sort(key=lambda item: (item.first_activity_at or now, item.marketer_id))
    return progress


def desired_grants(reward: Reward, metric: int) -> int:
    if not reward.milestone_value or reward.milestone_value <= 0:
        return 0
    achieved = metric // reward.milestone_value
    if achieved <= 0:
        return 0
    if reward.earn_limit == EarnLimitEnum.ONCE_PER_MARKETER.value:
        return 1
    return achieved


def _granted_sequences(db: Session, reward_id: int) -> dict[int, int]:
    rows = (
        db.query(RewardEarned.marketer_id, func.max(RewardEarned.sequence))
        .filter(RewardEarned.reward_id == reward_id)
        .group_by(RewardEarned.marketer_id)
        .all()
    )
    return {int(marketer_id): int(max_sequence or 0) for marketer_id, max_sequence in rows}


def _admitted_marketers(db: Session, reward_id: int, *, lock: bool = False) -> set[int]:
    if lock:
        # Serializes FIRST_N admissions; released by the commit or rollback below.
        db.query(Reward.id).filter(Reward.id == reward_id).with_for_update().one()
    rows = db.query(RewardEarned.marketer_id).filter(RewardEarned.reward_id == reward_id).distinct().all()
    return {int(row[0]) for row in rows}


def _announce_grant(db: Session, reward: Reward, earned: RewardEarned) -> None:
    project = reward.project
    audit.record_event(
        db,
        event_type=audit.REWARD_EARNED,
        actor_id=earned.marketer_id,
        project_id=reward.project_id,
        subject_type="reward_earned",
        subject_id=earned.id,
        data={
            "reward_id": reward.id,
            "sequence": earned.sequence,
            "metric_value": earned.metric_value,
            "reward_type": reward.reward_type,
            "reward_amount": earned.reward_amount,
            "reward_currency": earned.reward_currency,
        },
    )
    payload = {"reward_id": reward.id, "reward_earned_id": earned.id}
    title, message = messages.reward_unlocked(reward.name, project.name)
    notify(db, user_id=earned.marketer_id, type=notification_types.REWARD, title=title, message=message, data=payload)
    title, message = messages.reward_earned(reward.name, project.name)
    notify(db, user_id=project.creator_id, type=notification_types.REWARD, title=title, message=message, data=payload)


def evaluate_reward(db: Session, reward: Reward, *, now: datetime) -> tuple[int, int]:
    """Grant newly crossed milestones for one reward. Returns (created, failed)."""
    if not reward.milestone_value or reward.milestone_value <= 0:
        logger.info("reward.skipped_invalid_milestone", extra={"reward_id": reward.id})
        return 0, 0

    granted = _granted_sequences(db, reward.id)
    first_n = reward.availability == AvailabilityEnum.FIRST_N.value
    cap = int(reward.availability_cap or 0)
    admitted = set(granted)
    is_money = reward.reward_type == RewardTypeEnum.MONEY.value
    reward_id = reward.id
    milestone_type = reward.milestone_type

    created: list[RewardEarned] = []
    failed = 0
    for progress in marketer_progress(db, reward, now=now):
        desired = desired_grants(reward, progress.metric)
        already = granted.get(progress.marketer_id, 0)
        if desired <= already:
            continue
        if first_n and progress.marketer_id not in admitted:
            if len(admitted) >= cap:
                continue
            # The admitted set may be stale; recount under the reward lock.
            admitted = _admitted_marketers(db, reward_id, lock=True)
            if progress.marketer_id not in admitted and len(admitted) >= cap:
                db.rollback()
                logger.info(
                    "reward.cap_reached",
                    extra={"reward_id": reward_id, "marketer_id": progress.marketer_id, "cap": cap},
                )
                continue

        rows = [
            RewardEarned(
                reward_id=reward.id,
                project_id=reward.project_id,
                marketer_id=progress.marketer_id,
                sequence=sequence,
                status=RewardEarnedStatusEnum.UNLOCKED.value,
                metric_value=progress.metric,
                reward_amount=reward.reward_amount if is_money else None,
                reward_currency=reward.reward_currency if is_money else None,
                earned_at=now,
            )
            for sequence in range(already + 1, desired + 1)
        ]
        try:
            db.add_all(rows)
            db.commit()
        except IntegrityError:
            # Another evaluator granted these sequences first.
            db.rollback()
            logger.info(
                "reward.concurrent_grant",
                extra={"reward_id": reward_id, "marketer_id": progress.marketer_id},
            )
            continue
        except SQLAlchemyError:
            db.rollback()
            failed += 1
            logger.exception(
                "reward.grant_failed",
                extra={"reward_id": reward_id, "marketer_id": progress.marketer_id},
            )
            continue

        admitted.add(progress.marketer_id)
        granted[progress.marketer_id] = desired
        created.extend(rows)
        record_reward_grant(milestone_type, len(rows))
        logger.info(
            "reward.granted",
            extra={
                "reward_id": reward_id,
                "marketer_id": progress.marketer_id,
                "sequences": [row.sequence for row in rows],
                "metric_value": progress.metric,
            },
        )

    for earned in created:
        _announce_grant(db, reward, earned)
    return len(created), failed


def evaluate_rewards(
    db: Session,
    *,
    project_id: int | None = None,
    now: datetime | None = None,
) -> RewardEvaluationSummary:
    now = now or utcnow()
    summary = RewardEvaluationSummary()
    for reward in list_active_rewards(db, project_id=project_id):
        created, failed = evaluate_reward(db, reward, now=now)
        summary.rewards_evaluated += 1
        summary.grants_created += created
        summary.marketers_failed += failed
    return summary


def claim_reward(
    db: Session,
    *,
    reward_earned_id: int,
    marketer_id: int | None = None,
    now: datetime | None = None,
) -> RewardEarned:
    now = now or utcnow()
    earned = get_reward_earned(db, reward_earned_id)
    if earned is None or (marketer_id is not None and earned.marketer_id != marketer_id):
        raise reward_not_claimable(reward_earned_id, "Reward not found for this marketer")
    if earned.reward.reward_type == RewardTypeEnum.MONEY.value:
        raise reward_not_claimable(reward_earned_id, "Money rewards are paid out, not claimed")
    if earned.status == RewardEarnedStatusEnum.CLAIMED.value:
        return earned
    if earned.status != RewardEarnedStatusEnum.UNLOCKED.value:
        raise reward_not_claimable(reward_earned_id, f"Reward is {earned.status}")

    changed = (
        db.query(RewardEarned)
        .filter(
            RewardEarned.id == earned.id,
            RewardEarned.status == RewardEarnedStatusEnum.UNLOCKED.value,
        )
        .update(
            {RewardEarned.status: RewardEarnedStatusEnum.CLAIMED.value, RewardEarned.claimed_at: now},
            synchronize_session=False,
        )
    )
    db.commit()
    db.refresh(earned)
    if not changed:
        return earned

    reward = earned.reward
    audit.record_event(
        db,
        event_type=audit.REWARD_CLAIMED,
        actor_id=earned.marketer_id,
        project_id=reward.project_id,
        subject_type="reward_earned",
        subject_id=earned.id,
        data={"reward_id": reward.id, "sequence": earned.sequence},
    )
    payload = {"reward_id": reward.id, "reward_earned_id": earned.id}
    title, message = messages.reward_claimed(reward.name, reward.project.name)
    notify(db, user_id=earned.marketer_id, type=notification_types.REWARD, title=title, message=message, data=payload)
    title, message = messages.reward_claimed_creator(reward.name, reward.project.name)
    notify(db, user_id=reward.project.creator_id, type=notification_types.REWARD, title=title, message=message, data=payload)
    return earned
