from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from revshare.core import audit
from revshare.core.errors import TransferError
from revshare.core.metrics import record_transfer
from revshare.core.payouts import (
    DestinationResolver,
    PayoutGroupKey,
    PayoutGroupResult,
    resolve_destination_account,
)
from revshare.core.time import utcnow
from revshare.core.tracing import trace_span
from revshare.integrations.transfers import TransferClient, get_transfer_client
from revshare.models.enums import (
    PayoutGroupStatusEnum,
    RewardEarnedStatusEnum,
    RewardTypeEnum,
    TransferKindEnum,
    TransferStatusEnum,
)
from revshare.models.payouts import Transfer
from revshare.models.projects import Project
from revshare.models.rewards import Reward, RewardEarned
from revshare.notifications import dispatcher as notification_types
from revshare.notifications import messages, notify


logger = logging.getLogger(__name__)


def select_unpaid_money_rewards(db: Session, *, creator_id: int) -> list[RewardEarned]:
    return (
        db.query(RewardEarned)
        .join(Reward, Reward.id == RewardEarned.reward_id)
        .join(Project, Project.id == Reward.project_id)
        .outerjoin(Transfer, Transfer.id == RewardEarned.reward_transfer_id)
        .filter(
            Project.creator_id == creator_id,
            Reward.reward_type == RewardTypeEnum.MONEY.value,
            RewardEarned.status == RewardEarnedStatusEnum.UNLOCKED.value,
            RewardEarned.reward_amount > 0,
            or_(
                RewardEarned.reward_transfer_id.is_(None),
                Transfer.status != TransferStatusEnum.PENDING.value,
            ),
        )
        .order_by(RewardEarned.id.asc())
        .all()
    )


def _claim(db: Session, grants: list[RewardEarned], transfer_id: int) -> bool:
    claimed = 0
    for grant in grants:
        link_clause = (
            RewardEarned.reward_transfer_id.is_(None)
            if grant.reward_transfer_id is None
            else RewardEarned.reward_transfer_id == grant.reward_transfer_id
        )
        claimed += (
            db.query(RewardEarned)
            .filter(
                RewardEarned.id == grant.id,
                RewardEarned.status == RewardEarnedStatusEnum.UNLOCKED.value,
                link_clause,
            )
            .update({RewardEarned.reward_transfer_id: transfer_id}, synchronize_session=False)
        )
    return claimed == len(grants)


def _pay_group(
    db: Session,
    key: PayoutGroupKey,
    grants: list[RewardEarned],
    *,
    creator_id: int,
    client: TransferClient,
    now: datetime,
) -> PayoutGroupResult:
    marketer_id = grants[0].marketer_id
    amount = sum(grant.reward_amount for grant in grants)
    grant_ids = [grant.id for grant in grants]
    result = PayoutGroupResult(
        marketer_id=marketer_id,
        destination_account=key.destination_account,
        currency=key.currency,
        purchase_count=len(grants),
        amount=amount,
        status=PayoutGroupStatusEnum.FAILED,
    )

    transfer = Transfer(
        kind=TransferKindEnum.REWARD.value,
        creator_id=creator_id,
        marketer_id=marketer_id,
        destination_account=key.destination_account,
        amount=amount,
        currency=key.currency,
        status=TransferStatusEnum.PENDING.value,
        item_count=len(grants),
    )
    db.add(transfer)
    db.flush()
    result.transfer_record_id = transfer.id
    if not _claim(db, grants, transfer.id):
        transfer.status = TransferStatusEnum.FAILED.value
        transfer.failure_reason = "concurrent payout claimed part of this group"
        transfer.completed_at = now
        db.commit()
        result.error = transfer.failure_reason
        return result
    db.commit()

    try:
        with trace_span("reward_payout.transfer", transfer_record_id=result.transfer_record_id, amount=amount):
            receipt = client.issue_transfer(
                destination_account=key.destination_account,
                amount=amount,
                currency=key.currency,
                idempotency_key=f"transfer-{result.transfer_record_id}",
                metadata={
                    "creator_id": creator_id,
                    "marketer_id": marketer_id,
                    "reward_earned_ids": ",".join(str(gid) for gid in grant_ids),
                    "transfer_record_id": result.transfer_record_id,
                },
            )
    except TransferError as exc:
        reason = exc.message
    except Exception as exc:
        logger.exception("reward_payout.transfer_unexpected_error", extra={"transfer_record_id": result.transfer_record_id})
        reason = str(exc) or exc.__class__.__name__
    else:
        transfer.status = TransferStatusEnum.PAID.value
        transfer.external_transfer_id = receipt.external_id
        transfer.completed_at = now
        (
            db.query(RewardEarned)
            .filter(
                RewardEarned.reward_transfer_id == result.transfer_record_id,
                RewardEarned.status == RewardEarnedStatusEnum.UNLOCKED.value,
            )
            .update(
                {RewardEarned.status: RewardEarnedStatusEnum.PAID.value, RewardEarned.paid_at: now},
                synchronize_session=False,
            )
        )
        db.commit()
        result.status = PayoutGroupStatusEnum.PAID
        result.transfer_id = receipt.external_id
        for grant in grants:
            db.refresh(grant)
            reward = grant.reward
            audit.record_event(
                db,
                event_type=audit.REWARD_PAID,
                actor_id=creator_id,
                project_id=reward.project_id,
                subject_type="reward_earned",
                subject_id=grant.id,
                data={"transfer_record_id": result.transfer_record_id, "amount": grant.reward_amount},
            )
            title, message = messages.reward_paid(reward.name, grant.reward_amount, grant.reward_currency)
            notify(
                db,
                user_id=grant.marketer_id,
                type=notification_types.REWARD,
                title=title,
                message=message,
                data={"reward_earned_id": grant.id},
            )
        return result

    transfer.status = TransferStatusEnum.FAILED.value
    transfer.failure_reason = reason
    transfer.completed_at = now
    db.commit()
    logger.warning(
        "reward_payout.transfer_failed",
        extra={"transfer_record_id": result.transfer_record_id, "failure_reason": reason},
    )
    result.error = reason
    return result


def run_reward_payouts(
    db: Session,
    *,
    creator_id: int,
    transfer_client: TransferClient | None = None,
    destination_resolver: DestinationResolver = resolve_destination_account,
    now: datetime | None = None,
) -> list[PayoutGroupResult]:
    """Pay unlocked MONEY rewards, one transfer per account and currency."""
    now = now or utcnow()
    client = transfer_client or get_transfer_client()
    destinations: dict[int, str | None] = {}
    groups: dict[PayoutGroupKey, list[RewardEarned]] = {}
    for grant in select_unpaid_money_rewards(db, creator_id=creator_id):
        if grant.marketer_id not in destinations:
            destinations[grant.marketer_id] = destination_resolver(db, grant.marketer_id)
        account = destinations[grant.marketer_id]
        if not account:
            continue
        key = PayoutGroupKey(account, (grant.reward_currency or "").lower())
        groups.setdefault(key, []).append(grant)

    results: list[PayoutGroupResult] = []
    for key in sorted(groups):
        try:
            result = _pay_group(db, key, groups[key], creator_id=creator_id, client=client, now=now)
        except Exception as exc:
            db.rollback()
            logger.exception("reward_payout.group_error", extra={"creator_id": creator_id, "currency": key.currency})
            result = PayoutGroupResult(
                marketer_id=groups[key][0].marketer_id,
                destination_account=key.destination_account,
                currency=key.currency,
                purchase_count=len(groups[key]),
                amount=sum(grant.reward_amount for grant in groups[key]),
                status=PayoutGroupStatusEnum.FAILED,
                error=str(exc) or exc.__class__.__name__,
            )
        record_transfer(
            kind=TransferKindEnum.REWARD.value,
            status=result.status.value,
            amount=result.amount,
            currency=result.currency,
        )
        results.append(result)
    return results
