from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from revshare.api.dependencies import require_admin_token
from revshare.core.db import get_db
from revshare.core.reward_payouts import run_reward_payouts
from revshare.core.rewards import claim_reward, evaluate_rewards
from revshare.crud.rewards import list_rewards_earned
from revshare.crud.users import get_user
from revshare.integrations.transfers import TransferClient, get_transfer_client
from revshare.schemas.payouts import (
    PayoutGroupResultRead,
    PayoutRunRequest,
    ProjectScopedRequest,
    RewardClaimRequest,
    RewardEarnedRead,
    RewardEvaluationSummaryRead,
)


router = APIRouter(prefix="/admin/rewards", tags=["admin"], dependencies=[Depends(require_admin_token)])


def _earned_read(earned) -> RewardEarnedRead:
    return RewardEarnedRead(
        id=earned.id,
        reward_id=earned.reward_id,
        marketer_id=earned.marketer_id,
        sequence=earned.sequence,
        status=earned.status,
        reward_amount=earned.reward_amount,
        reward_currency=earned.reward_currency,
        earned_at=earned.earned_at,
        claimed_at=earned.claimed_at,
        paid_at=earned.paid_at,
    )


@router.post("/evaluate", response_model=RewardEvaluationSummaryRead)
def evaluate_reward_milestones(payload: ProjectScopedRequest, db: Session = Depends(get_db)):
    summary = evaluate_rewards(db, project_id=payload.project_id)
    return RewardEvaluationSummaryRead(
        rewards_evaluated=summary.rewards_evaluated,
        grants_created=summary.grants_created,
        marketers_failed=summary.marketers_failed,
    )


@router.get("/{reward_id}/earned", response_model=list[RewardEarnedRead])
def list_reward_grants(reward_id: int, db: Session = Depends(get_db)):
    return [_earned_read(earned) for earned in list_rewards_earned(db, reward_id=reward_id)]


@router.post("/earned/{reward_earned_id}/claim", response_model=RewardEarnedRead)
def claim_reward_grant(reward_earned_id: int, payload: RewardClaimRequest, db: Session = Depends(get_db)):
    earned = claim_reward(db, reward_earned_id=reward_earned_id, marketer_id=payload.marketer_id)
    return _earned_read(earned)


@router.post("/payouts/run", response_model=list[PayoutGroupResultRead])
def run_money_reward_payouts(
    payload: PayoutRunRequest,
    db: Session = Depends(get_db),
    transfer_client: TransferClient = Depends(get_transfer_client),
):
    if get_user(db, payload.creator_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Creator not found")
    results = run_reward_payouts(db, creator_id=payload.creator_id, transfer_client=transfer_client)
    return [PayoutGroupResultRead(**result.to_dict()) for result in results]
