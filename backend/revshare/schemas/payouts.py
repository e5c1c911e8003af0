from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class SaleEventCreate(BaseModel):
    project_id: int
    amount: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    occurred_at: datetime
    event_id: Optional[str] = None
    transaction_id: Optional[str] = None
    marketer_id: Optional[int] = None
    coupon_code: Optional[str] = None


class RefundEventCreate(BaseModel):
    project_id: int
    transaction_id: Optional[str] = None
    event_id: Optional[str] = None
    refunded_amount: Optional[int] = Field(default=None, ge=0)
    chargeback: bool = False


class PurchaseRead(BaseModel):
    id: int
    project_id: int
    marketer_id: Optional[int] = None
    amount: int
    currency: str
    commission_amount: int
    commission_amount_original: int
    refunded_amount: Optional[int] = None
    commission_status: str
    payment_status: str
    refund_eligible_at: Optional[datetime] = None
    transfer_id: Optional[str] = None
    transfer_record_id: Optional[int] = None
    created: bool = False


class AdjustmentCreate(BaseModel):
    creator_id: int
    marketer_id: int
    amount: int
    currency: str = Field(min_length=3, max_length=3)
    reason: Optional[str] = None
    project_id: Optional[int] = None


class AdjustmentRead(BaseModel):
    id: int
    creator_id: int
    marketer_id: int
    amount: int
    currency: str
    reason: Optional[str] = None
    status: str


class PayoutRunRequest(BaseModel):
    creator_id: int
    include_rewards: bool = False


class CreatorScopedRequest(BaseModel):
    creator_id: Optional[int] = None


class ProjectScopedRequest(BaseModel):
    project_id: Optional[int] = None


class PayoutGroupResultRead(BaseModel):
    marketer_id: int
    destination_account: str
    currency: str
    purchase_count: int
    adjustment_count: int = 0
    amount: int
    status: str
    transfer_id: Optional[str] = None
    transfer_record_id: Optional[int] = None
    error: Optional[str] = None


class PayoutPreviewLine(BaseModel):
    purchase_id: int
    project_id: int
    amount: int
    marketer_commission: int
    platform_fee: int
    merchant_net: int


class PayoutPreviewGroup(BaseModel):
    marketer_id: int
    destination_account: str
    currency: str
    commission_total: int
    adjustment_total: int
    net_amount: int
    platform_total: int
    will_skip: bool
    lines: list[PayoutPreviewLine]


class RefundWindowSummaryRead(BaseModel):
    backfilled: int
    ready: int
    pending_creator_payment: int


class RewardEvaluationSummaryRead(BaseModel):
    rewards_evaluated: int
    grants_created: int
    marketers_failed: int


class RewardClaimRequest(BaseModel):
    marketer_id: Optional[int] = None


class RewardEarnedRead(BaseModel):
    id: int
    reward_id: int
    marketer_id: int
    sequence: int
    status: str
    reward_amount: Optional[int] = None
    reward_currency: Optional[str] = None
    earned_at: datetime
    claimed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


class TransferRead(BaseModel):
    id: int
    kind: str
    creator_id: int
    marketer_id: int
    destination_account: str
    amount: int
    currency: str
    status: str
    item_count: int
    external_transfer_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
