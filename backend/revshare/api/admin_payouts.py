from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from revshare.api.dependencies import require_admin_token
from revshare.core.db import get_db
from revshare.core.ingestion import SaleEvent, ingest_sale, record_refund
from revshare.core.payouts import preview_payouts, run_payout_batch
from revshare.core.refund_window import evaluate_refund_windows
from revshare.core.reward_payouts import run_reward_payouts
from revshare.crud.payouts import create_adjustment, list_transfers
from revshare.crud.users import get_user
from revshare.integrations.transfers import TransferClient, get_transfer_client
from revshare.models.enums import TransferStatusEnum
from revshare.schemas.payouts import (
    AdjustmentCreate,
    AdjustmentRead,
    CreatorScopedRequest,
    PayoutGroupResultRead,
    PayoutPreviewGroup,
    PayoutRunRequest,
    PurchaseRead,
    RefundEventCreate,
    RefundWindowSummaryRead,
    SaleEventCreate,
    TransferRead,
)


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_token)])


def _purchase_read(purchase, *, created: bool = False) -> PurchaseRead:
    return PurchaseRead(
        id=purchase.id,
        project_id=purchase.project_id,
        marketer_id=purchase.marketer_id,
        amount=purchase.amount,
        currency=purchase.currency,
        commission_amount=purchase.commission_amount,
        commission_amount_original=purchase.commission_amount_original,
        refunded_amount=purchase.refunded_amount,
        commission_status=purchase.commission_status,
        payment_status=purchase.payment_status,
        refund_eligible_at=purchase.refund_eligible_at,
        transfer_id=purchase.transfer_id,
        transfer_record_id=purchase.transfer_record_id,
        created=created,
    )


def _transfer_read(transfer) -> TransferRead:
    return TransferRead(
        id=transfer.id,
        kind=transfer.kind,
        creator_id=transfer.creator_id,
        marketer_id=transfer.marketer_id,
        destination_account=transfer.destination_account,
        amount=transfer.amount,
        currency=transfer.currency,
        status=transfer.status,
        item_count=transfer.item_count,
        external_transfer_id=transfer.external_transfer_id,
        failure_reason=transfer.failure_reason,
        created_at=transfer.created_at,
        completed_at=transfer.completed_at,
    )


def _require_creator(db: Session, creator_id: int) -> None:
    if get_user(db, creator_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Creator not found")


@router.post("/sales", response_model=PurchaseRead)
def ingest_sale_event(payload: SaleEventCreate, db: Session = Depends(get_db)):
    result = ingest_sale(db, SaleEvent(**payload.model_dump()))
    return _purchase_read(result.purchase, created=result.created)


@router.post("/refunds", response_model=PurchaseRead)
def ingest_refund_event(payload: RefundEventCreate, db: Session = Depends(get_db)):
    if not payload.transaction_id and not payload.event_id:
        raise HTTPException(status_code=422, detail="transaction_id or event_id is required")
    purchase = record_refund(
        db,
        project_id=payload.project_id,
        transaction_id=payload.transaction_id,
        event_id=payload.event_id,
        refunded_amount=payload.refunded_amount,
        chargeback=payload.chargeback,
    )
    return _purchase_read(purchase)


@router.post("/adjustments", response_model=AdjustmentRead, status_code=status.HTTP_201_CREATED)
def create_commission_adjustment(payload: AdjustmentCreate, db: Session = Depends(get_db)):
    _require_creator(db, payload.creator_id)
    adjustment = create_adjustment(db, **payload.model_dump())
    return AdjustmentRead(
        id=adjustment.id,
        creator_id=adjustment.creator_id,
        marketer_id=adjustment.marketer_id,
        amount=adjustment.amount,
        currency=adjustment.currency,
        reason=adjustment.reason,
        status=adjustment.status,
    )


@router.post("/refund-windows/evaluate", response_model=RefundWindowSummaryRead)
def evaluate_refund_window_endpoint(payload: CreatorScopedRequest, db: Session = Depends(get_db)):
    summary = evaluate_refund_windows(db, creator_id=payload.creator_id)
    return RefundWindowSummaryRead(
        backfilled=summary.backfilled,
        ready=summary.ready,
        pending_creator_payment=summary.pending_creator_payment,
    )


@router.get("/payouts/preview", response_model=list[PayoutPreviewGroup])
def preview_payout_run(creator_id: int, db: Session = Depends(get_db)):
    _require_creator(db, creator_id)
    return preview_payouts(db, creator_id=creator_id)


@router.post("/payouts/run", response_model=list[PayoutGroupResultRead])
def run_payouts(
    payload: PayoutRunRequest,
    db: Session = Depends(get_db),
    transfer_client: TransferClient = Depends(get_transfer_client),
):
    _require_creator(db, payload.creator_id)
    results = run_payout_batch(db, creator_id=payload.creator_id, transfer_client=transfer_client)
    if payload.include_rewards:
        results.extend(run_reward_payouts(db, creator_id=payload.creator_id, transfer_client=transfer_client))
    return [PayoutGroupResultRead(**result.to_dict()) for result in results]


@router.get("/transfers", response_model=list[TransferRead])
def list_transfer_records(
    creator_id: Optional[int] = None,
    status_filter: Optional[str] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    if status_filter and status_filter not in {item.value for item in TransferStatusEnum}:
        raise HTTPException(status_code=422, detail="Invalid transfer status")
    transfers = list_transfers(db, creator_id=creator_id, status=status_filter, limit=min(max(limit, 1), 500))
    return [_transfer_read(transfer) for transfer in transfers]
