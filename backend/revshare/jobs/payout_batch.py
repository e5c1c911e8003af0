from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from revshare.core.db import SessionLocal
from revshare.core.logging import configure_job_logging
from revshare.core.metrics import record_job_run
from revshare.core.payouts import PayoutGroupResult, run_payout_batch
from revshare.core.reward_payouts import run_reward_payouts
from revshare.integrations.transfers import TransferClient, get_transfer_client
from revshare.models.enums import AdjustmentStatusEnum, CommissionStatusEnum
from revshare.models.payouts import CommissionAdjustment
from revshare.models.projects import Project
from revshare.models.purchases import Purchase


logger = logging.getLogger(__name__)


def creators_with_open_commissions(db: Session) -> list[int]:
    open_statuses = [
        CommissionStatusEnum.AWAITING_REFUND_WINDOW.value,
        CommissionStatusEnum.PENDING_CREATOR_PAYMENT.value,
        CommissionStatusEnum.READY_FOR_PAYOUT.value,
    ]
    from_purchases = {
        row[0]
        for row in db.query(Project.creator_id)
        .join(Purchase, Purchase.project_id == Project.id)
        .filter(Purchase.commission_status.in_(open_statuses))
        .distinct()
        .all()
    }
    from_adjustments = {
        row[0]
        for row in db.query(CommissionAdjustment.creator_id)
        .filter(CommissionAdjustment.status == AdjustmentStatusEnum.PENDING.value)
        .distinct()
        .all()
    }
    return sorted(from_purchases | from_adjustments)


@dataclass
class PayoutJobReport:
    results: dict[int, list[PayoutGroupResult]] = field(default_factory=dict)
    failed_creator_ids: list[int] = field(default_factory=list)


def run_payout_job(
    db: Session,
    *,
    creator_ids: list[int] | None = None,
    include_rewards: bool = False,
    transfer_client: TransferClient | None = None,
) -> PayoutJobReport:
    client = transfer_client or get_transfer_client()
    report = PayoutJobReport()
    for creator_id in creator_ids or creators_with_open_commissions(db):
        try:
            results = run_payout_batch(db, creator_id=creator_id, transfer_client=client)
            if include_rewards:
                results.extend(run_reward_payouts(db, creator_id=creator_id, transfer_client=client))
        except Exception:
            db.rollback()
            logger.exception("payout.creator_failed", extra={"creator_id": creator_id})
            report.failed_creator_ids.append(creator_id)
            continue
        report.results[creator_id] = results
    return report


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Settle payout-eligible commissions into transfers.")
    parser.add_argument("--creator-id", type=int, action="append", dest="creator_ids", help="Creator to settle; repeatable.")
    parser.add_argument("--rewards", action="store_true", help="Also pay unlocked money rewards.")
    return parser.parse_args()


def main() -> None:
    configure_job_logging()
    args = _parse_args()
    success = True
    try:
        with SessionLocal() as db:
            report = run_payout_job(db, creator_ids=args.creator_ids, include_rewards=args.rewards)
        for creator_id, results in report.results.items():
            logger.info(
                "Payout batch complete. creator_id=%s results=%s",
                creator_id,
                json.dumps([result.to_dict() for result in results]),
            )
        if report.failed_creator_ids:
            success = False
            logger.error("Payout batch failed for creators %s", report.failed_creator_ids)
    except Exception:
        success = False
        logger.exception("Payout batch failed")
        raise
    finally:
        record_job_run(job_name="payout_batch", success=success)


if __name__ == "__main__":
    main()
