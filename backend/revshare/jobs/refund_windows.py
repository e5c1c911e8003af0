from __future__ import annotations

import argparse
import logging

from sqlalchemy.orm import Session

from revshare.core.db import SessionLocal
from revshare.core.logging import configure_job_logging
from revshare.core.metrics import record_job_run
from revshare.core.refund_window import RefundWindowSummary, evaluate_refund_windows


logger = logging.getLogger(__name__)


def run_refund_window_job(db: Session, *, creator_id: int | None = None) -> RefundWindowSummary:
    return evaluate_refund_windows(db, creator_id=creator_id)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Promote purchases whose refund window has elapsed.")
    parser.add_argument("--creator-id", type=int, default=None, help="Limit to one creator.")
    return parser.parse_args()


def main() -> None:
    configure_job_logging()
    args = _parse_args()
    success = True
    try:
        with SessionLocal() as db:
            summary = run_refund_window_job(db, creator_id=args.creator_id)
        logger.info(
            "Refund window job complete. backfilled=%s ready=%s pending_creator_payment=%s",
            summary.backfilled,
            summary.ready,
            summary.pending_creator_payment,
        )
    except Exception:
        success = False
        logger.exception("Refund window job failed")
        raise
    finally:
        record_job_run(job_name="refund_windows", success=success)


if __name__ == "__main__":
    main()
