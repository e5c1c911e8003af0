from __future__ import annotations

import argparse
import logging

from sqlalchemy.orm import Session

from revshare.core.db import SessionLocal
from revshare.core.logging import configure_job_logging
from revshare.core.metrics import record_job_run
from revshare.core.rewards import RewardEvaluationSummary, evaluate_rewards


logger = logging.getLogger(__name__)


def run_rewards_evaluator(db: Session, *, project_id: int | None = None) -> RewardEvaluationSummary:
    return evaluate_rewards(db, project_id=project_id)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Grant newly crossed reward milestones.")
    parser.add_argument("--project-id", type=int, default=None, help="Limit to one project.")
    return parser.parse_args()


def main() -> None:
    configure_job_logging()
    args = _parse_args()
    success = True
    try:
        with SessionLocal() as db:
            summary = run_rewards_evaluator(db, project_id=args.project_id)
        logger.info(
            "Rewards evaluator complete. rewards=%s grants=%s failed=%s",
            summary.rewards_evaluated,
            summary.grants_created,
            summary.marketers_failed,
        )
        if summary.marketers_failed:
            success = False
    except Exception:
        success = False
        logger.exception("Rewards evaluator failed")
        raise
    finally:
        record_job_run(job_name="rewards_evaluator", success=success)


if __name__ == "__main__":
    main()
