from sqlalchemy import or_
from sqlalchemy.orm import Session

from revshare.models.purchases import Purchase


def find_existing_purchase(
    db: Session,
    *,
    project_id: int,
    event_id: str | None = None,
    transaction_id: str | None = None,
) -> Purchase | None:
    clauses = []
    if event_id:
        clauses.append(Purchase.external_event_id == event_id)
    if transaction_id:
        clauses.append(Purchase.external_transaction_id == transaction_id)
    if not clauses:
        return None
    return (
        db.query(Purchase)
        .filter(Purchase.project_id == project_id, or_(*clauses))
        .order_by(Purchase.id.asc())
        .first()
    )
