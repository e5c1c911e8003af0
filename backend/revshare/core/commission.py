from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy.orm import Session

from revshare.core.config import normalize_commission_percent, settings
from revshare.core.errors import contract_not_found, invalid_commission_percent
from revshare.models.enums import ContractStatusEnum
from revshare.models.projects import Contract, Project


TERMS_SOURCE_CONTRACT = "contract"
TERMS_SOURCE_PROJECT = "project"
TERMS_SOURCE_DIRECT = "direct"


@dataclass(frozen=True)
class ContractTerms:
    commission_percent: Decimal
    refund_window_days: int
    source: str


@dataclass(frozen=True)
class CommissionQuote:
    commission_amount: int
    commission_percent: Decimal
    refund_window_days: int
    refund_eligible_at: datetime
    is_direct: bool


def to_write_percent(value) -> Decimal:
    """Normalize a caller-supplied percent before it is stored."""
    try:
        return Decimal(str(normalize_commission_percent(value)))
    except (TypeError, ValueError, InvalidOperation):
        raise invalid_commission_percent(value) from None


def stored_fraction(value) -> Decimal:
    """Read-side check. Stored percents are already fractions."""
    if value is None:
        raise invalid_commission_percent(value)
    fraction = Decimal(str(value))
    if fraction < 0 or fraction > 1:
        raise invalid_commission_percent(str(value))
    return fraction


def get_approved_contract(db: Session, *, project_id: int, marketer_id: int) -> Contract | None:
    return (
        db.query(Contract)
        .filter(
            Contract.project_id == project_id,
            Contract.marketer_id == marketer_id,
            Contract.status == ContractStatusEnum.APPROVED.value,
        )
        .first()
    )


def _window_days(contract: Contract | None, project: Project) -> int:
    if contract is not None and contract.refund_window_days is not None:
        return int(contract.refund_window_days)
    if project.refund_window_days is not None:
        return int(project.refund_window_days)
    return settings.DEFAULT_REFUND_WINDOW_DAYS


def resolve_contract_terms(db: Session, *, project: Project, marketer_id: int | None) -> ContractTerms:
    if marketer_id is None:
        return ContractTerms(Decimal("0"), _window_days(None, project), TERMS_SOURCE_DIRECT)
    contract = get_approved_contract(db, project_id=project.id, marketer_id=marketer_id)
    if contract is not None:
        return ContractTerms(
            stored_fraction(contract.commission_percent),
            _window_days(contract, project),
            TERMS_SOURCE_CONTRACT,
        )
    if project.marketer_commission_percent is None:
        raise contract_not_found(project.id, marketer_id)
    return ContractTerms(
        stored_fraction(project.marketer_commission_percent),
        _window_days(None, project),
        TERMS_SOURCE_PROJECT,
    )


def compute_commission(gross: int, fraction: Decimal) -> int:
    # Half-up at .5 of a minor unit.
    amount = (Decimal(gross) * fraction).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    commission = int(amount)
    if commission < 0 or commission > gross:
        raise ValueError(f"commission {commission} outside [0, {gross}]")
    return commission


def quote_commission(
    db: Session,
    *,
    project: Project,
    marketer_id: int | None,
    amount: int,
    occurred_at: datetime,
) -> CommissionQuote:
    terms = resolve_contract_terms(db, project=project, marketer_id=marketer_id)
    return CommissionQuote(
        commission_amount=compute_commission(amount, terms.commission_percent),
        commission_percent=terms.commission_percent,
        refund_window_days=terms.refund_window_days,
        refund_eligible_at=occurred_at + timedelta(days=terms.refund_window_days),
        is_direct=terms.source == TERMS_SOURCE_DIRECT,
    )


def platform_fee(amount: int) -> int:
    fraction = Decimal(str(settings.PLATFORM_COMMISSION_PERCENT))
    return int((Decimal(amount) * fraction).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
