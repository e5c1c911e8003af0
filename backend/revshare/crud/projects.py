from sqlalchemy import func
from sqlalchemy.orm import Session

from revshare.core.commission import to_write_percent
from revshare.models.enums import ContractStatusEnum
from revshare.models.projects import Contract, Coupon, Project


def create_project(
    db: Session,
    *,
    creator_id: int,
    name: str,
    currency: str = "usd",
    marketer_commission_percent=None,
    refund_window_days: int | None = None,
) -> Project:
    project = Project(
        creator_id=creator_id,
        name=name,
        currency=currency.lower(),
        marketer_commission_percent=(
            to_write_percent(marketer_commission_percent) if marketer_commission_percent is not None else None
        ),
        refund_window_days=refund_window_days,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def get_project(db: Session, project_id: int) -> Project | None:
    return db.query(Project).filter(Project.id == project_id).first()


def create_contract(
    db: Session,
    *,
    project_id: int,
    marketer_id: int,
    commission_percent,
    refund_window_days: int | None = None,
    status: str = ContractStatusEnum.PENDING.value,
) -> Contract:
    contract = Contract(
        project_id=project_id,
        marketer_id=marketer_id,
        commission_percent=to_write_percent(commission_percent),
        refund_window_days=refund_window_days,
        status=ContractStatusEnum(status).value,
    )
    db.add(contract)
    db.commit()
    db.refresh(contract)
    return contract


def create_coupon(db: Session, *, project_id: int, code: str, marketer_id: int | None = None) -> Coupon:
    coupon = Coupon(project_id=project_id, code=code.strip(), marketer_id=marketer_id)
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


def get_coupon_by_code(db: Session, *, project_id: int, code: str) -> Coupon | None:
    return (
        db.query(Coupon)
        .filter(Coupon.project_id == project_id, func.lower(Coupon.code) == code.strip().lower())
        .first()
    )
