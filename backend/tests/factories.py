from datetime import datetime
from uuid import uuid4

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import revshare.core.db as db_module
from revshare.core.errors import TransferError
from revshare.core.ingestion import SaleEvent, ingest_sale
from revshare.crud.projects import create_contract, create_project
from revshare.crud.users import create_user
from revshare.integrations.transfers import TransferClient, TransferReceipt
from revshare.models.enums import ContractStatusEnum, UserRoleEnum


SALE_TIME = datetime(2026, 1, 1, 12, 0, 0)


def setup_db(db_url: str):
    engine = create_engine(
        db_url,
        connect_args={"check_same_thread": False},
        future=True,
    )
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    db_module.engine = engine
    db_module.SessionLocal = SessionLocal
    db_module.Base.metadata.create_all(bind=engine)
    return SessionLocal


def make_creator(db, *, connected_account_id: str | None = "acct_creator"):
    return create_user(
        db,
        email=f"creator_{uuid4().hex[:8]}@example.com",
        role=UserRoleEnum.CREATOR.value,
        connected_account_id=connected_account_id,
    )


def make_marketer(db, *, connected_account_id: str | None = None, name: str | None = None):
    return create_user(
        db,
        email=f"marketer_{uuid4().hex[:8]}@example.com",
        role=UserRoleEnum.MARKETER.value,
        name=name,
        connected_account_id=connected_account_id,
    )


def make_project(db, *, creator, commission_percent=None, refund_window_days: int | None = None, name: str = "Habit App"):
    return create_project(
        db,
        creator_id=creator.id,
        name=name,
        marketer_commission_percent=commission_percent,
        refund_window_days=refund_window_days,
    )


def make_contract(db, *, project, marketer, commission_percent, refund_window_days=None, status=ContractStatusEnum.APPROVED.value):
    return create_contract(
        db,
        project_id=project.id,
        marketer_id=marketer.id,
        commission_percent=commission_percent,
        refund_window_days=refund_window_days,
        status=status,
    )


def make_sale(db, *, project, amount: int, marketer=None, currency: str = "usd", occurred_at=None, now=None, coupon_code=None):
    event = SaleEvent(
        project_id=project.id,
        amount=amount,
        currency=currency,
        occurred_at=occurred_at or SALE_TIME,
        event_id=f"evt_{uuid4().hex}",
        transaction_id=f"txn_{uuid4().hex}",
        marketer_id=marketer.id if marketer is not None else None,
        coupon_code=coupon_code,
    )
    return ingest_sale(db, event, now=now or occurred_at or SALE_TIME).purchase


class FakeTransferClient(TransferClient):
    def __init__(self, failing_accounts=None):
        self.failing_accounts = set(failing_accounts or [])
        self.calls = []

    def issue_transfer(self, *, destination_account, amount, currency, idempotency_key, metadata):
        self.calls.append(
            {
                "destination_account": destination_account,
                "amount": amount,
                "currency": currency,
                "idempotency_key": idempotency_key,
                "metadata": metadata,
            }
        )
        if destination_account in self.failing_accounts:
            raise TransferError("account closed")
        return TransferReceipt(external_id=f"tr_{len(self.calls)}")
