import os
from datetime import timedelta

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SKIP_MIGRATIONS", "1")

from revshare.core.errors import CommissionValidationError  # noqa: E402
from revshare.core.ingestion import SaleEvent, ingest_sale, record_refund  # noqa: E402
from revshare.crud.projects import create_coupon  # noqa: E402
from revshare.models.activity import AuditEvent, Notification  # noqa: E402
from revshare.models.enums import AdjustmentStatusEnum, CommissionStatusEnum, PaymentStatusEnum  # noqa: E402
from revshare.models.payouts import CommissionAdjustment  # noqa: E402
from revshare.models.purchases import Purchase  # noqa: E402
from tests.factories import (  # noqa: E402
    SALE_TIME,
    make_creator,
    make_marketer,
    make_project,
    make_sale,
    setup_db,
)


@pytest.fixture()
def SessionLocal(tmp_path):
    return setup_db(f"sqlite:///{tmp_path / 'ingestion.db'}")


def _event(project, **overrides):
    values = {
        "project_id": project.id,
        "amount": 10000,
        "currency": "USD",
        "occurred_at": SALE_TIME,
        "event_id": "evt_1",
        "transaction_id": "txn_1",
    }
    values.update(overrides)
    return SaleEvent(**values)


def test_ingest_creates_purchase_with_commission_snapshot(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=25, refund_window_days=14)

        result = ingest_sale(db, _event(project, marketer_id=marketer.id), now=SALE_TIME)

        purchase = result.purchase
        assert result.created is True
        assert purchase.currency == "usd"
        assert purchase.commission_amount == 2500
        assert purchase.commission_amount_original == 2500
        assert purchase.commission_status == CommissionStatusEnum.AWAITING_REFUND_WINDOW.value
        assert purchase.payment_status == PaymentStatusEnum.PENDING.value
        assert purchase.refund_eligible_at == SALE_TIME + timedelta(days=14)
        assert db.query(AuditEvent).filter(AuditEvent.event_type == "PURCHASE_CREATED").count() == 1
        recipients = {n.user_id for n in db.query(Notification).all()}
        assert recipients == {creator.id, marketer.id}


def test_duplicate_event_id_or_transaction_id_is_a_noop(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1)

        first = ingest_sale(db, _event(project, marketer_id=marketer.id), now=SALE_TIME)
        same_event = ingest_sale(
            db,
            _event(project, marketer_id=marketer.id, transaction_id="txn_other"),
            now=SALE_TIME,
        )
        same_transaction = ingest_sale(
            db,
            _event(project, marketer_id=marketer.id, event_id="evt_other", amount=99999),
            now=SALE_TIME,
        )

        assert same_event.created is False
        assert same_transaction.created is False
        assert same_event.purchase.id == first.purchase.id
        assert same_transaction.purchase.id == first.purchase.id
        assert db.query(Purchase).count() == 1
        assert db.query(Purchase).one().amount == 10000


def test_direct_sale_is_settled_immediately(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        project = make_project(db, creator=creator, commission_percent=0.1)

        purchase = ingest_sale(db, _event(project), now=SALE_TIME).purchase

        assert purchase.is_direct is True
        assert purchase.commission_amount == 0
        assert purchase.commission_status == CommissionStatusEnum.PAID.value
        assert purchase.payment_status == PaymentStatusEnum.PAID.value


def test_late_delivery_starts_pending_creator_payment(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1, refund_window_days=7)

        purchase = ingest_sale(
            db,
            _event(project, marketer_id=marketer.id),
            now=SALE_TIME + timedelta(days=8),
        ).purchase

        assert purchase.commission_status == CommissionStatusEnum.PENDING_CREATOR_PAYMENT.value


def test_coupon_determines_marketer(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.2)
        create_coupon(db, project_id=project.id, code="SPRING", marketer_id=marketer.id)

        purchase = ingest_sale(db, _event(project, coupon_code="spring"), now=SALE_TIME).purchase

        assert purchase.marketer_id == marketer.id
        assert purchase.commission_amount == 2000


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"amount": -1}, "invalid_sale_event"),
        ({"amount": 10.5}, "invalid_sale_event"),
        ({"currency": "dollars"}, "invalid_sale_event"),
        ({"event_id": None, "transaction_id": None}, "invalid_sale_event"),
        ({"coupon_code": "NOPE"}, "coupon_not_found"),
        ({"marketer_id": 9999}, "marketer_not_found"),
    ],
)
def test_invalid_events_are_rejected_before_any_write(SessionLocal, overrides, code):
    with SessionLocal() as db:
        creator = make_creator(db)
        project = make_project(db, creator=creator, commission_percent=0.2)

        with pytest.raises(CommissionValidationError) as exc:
            ingest_sale(db, _event(project, **overrides), now=SALE_TIME)

        assert exc.value.code == code
        assert db.query(Purchase).count() == 0


def test_unknown_project_is_rejected(SessionLocal):
    with SessionLocal() as db:
        with pytest.raises(CommissionValidationError) as exc:
            ingest_sale(
                db,
                SaleEvent(project_id=404, amount=100, currency="usd", occurred_at=SALE_TIME, event_id="e"),
            )
        assert exc.value.code == "project_not_found"


def test_refund_before_payout_marks_refunded_with_gross_fallback(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.25)
        ingest_sale(db, _event(project, marketer_id=marketer.id), now=SALE_TIME)

        purchase = record_refund(db, project_id=project.id, transaction_id="txn_1", now=SALE_TIME + timedelta(days=2))

        assert purchase.commission_status == CommissionStatusEnum.REFUNDED.value
        assert purchase.refunded_amount == 10000
        assert purchase.refunded_at == SALE_TIME + timedelta(days=2)
        assert purchase.payment_status == PaymentStatusEnum.PENDING.value
        assert db.query(AuditEvent).filter(AuditEvent.event_type == "PURCHASE_REFUNDED").count() == 1


def test_repeated_refund_is_a_noop(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.25)
        ingest_sale(db, _event(project, marketer_id=marketer.id), now=SALE_TIME)

        record_refund(db, project_id=project.id, event_id="evt_1", refunded_amount=4000)
        again = record_refund(db, project_id=project.id, event_id="evt_1", refunded_amount=9000)

        assert again.refunded_amount == 4000
        assert db.query(AuditEvent).filter(AuditEvent.event_type == "PURCHASE_REFUNDED").count() == 1


def test_chargeback_is_tagged_distinctly(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.25)
        ingest_sale(db, _event(project, marketer_id=marketer.id), now=SALE_TIME)

        purchase = record_refund(db, project_id=project.id, transaction_id="txn_1", chargeback=True)

        assert purchase.commission_status == CommissionStatusEnum.CHARGEBACK.value
        assert db.query(AuditEvent).filter(AuditEvent.event_type == "CHARGEBACK_CREATED").count() == 1


def test_refund_after_payout_queues_clawback(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.25)
        purchase = make_sale(db, project=project, marketer=marketer, amount=8000)
        purchase.commission_status = CommissionStatusEnum.PAID.value
        purchase.payment_status = PaymentStatusEnum.PAID.value
        db.commit()

        refunded = record_refund(db, project_id=project.id, transaction_id=purchase.external_transaction_id)

        assert refunded.commission_status == CommissionStatusEnum.PAID.value
        assert refunded.refunded_amount == 8000
        clawback = db.query(CommissionAdjustment).one()
        assert clawback.amount == -2000
        assert clawback.purchase_id == purchase.id
        assert clawback.marketer_id == marketer.id
        assert clawback.status == AdjustmentStatusEnum.PENDING.value


def test_refund_for_unknown_purchase_raises(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        project = make_project(db, creator=creator, commission_percent=0.25)
        with pytest.raises(CommissionValidationError) as exc:
            record_refund(db, project_id=project.id, transaction_id="missing")
        assert exc.value.code == "purchase_not_found"
