import os
from datetime import timedelta

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SKIP_MIGRATIONS", "1")

from revshare.core.commission_status import (  # noqa: E402
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    can_transition,
    compare_and_set_status,
    initial_status,
    transition,
)
from revshare.core.errors import InvalidTransition  # noqa: E402
from revshare.models.enums import CommissionStatusEnum, PaymentStatusEnum  # noqa: E402
from revshare.models.purchases import Purchase  # noqa: E402
from tests.factories import SALE_TIME, make_creator, make_marketer, make_project, make_sale, setup_db  # noqa: E402


@pytest.fixture()
def SessionLocal(tmp_path):
    return setup_db(f"sqlite:///{tmp_path / 'status.db'}")


def test_transition_table_covers_every_status():
    assert set(ALLOWED_TRANSITIONS) == set(CommissionStatusEnum)
    assert TERMINAL_STATUSES == {
        CommissionStatusEnum.PAID,
        CommissionStatusEnum.REFUNDED,
        CommissionStatusEnum.CHARGEBACK,
    }


def test_terminal_statuses_never_leave():
    for terminal in TERMINAL_STATUSES:
        for target in CommissionStatusEnum:
            assert can_transition(terminal, target) is False


def test_lifecycle_only_moves_forward():
    assert can_transition("AWAITING_REFUND_WINDOW", "READY_FOR_PAYOUT")
    assert can_transition("PENDING_CREATOR_PAYMENT", "READY_FOR_PAYOUT")
    assert not can_transition("READY_FOR_PAYOUT", "AWAITING_REFUND_WINDOW")
    assert not can_transition("READY_FOR_PAYOUT", "PENDING_CREATOR_PAYMENT")
    assert not can_transition("AWAITING_REFUND_WINDOW", "PAID")


def test_initial_status_rules():
    eligible_at = SALE_TIME + timedelta(days=30)
    assert initial_status(0, eligible_at, SALE_TIME) == (CommissionStatusEnum.PAID, PaymentStatusEnum.PAID)
    assert initial_status(100, eligible_at, SALE_TIME) == (
        CommissionStatusEnum.AWAITING_REFUND_WINDOW,
        PaymentStatusEnum.PENDING,
    )
    assert initial_status(100, eligible_at, eligible_at) == (
        CommissionStatusEnum.PENDING_CREATOR_PAYMENT,
        PaymentStatusEnum.PENDING,
    )


def test_transition_rejects_leaving_terminal_state():
    purchase = Purchase(id=1, commission_status=CommissionStatusEnum.PAID.value)
    with pytest.raises(InvalidTransition) as exc:
        transition(purchase, CommissionStatusEnum.READY_FOR_PAYOUT)
    assert exc.value.status_code == 409
    assert purchase.commission_status == CommissionStatusEnum.PAID.value


def test_compare_and_set_only_moves_rows_in_expected_state(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.2)
        first = make_sale(db, project=project, marketer=marketer, amount=1000)
        second = make_sale(db, project=project, marketer=marketer, amount=1000)
        first_id, second_id = first.id, second.id

        moved = compare_and_set_status(
            db,
            [first_id],
            expected=CommissionStatusEnum.AWAITING_REFUND_WINDOW,
            target=CommissionStatusEnum.READY_FOR_PAYOUT,
        )
        db.commit()
        assert moved == 1

        again = compare_and_set_status(
            db,
            [first_id, second_id],
            expected=CommissionStatusEnum.READY_FOR_PAYOUT,
            target=CommissionStatusEnum.PAID,
        )
        db.commit()
        assert again == 1

        statuses = {p.id: p.commission_status for p in db.query(Purchase).all()}
        assert statuses[first_id] == CommissionStatusEnum.PAID.value
        assert statuses[second_id] == CommissionStatusEnum.AWAITING_REFUND_WINDOW.value


def test_compare_and_set_refuses_illegal_move(SessionLocal):
    with SessionLocal() as db:
        with pytest.raises(InvalidTransition):
            compare_and_set_status(db, [1], expected="PAID", target="READY_FOR_PAYOUT")
