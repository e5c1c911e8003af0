import os
from datetime import timedelta

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SKIP_MIGRATIONS", "1")

from revshare.core.errors import CommissionError  # noqa: E402
from revshare.core.ingestion import record_refund  # noqa: E402
from revshare.core.payouts import run_payout_batch  # noqa: E402
from revshare.core.reward_payouts import run_reward_payouts  # noqa: E402
import revshare.core.rewards as rewards_module  # noqa: E402
from revshare.core.rewards import claim_reward, desired_grants, evaluate_rewards  # noqa: E402
from revshare.crud.rewards import create_reward, list_rewards_earned, record_attribution  # noqa: E402
from revshare.jobs.rewards_evaluator import run_rewards_evaluator  # noqa: E402
from revshare.models.activity import Notification  # noqa: E402
from revshare.models.enums import (  # noqa: E402
    AttributionKindEnum,
    AvailabilityEnum,
    EarnLimitEnum,
    MilestoneTypeEnum,
    PayoutGroupStatusEnum,
    RewardEarnedStatusEnum,
    RewardTypeEnum,
    TransferKindEnum,
)
from revshare.models.payouts import Transfer  # noqa: E402
from revshare.models.rewards import Reward, RewardEarned  # noqa: E402
from tests.factories import (  # noqa: E402
    SALE_TIME,
    FakeTransferClient,
    make_creator,
    make_marketer,
    make_project,
    make_sale,
    setup_db,
)


EVALUATE_TIME = SALE_TIME + timedelta(days=31)
REWARD_START = SALE_TIME - timedelta(days=1)


@pytest.fixture()
def SessionLocal(tmp_path):
    return setup_db(f"sqlite:///{tmp_path / 'rewards.db'}")


def _reward(db, project, **overrides):
    values = {
        "project_id": project.id,
        "name": "Five sales club",
        "milestone_type": MilestoneTypeEnum.COMPLETED_SALES.value,
        "milestone_value": 5,
        "reward_type": RewardTypeEnum.ACCESS_PERK.value,
        "starts_at": REWARD_START,
    }
    values.update(overrides)
    return create_reward(db, **values)


def _sales(db, project, marketer, count, *, amount=1000, occurred_at=None):
    return [
        make_sale(db, project=project, marketer=marketer, amount=amount, occurred_at=occurred_at)
        for _ in range(count)
    ]


def test_desired_grants_respects_earn_limit():
    once = Reward(milestone_value=5, earn_limit=EarnLimitEnum.ONCE_PER_MARKETER.value)
    multiple = Reward(milestone_value=5, earn_limit=EarnLimitEnum.MULTIPLE.value)
    assert desired_grants(once, 4) == 0
    assert desired_grants(once, 12) == 1
    assert desired_grants(multiple, 12) == 2
    assert desired_grants(Reward(milestone_value=0, earn_limit=EarnLimitEnum.MULTIPLE.value), 12) == 0


def test_once_per_marketer_grants_single_reward_and_rerun_is_noop(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1)
        reward = _reward(db, project)
        _sales(db, project, marketer, 12)

        first = evaluate_rewards(db, now=EVALUATE_TIME)
        second = evaluate_rewards(db, now=EVALUATE_TIME)

        assert first.rewards_evaluated == 1
        assert first.grants_created == 1
        assert second.grants_created == 0
        earned = list_rewards_earned(db, reward_id=reward.id)
        assert [(e.marketer_id, e.sequence, e.metric_value) for e in earned] == [(marketer.id, 1, 12)]
        assert earned[0].status == RewardEarnedStatusEnum.UNLOCKED.value
        notes = db.query(Notification).filter(Notification.type == "REWARD").all()
        assert {note.user_id for note in notes} == {marketer.id, creator.id}


def test_multiple_earn_limit_grants_each_new_threshold(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1)
        reward = _reward(db, project, earn_limit=EarnLimitEnum.MULTIPLE.value)
        _sales(db, project, marketer, 12)

        assert evaluate_rewards(db, now=EVALUATE_TIME).grants_created == 2
        _sales(db, project, marketer, 3)
        assert evaluate_rewards(db, now=EVALUATE_TIME).grants_created == 1

        sequences = [e.sequence for e in list_rewards_earned(db, reward_id=reward.id)]
        assert sequences == [1, 2, 3]


def test_first_n_admits_earliest_marketers_only(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        early = make_marketer(db)
        late = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1)
        reward = _reward(
            db,
            project,
            milestone_value=1,
            earn_limit=EarnLimitEnum.MULTIPLE.value,
            availability=AvailabilityEnum.FIRST_N.value,
            availability_cap=1,
        )
        _sales(db, project, late, 1, occurred_at=SALE_TIME + timedelta(hours=2))
        _sales(db, project, early, 1, occurred_at=SALE_TIME)

        evaluate_rewards(db, now=EVALUATE_TIME)
        _sales(db, project, early, 1, occurred_at=SALE_TIME + timedelta(hours=3))
        _sales(db, project, late, 1, occurred_at=SALE_TIME + timedelta(hours=3))
        evaluate_rewards(db, now=EVALUATE_TIME)

        earned = list_rewards_earned(db, reward_id=reward.id)
        assert {e.marketer_id for e in earned} == {early.id}
        assert [e.sequence for e in earned] == [1, 2]


def test_allow_list_limits_eligible_marketers(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        invited = make_marketer(db)
        outsider = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1)
        reward = _reward(db, project, milestone_value=2, allowed_marketer_ids=[invited.id])
        _sales(db, project, invited, 2)
        _sales(db, project, outsider, 5)

        evaluate_rewards(db, now=EVALUATE_TIME)

        assert [e.marketer_id for e in list_rewards_earned(db, reward_id=reward.id)] == [invited.id]


def test_refunded_unelapsed_and_early_sales_do_not_count(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1)
        reward = _reward(db, project, milestone_value=2)
        _sales(db, project, marketer, 1)
        refunded = _sales(db, project, marketer, 1)[0]
        record_refund(db, project_id=project.id, transaction_id=refunded.external_transaction_id, now=SALE_TIME)
        _sales(db, project, marketer, 1, occurred_at=EVALUATE_TIME - timedelta(days=2))
        _sales(db, project, marketer, 1, occurred_at=REWARD_START - timedelta(days=1))

        summary = evaluate_rewards(db, now=EVALUATE_TIME)

        assert summary.grants_created == 0
        assert list_rewards_earned(db, reward_id=reward.id) == []


def test_net_revenue_subtracts_partial_refunds_after_payout(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        refunded_marketer = make_marketer(db, connected_account_id="acct_refunded")
        steady_marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1)
        reward = _reward(
            db,
            project,
            name="Big earner",
            milestone_type=MilestoneTypeEnum.NET_REVENUE.value,
            milestone_value=9000,
        )
        paid = _sales(db, project, refunded_marketer, 1, amount=10000)[0]
        _sales(db, project, steady_marketer, 1, amount=10000)
        run_payout_batch(db, creator_id=creator.id, transfer_client=FakeTransferClient(), now=EVALUATE_TIME)
        record_refund(
            db,
            project_id=project.id,
            transaction_id=paid.external_transaction_id,
            refunded_amount=2000,
            now=EVALUATE_TIME,
        )

        evaluate_rewards(db, now=EVALUATE_TIME)

        earned = list_rewards_earned(db, reward_id=reward.id)
        assert [(e.marketer_id, e.metric_value) for e in earned] == [(steady_marketer.id, 10000)]


def test_click_and_install_milestones_count_their_own_kind(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1)
        clicks = _reward(db, project, name="Clicks", milestone_type=MilestoneTypeEnum.CLICKS.value, milestone_value=3)
        installs = _reward(
            db, project, name="Installs", milestone_type=MilestoneTypeEnum.INSTALLS.value, milestone_value=3
        )
        for _ in range(3):
            record_attribution(db, project_id=project.id, marketer_id=marketer.id, created_at=SALE_TIME)
        for _ in range(2):
            record_attribution(
                db,
                project_id=project.id,
                marketer_id=marketer.id,
                kind=AttributionKindEnum.INSTALL.value,
                created_at=SALE_TIME,
            )

        evaluate_rewards(db, project_id=project.id, now=EVALUATE_TIME)

        assert len(list_rewards_earned(db, reward_id=clicks.id)) == 1
        assert list_rewards_earned(db, reward_id=installs.id) == []


def test_claim_moves_perk_to_claimed_once(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        other = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1)
        reward = _reward(db, project, milestone_value=1)
        _sales(db, project, marketer, 1)
        evaluate_rewards(db, now=EVALUATE_TIME)
        earned = list_rewards_earned(db, reward_id=reward.id)[0]

        with pytest.raises(CommissionError) as exc:
            claim_reward(db, reward_earned_id=earned.id, marketer_id=other.id)
        assert exc.value.code == "reward_not_claimable"

        claimed = claim_reward(db, reward_earned_id=earned.id, marketer_id=marketer.id, now=EVALUATE_TIME)
        again = claim_reward(db, reward_earned_id=earned.id, marketer_id=marketer.id)

        assert claimed.status == RewardEarnedStatusEnum.CLAIMED.value
        assert again.claimed_at == EVALUATE_TIME


def test_money_rewards_snapshot_amount_and_pay_out(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db, connected_account_id="acct_bonus")
        project = make_project(db, creator=creator, commission_percent=0.1)
        reward = _reward(
            db,
            project,
            name="Cash bonus",
            milestone_value=1,
            reward_type=RewardTypeEnum.MONEY.value,
            reward_amount=2500,
            reward_currency="USD",
        )
        _sales(db, project, marketer, 1)
        evaluate_rewards(db, now=EVALUATE_TIME)
        reward.reward_amount = 9999
        db.commit()
        earned = list_rewards_earned(db, reward_id=reward.id)[0]
        assert (earned.reward_amount, earned.reward_currency) == (2500, "usd")

        with pytest.raises(CommissionError):
            claim_reward(db, reward_earned_id=earned.id)

        failing = run_reward_payouts(
            db,
            creator_id=creator.id,
            transfer_client=FakeTransferClient(failing_accounts={"acct_bonus"}),
            now=EVALUATE_TIME,
        )
        assert [r.status for r in failing] == [PayoutGroupStatusEnum.FAILED]

        client = FakeTransferClient()
        results = run_reward_payouts(db, creator_id=creator.id, transfer_client=client, now=EVALUATE_TIME)

        assert [(r.status, r.amount) for r in results] == [(PayoutGroupStatusEnum.PAID, 2500)]
        assert client.calls[0]["idempotency_key"] == f"transfer-{results[0].transfer_record_id}"
        db.expire_all()
        paid = db.query(RewardEarned).filter(RewardEarned.id == earned.id).one()
        assert paid.status == RewardEarnedStatusEnum.PAID.value
        assert paid.reward_transfer_id == results[0].transfer_record_id
        kinds = {t.kind for t in db.query(Transfer).all()}
        assert kinds == {TransferKindEnum.REWARD.value}
        assert run_reward_payouts(db, creator_id=creator.id, transfer_client=client, now=EVALUATE_TIME) == []


def test_rewards_evaluator_job_scopes_to_project(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        marketer = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1)
        other_project = make_project(db, creator=creator, commission_percent=0.1, name="Other App")
        _reward(db, project, milestone_value=1)
        _reward(db, other_project, milestone_value=1)
        _sales(db, project, marketer, 1)

        summary = run_rewards_evaluator(db, project_id=project.id)

        assert summary.rewards_evaluated == 1
        assert summary.grants_created == 1


def test_first_n_cap_holds_when_granted_set_is_stale(SessionLocal, monkeypatch):
    with SessionLocal() as db:
        creator = make_creator(db)
        early = make_marketer(db)
        late = make_marketer(db)
        project = make_project(db, creator=creator, commission_percent=0.1)
        reward = _reward(
            db,
            project,
            milestone_value=1,
            availability=AvailabilityEnum.FIRST_N.value,
            availability_cap=1,
        )
        _sales(db, project, early, 1, occurred_at=SALE_TIME)
        evaluate_rewards(db, now=EVALUATE_TIME)
        _sales(db, project, late, 1, occurred_at=SALE_TIME + timedelta(hours=1))

        # A run that read the grants before the first run committed.
        monkeypatch.setattr(rewards_module, "_granted_sequences", lambda db, reward_id: {})
        summary = evaluate_rewards(db, now=EVALUATE_TIME)

        assert summary.grants_created == 0
        earned = list_rewards_earned(db, reward_id=reward.id)
        assert [(e.marketer_id, e.sequence) for e in earned] == [(early.id, 1)]


def test_create_reward_rejects_incomplete_definitions(SessionLocal):
    with SessionLocal() as db:
        creator = make_creator(db)
        project = make_project(db, creator=creator, commission_percent=0.1)

        with pytest.raises(CommissionError) as missing_cap:
            _reward(db, project, availability=AvailabilityEnum.FIRST_N.value)
        with pytest.raises(CommissionError) as missing_amount:
            _reward(db, project, reward_type=RewardTypeEnum.MONEY.value)
        with pytest.raises(CommissionError) as unknown_type:
            _reward(db, project, milestone_type="PAGE_VIEWS")

        assert missing_cap.value.code == "invalid_reward"
        assert missing_cap.value.status_code == 422
        assert missing_amount.value.code == "invalid_reward"
        assert unknown_type.value.details == {"milestone_type": "PAGE_VIEWS"}
        assert db.query(Reward).count() == 0
