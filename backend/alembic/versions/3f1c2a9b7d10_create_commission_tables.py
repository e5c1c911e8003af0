"""create commission, payout and reward tables

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f1c2a9b7d10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("connected_account_id", sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("marketer_commission_percent", sa.Numeric(7, 6), nullable=True),
        sa.Column("refund_window_days", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_projects_id"), "projects", ["id"], unique=False)
    op.create_index(op.f("ix_projects_creator_id"), "projects", ["creator_id"], unique=False)

    op.create_table(
        "contracts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("marketer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("commission_percent", sa.Numeric(7, 6), nullable=False),
        sa.Column("refund_window_days", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "marketer_id", name="uq_contracts_project_marketer"),
    )
    op.create_index(op.f("ix_contracts_id"), "contracts", ["id"], unique=False)
    op.create_index(op.f("ix_contracts_project_id"), "contracts", ["project_id"], unique=False)
    op.create_index(op.f("ix_contracts_marketer_id"), "contracts", ["marketer_id"], unique=False)

    op.create_table(
        "coupons",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("marketer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("code", sa.String(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "code", name="uq_coupons_project_code"),
    )
    op.create_index(op.f("ix_coupons_id"), "coupons", ["id"], unique=False)
    op.create_index(op.f("ix_coupons_project_id"), "coupons", ["project_id"], unique=False)
    op.create_index(op.f("ix_coupons_marketer_id"), "coupons", ["marketer_id"], unique=False)

    op.create_table(
        "transfers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("marketer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("destination_account", sa.String(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("item_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("external_transfer_id", sa.String(), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_transfers_id"), "transfers", ["id"], unique=False)
    op.create_index("ix_transfers_creator_status", "transfers", ["creator_id", "status"], unique=False)
    op.create_index("ix_transfers_marketer", "transfers", ["marketer_id"], unique=False)

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("marketer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("coupon_id", sa.Integer(), sa.ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("commission_percent", sa.Numeric(7, 6), nullable=False),
        sa.Column("commission_amount", sa.Integer(), nullable=False),
        sa.Column("commission_amount_original", sa.Integer(), nullable=False),
        sa.Column("refunded_amount", sa.Integer(), nullable=True),
        sa.Column("is_direct", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("commission_status", sa.String(), nullable=False),
        sa.Column("payment_status", sa.String(), nullable=False),
        sa.Column("refund_window_days", sa.Integer(), nullable=True),
        sa.Column("refund_eligible_at", sa.DateTime(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("transfer_id", sa.String(), nullable=True),
        sa.Column(
            "transfer_record_id",
            sa.Integer(),
            sa.ForeignKey("transfers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("external_event_id", sa.String(), nullable=True),
        sa.Column("external_transaction_id", sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "external_event_id", name="uq_purchases_project_event"),
        sa.UniqueConstraint("project_id", "external_transaction_id", name="uq_purchases_project_transaction"),
    )
    op.create_index(op.f("ix_purchases_id"), "purchases", ["id"], unique=False)
    op.create_index(op.f("ix_purchases_project_id"), "purchases", ["project_id"], unique=False)
    op.create_index(op.f("ix_purchases_marketer_id"), "purchases", ["marketer_id"], unique=False)
    op.create_index(op.f("ix_purchases_transfer_record_id"), "purchases", ["transfer_record_id"], unique=False)
    op.create_index("ix_purchases_commission_status", "purchases", ["commission_status"], unique=False)
    op.create_index("ix_purchases_payment_status", "purchases", ["payment_status"], unique=False)
    op.create_index("ix_purchases_refund_eligible_at", "purchases", ["refund_eligible_at"], unique=False)

    op.create_table(
        "commission_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("marketer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchases.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column(
            "transfer_record_id",
            sa.Integer(),
            sa.ForeignKey("transfers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("applied_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_commission_adjustments_id"), "commission_adjustments", ["id"], unique=False)
    op.create_index(
        "ix_commission_adjustments_scope",
        "commission_adjustments",
        ["creator_id", "marketer_id", "currency", "status"],
        unique=False,
    )

    op.create_table(
        "rewards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("milestone_type", sa.String(), nullable=False),
        sa.Column("milestone_value", sa.Integer(), nullable=False),
        sa.Column("reward_type", sa.String(), nullable=False),
        sa.Column("reward_amount", sa.Integer(), nullable=True),
        sa.Column("reward_currency", sa.String(length=3), nullable=True),
        sa.Column("earn_limit", sa.String(), nullable=False),
        sa.Column("availability", sa.String(), nullable=False),
        sa.Column("availability_cap", sa.Integer(), nullable=True),
        sa.Column("allowed_marketer_ids", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("starts_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_rewards_id"), "rewards", ["id"], unique=False)
    op.create_index(op.f("ix_rewards_project_id"), "rewards", ["project_id"], unique=False)
    op.create_index("ix_rewards_status", "rewards", ["status"], unique=False)

    op.create_table(
        "rewards_earned",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reward_id", sa.Integer(), sa.ForeignKey("rewards.id", ondelete="CASCADE"), nullable=False),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("marketer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("metric_value", sa.Integer(), nullable=True),
        sa.Column("reward_amount", sa.Integer(), nullable=True),
        sa.Column("reward_currency", sa.String(length=3), nullable=True),
        sa.Column("earned_at", sa.DateTime(), nullable=False),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column(
            "reward_transfer_id",
            sa.Integer(),
            sa.ForeignKey("transfers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
        sa.UniqueConstraint("reward_id", "marketer_id", "sequence", name="uq_rewards_earned_sequence"),
    )
    op.create_index(op.f("ix_rewards_earned_id"), "rewards_earned", ["id"], unique=False)
    op.create_index(op.f("ix_rewards_earned_reward_id"), "rewards_earned", ["reward_id"], unique=False)
    op.create_index("ix_rewards_earned_marketer", "rewards_earned", ["marketer_id"], unique=False)
    op.create_index("ix_rewards_earned_status", "rewards_earned", ["status"], unique=False)

    op.create_table(
        "attribution_clicks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("marketer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("device_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_attribution_clicks_id"), "attribution_clicks", ["id"], unique=False)
    op.create_index(
        "ix_attribution_clicks_scope",
        "attribution_clicks",
        ["project_id", "marketer_id", "kind", "created_at"],
        unique=False,
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True),
        sa.Column("subject_type", sa.String(), nullable=False),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_audit_events_id"), "audit_events", ["id"], unique=False)
    op.create_index(op.f("ix_audit_events_project_id"), "audit_events", ["project_id"], unique=False)
    op.create_index("ix_audit_events_type", "audit_events", ["event_type"], unique=False)
    op.create_index("ix_audit_events_subject", "audit_events", ["subject_type", "subject_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_notifications_id"), "notifications", ["id"], unique=False)
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"], unique=False)


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("audit_events")
    op.drop_table("attribution_clicks")
    op.drop_table("rewards_earned")
    op.drop_table("rewards")
    op.drop_table("commission_adjustments")
    op.drop_table("purchases")
    op.drop_table("transfers")
    op.drop_table("coupons")
    op.drop_table("contracts")
    op.drop_table("projects")
    op.drop_table("users")
