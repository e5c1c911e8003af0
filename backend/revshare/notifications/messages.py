"""Title/message pairs for the user-facing notification feed."""

from __future__ import annotations

from decimal import Decimal


def format_money(amount: int, currency: str) -> str:
    value = (Decimal(int(amount)) / Decimal(100)).quantize(Decimal("0.01"))
    return f"{value} {currency.upper()}"


def referral_sale(project_name: str, amount: int, currency: str) -> tuple[str, str]:
    return "New referral sale", f"You referred a {format_money(amount, currency)} sale for {project_name}."


def commission_due(project_name: str, commission: int, currency: str) -> tuple[str, str]:
    return (
        "Commission due",
        f"A marketer earned {format_money(commission, currency)} commission on {project_name}.",
    )


def new_sale(project_name: str, amount: int, currency: str) -> tuple[str, str]:
    return "New sale", f"A {format_money(amount, currency)} sale was recorded for {project_name}."


def refund_recorded(project_name: str, amount: int, currency: str) -> tuple[str, str]:
    return "Refund recorded", f"A {format_money(amount, currency)} refund was recorded for {project_name}."


def chargeback_created(project_name: str, amount: int, currency: str) -> tuple[str, str]:
    return "Chargeback", f"A {format_money(amount, currency)} chargeback was recorded for {project_name}."


def payout_sent(amount: int, currency: str) -> tuple[str, str]:
    return "Payout sent", f"A payout of {format_money(amount, currency)} has been sent."


def payout_issued(marketer_name: str, amount: int, currency: str) -> tuple[str, str]:
    return "Payout issued", f"You paid {format_money(amount, currency)} to {marketer_name}."


def payout_failed(amount: int, currency: str) -> tuple[str, str]:
    return "Payout failed", f"A payout of {format_money(amount, currency)} could not be sent."


def reward_unlocked(reward_name: str, project_name: str) -> tuple[str, str]:
    return "Reward unlocked", f"{reward_name} is now unlocked for {project_name}."


def reward_earned(reward_name: str, project_name: str) -> tuple[str, str]:
    return "Reward earned", f"A marketer earned {reward_name} for {project_name}."


def reward_claimed(reward_name: str, project_name: str) -> tuple[str, str]:
    return "Reward claimed", f"You claimed {reward_name} for {project_name}."


def reward_claimed_creator(reward_name: str, project_name: str) -> tuple[str, str]:
    return "Reward claimed", f"A marketer claimed {reward_name} for {project_name}."


def reward_paid(reward_name: str, amount: int, currency: str) -> tuple[str, str]:
    return "Reward paid", f"{reward_name} was paid out: {format_money(amount, currency)}."
