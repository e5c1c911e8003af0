from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class CommissionError(Exception):
    code: str
    message: str
    status_code: int = 400
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class CommissionValidationError(CommissionError):
    """Rejected input. Raised before anything is written."""


def project_not_found(project_id) -> CommissionValidationError:
    return CommissionValidationError(
        code="project_not_found",
        message=f"Project {project_id} not found",
        status_code=404,
        details={"project_id": project_id},
    )


def marketer_not_found(marketer_id) -> CommissionValidationError:
    return CommissionValidationError(
        code="marketer_not_found",
        message=f"Marketer {marketer_id} not found",
        status_code=404,
        details={"marketer_id": marketer_id},
    )


def coupon_not_found(code) -> CommissionValidationError:
    return CommissionValidationError(
        code="coupon_not_found",
        message=f"Coupon {code!r} not found for project",
        status_code=404,
        details={"coupon_code": code},
    )


def contract_not_found(project_id, marketer_id) -> CommissionValidationError:
    return CommissionValidationError(
        code="contract_not_found",
        message="No approved contract and no project default commission",
        status_code=422,
        details={"project_id": project_id, "marketer_id": marketer_id},
    )


def invalid_sale_event(reason: str, **details) -> CommissionValidationError:
    return CommissionValidationError(
        code="invalid_sale_event",
        message=reason,
        status_code=422,
        details=details,
    )


def invalid_commission_percent(value) -> CommissionValidationError:
    return CommissionValidationError(
        code="invalid_commission_percent",
        message="Commission percent must be a fraction in [0, 1]",
        status_code=422,
        details={"value": value},
    )


@dataclass
class InvalidTransition(CommissionError):
    code: str = "invalid_transition"
    message: str = "Commission status transition not allowed"
    status_code: int = 409


@dataclass
class TransferError(Exception):
    """External transfer call failed or timed out. Never retried in-run."""

    message: str
    retryable: bool = True

    def __post_init__(self) -> None:
        super().__init__(self.message)


def purchase_not_found(project_id, **lookup) -> CommissionValidationError:
    return CommissionValidationError(
        code="purchase_not_found",
        message="No purchase matches the refund event",
        status_code=404,
        details={"project_id": project_id, **lookup},
    )


def reward_not_claimable(reward_earned_id, reason: str) -> CommissionValidationError:
    return CommissionValidationError(
        code="reward_not_claimable",
        message=reason,
        status_code=409,
        details={"reward_earned_id": reward_earned_id},
    )


def invalid_reward(reason: str, **details) -> CommissionValidationError:
    return CommissionValidationError(
        code="invalid_reward",
        message=reason,
        status_code=422,
        details=details,
    )
