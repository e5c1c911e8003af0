from enum import Enum

# Stored as strings (native enums disabled for easier evolution).


class UserRoleEnum(str, Enum):
    CREATOR = "creator"
    MARKETER = "marketer"


class CommissionStatusEnum(str, Enum):
    AWAITING_REFUND_WINDOW = "AWAITING_REFUND_WINDOW"
    PENDING_CREATOR_PAYMENT = "PENDING_CREATOR_PAYMENT"
    READY_FOR_PAYOUT = "READY_FOR_PAYOUT"
    PAID = "PAID"
    REFUNDED = "REFUNDED"
    CHARGEBACK = "CHARGEBACK"


class PaymentStatusEnum(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class ContractStatusEnum(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAUSED = "PAUSED"


class AdjustmentStatusEnum(str, Enum):
    PENDING = "PENDING"
    APPLIED = "APPLIED"


class TransferStatusEnum(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class TransferKindEnum(str, Enum):
    COMMISSION = "COMMISSION"
    REWARD = "REWARD"


class PayoutGroupStatusEnum(str, Enum):
    PAID = "PAID"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class MilestoneTypeEnum(str, Enum):
    NET_REVENUE = "NET_REVENUE"
    COMPLETED_SALES = "COMPLETED_SALES"
    CLICKS = "CLICKS"
    INSTALLS = "INSTALLS"


class RewardTypeEnum(str, Enum):
    DISCOUNT_COUPON = "DISCOUNT_COUPON"
    FREE_SUBSCRIPTION = "FREE_SUBSCRIPTION"
    PLAN_UPGRADE = "PLAN_UPGRADE"
    ACCESS_PERK = "ACCESS_PERK"
    MONEY = "MONEY"


class EarnLimitEnum(str, Enum):
    ONCE_PER_MARKETER = "ONCE_PER_MARKETER"
    MULTIPLE = "MULTIPLE"


class AvailabilityEnum(str, Enum):
    UNLIMITED = "UNLIMITED"
    FIRST_N = "FIRST_N"


class RewardStatusEnum(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class RewardEarnedStatusEnum(str, Enum):
    UNLOCKED = "UNLOCKED"
    CLAIMED = "CLAIMED"
    PAID = "PAID"


class AttributionKindEnum(str, Enum):
    CLICK = "CLICK"
    INSTALL = "INSTALL"
