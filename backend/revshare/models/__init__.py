from .users import User
from .projects import Project, Contract, Coupon
from .purchases import Purchase
from .payouts import Transfer, CommissionAdjustment
from .rewards import Reward, RewardEarned, AttributionClick
from .activity import AuditEvent, Notification
