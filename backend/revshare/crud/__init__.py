from .users import create_user, get_user, set_connected_account
from .projects import (
    create_contract,
    create_coupon,
    create_project,
    get_coupon_by_code,
    get_project,
)
from .purchases import find_existing_purchase
from .payouts import create_adjustment, list_pending_adjustments, list_transfers
from .rewards import (
    create_reward,
    get_reward_earned,
    list_active_rewards,
    list_rewards_earned,
    record_attribution,
)
