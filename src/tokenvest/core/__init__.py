"""
tokenvest Core Module

Core vesting functionality:
- Schedule records and the per-beneficiary ledger
- Unlock arithmetic (upfront unlock + linear ramp)
- The vesting vault (creation, claim, recovery)
- Token custody, administrative settings and the event log
"""

from .exceptions import VestingError
from .schedule import Schedule, ScheduleStore
from .settings import VaultSettings
from .token import ERC20Token, TokenCustody
from .unlock import claimable_at, unlocked_at
from .vault import VestingVault

__all__ = [
    "VestingError",
    "Schedule",
    "ScheduleStore",
    "VaultSettings",
    "ERC20Token",
    "TokenCustody",
    "claimable_at",
    "unlocked_at",
    "VestingVault",
]
