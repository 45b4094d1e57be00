"""
tokenvest - Custodial Token Vesting Vault

Administrators lock tokens into per-beneficiary schedules that unlock an
upfront share immediately and the remainder linearly between a cliff and an
end time. Beneficiaries claim whatever has unlocked; administrators can
recover a beneficiary's unpaid balance to a recovery account.

Main Components:
- Core: schedules, unlock arithmetic, the vault engine and its collaborators
- Database: SQLite persistence of vault and token state
- API: Flask blueprint exposing the vault over HTTP
- CLI: click/rich command line front end
"""

__version__ = "0.1.0"
__author__ = "tokenvest Development Team"

__all__ = []
