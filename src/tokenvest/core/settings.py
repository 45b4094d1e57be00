"""
Administrative configuration state owned by a vesting vault.

Holds the administrator and the recovery account. Both are changed only
through validated, administrator-gated setters that report the change to
the vault's event log.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .events import ADMINISTRATOR_CHANGED, RECOVERY_ACCOUNT_CHANGED, EventLog
from .exceptions import InvalidAddressError, NotAdministratorError
from .token import is_zero_address, normalize_address

logger = logging.getLogger(__name__)


@dataclass
class VaultSettings:
    administrator: str
    recovery_account: str

    def __post_init__(self) -> None:
        self._validate_address(self.administrator, "administrator")
        self._validate_address(self.recovery_account, "recovery account")
        self.administrator = normalize_address(self.administrator)
        self.recovery_account = normalize_address(self.recovery_account)

    def is_administrator(self, caller: str) -> bool:
        return normalize_address(caller) == self.administrator

    def require_administrator(self, caller: str) -> None:
        if not self.is_administrator(caller):
            logger.warning(
                "Access denied: caller is not administrator",
                extra={
                    "event": "vault.access_denied",
                    "caller": normalize_address(caller)[:10],
                },
            )
            raise NotAdministratorError(
                "Caller is not the vault administrator",
                details={"caller": normalize_address(caller)},
            )

    def set_recovery_account(
        self, caller: str, account: str, events: Optional[EventLog] = None
    ) -> str:
        """Point recoveries at a new account (administrator only)."""
        self.require_administrator(caller)
        self._validate_address(account, "recovery account")

        previous = self.recovery_account
        self.recovery_account = normalize_address(account)
        logger.info(
            "Recovery account changed",
            extra={
                "event": "vault.recovery_account_changed",
                "previous": previous[:10],
                "current": self.recovery_account[:10],
            },
        )
        if events is not None:
            events.emit(RECOVERY_ACCOUNT_CHANGED, previous=previous, current=self.recovery_account)
        return self.recovery_account

    def transfer_administrator(
        self, caller: str, new_administrator: str, events: Optional[EventLog] = None
    ) -> str:
        """Hand administration to another address (administrator only)."""
        self.require_administrator(caller)
        self._validate_address(new_administrator, "administrator")

        previous = self.administrator
        self.administrator = normalize_address(new_administrator)
        logger.warning(
            "Administrator changed",
            extra={
                "event": "vault.administrator_changed",
                "previous": previous[:10],
                "current": self.administrator[:10],
            },
        )
        if events is not None:
            events.emit(ADMINISTRATOR_CHANGED, previous=previous, current=self.administrator)
        return self.administrator

    @staticmethod
    def _validate_address(address: str, field_name: str) -> None:
        if is_zero_address(address):
            raise InvalidAddressError(f"{field_name.capitalize()} cannot be the zero address")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "administrator": self.administrator,
            "recovery_account": self.recovery_account,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultSettings":
        return cls(
            administrator=data["administrator"],
            recovery_account=data["recovery_account"],
        )
