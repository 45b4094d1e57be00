"""
Persistence of a vesting vault and its token.

The full vault state is stored as one JSON document under a single key so a
save is atomic: token balances and allowances, the custody address,
administrative settings, limits and every beneficiary's schedule list
(seven integer fields per schedule).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from tokenvest.core.exceptions import StorageError
from tokenvest.core.schedule import ScheduleStore
from tokenvest.core.settings import VaultSettings
from tokenvest.core.token import ERC20Token, TokenCustody
from tokenvest.core.vault import VestingVault

from .storage_manager import StorageManager

logger = logging.getLogger(__name__)

STATE_KEY = "vault_state"
STATE_VERSION = 1


@dataclass
class VaultCheckpoint:
    """In-memory copy of a vault taken before a mutation that still has to be saved."""
    state: Dict[str, Any]
    vault_events: int
    token_events: int


class VaultRepository:
    """Loads and saves a VestingVault backed by a TokenCustody ledger."""

    def __init__(self, db_path: Path):
        self.storage = StorageManager(db_path)

    def exists(self) -> bool:
        return self.storage.get(STATE_KEY) is not None

    @staticmethod
    def _custody(vault: VestingVault) -> TokenCustody:
        ledger = vault.token_ledger
        if not isinstance(ledger, TokenCustody):
            raise StorageError("Only vaults holding an ERC20Token custody can be persisted")
        return ledger

    @classmethod
    def export_state(cls, vault: VestingVault) -> Dict[str, Any]:
        ledger = cls._custody(vault)
        return {
            "version": STATE_VERSION,
            "token": ledger.token.to_dict(),
            "custody_address": ledger.vault_address,
            "settings": vault.settings.to_dict(),
            "limits": {
                "max_schedules_per_beneficiary": vault.max_schedules_per_beneficiary,
                "max_batch_size": vault.max_batch_size,
            },
            "schedules": vault.store.to_dict(),
        }

    @classmethod
    def checkpoint(cls, vault: VestingVault) -> VaultCheckpoint:
        return VaultCheckpoint(
            state=cls.export_state(vault),
            vault_events=len(vault.events),
            token_events=len(cls._custody(vault).token.events),
        )

    @classmethod
    def rollback(cls, vault: VestingVault, checkpoint: VaultCheckpoint) -> None:
        """
        Put ``vault`` back to ``checkpoint`` in place.

        Objects already holding the vault (the API context, the CLI) keep
        working with it: token balances, allowances and supply, the settings
        and the schedule store are reset, and events emitted since the
        checkpoint are dropped.
        """
        state = checkpoint.state
        token = cls._custody(vault).token
        restored = ERC20Token.from_dict(state["token"])
        token.total_supply = restored.total_supply
        token.balances = restored.balances
        token.allowances = restored.allowances
        del token.events[checkpoint.token_events:]

        settings = VaultSettings.from_dict(state["settings"])
        vault.settings.administrator = settings.administrator
        vault.settings.recovery_account = settings.recovery_account

        vault.store = ScheduleStore.from_dict(state["schedules"])
        del vault.events.events[checkpoint.vault_events:]

        logger.warning(
            "Vault state rolled back",
            extra={"event": "storage.vault_rolled_back", "schedules": len(vault.store)},
        )

    def save(self, vault: VestingVault) -> None:
        state = self.export_state(vault)
        self.storage.set(STATE_KEY, state)
        logger.debug(
            "Vault state saved",
            extra={
                "event": "storage.vault_saved",
                "beneficiaries": len(state["schedules"]),
                "schedules": len(vault.store),
            },
        )

    def load(self, time_provider: Optional[Callable[[], int]] = None) -> VestingVault:
        state = self.storage.get(STATE_KEY)
        if state is None:
            raise StorageError("No vault state found; initialize the vault first")
        if state.get("version") != STATE_VERSION:
            raise StorageError(f"Unsupported vault state version: {state.get('version')}")

        try:
            token = ERC20Token.from_dict(state["token"])
            custody = TokenCustody(token, state["custody_address"])
            limits = state.get("limits", {})
            vault = VestingVault(
                custody,
                VaultSettings.from_dict(state["settings"]),
                time_provider=time_provider,
                store=ScheduleStore.from_dict(state.get("schedules", {})),
                **limits,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Corrupt vault state: {exc}") from exc

        return vault

    def close(self) -> None:
        self.storage.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
