"""
Vesting Vault.

Holds tokens in custody on behalf of beneficiaries and releases them on an
"upfront unlock + linear ramp" schedule:

- Administrators create schedules one at a time or in all-or-nothing batches
- Beneficiaries claim everything unlocked across all of their schedules
- Administrators can recover a beneficiary's whole unpaid balance to the
  recovery account, which deletes that beneficiary's schedules

Security features:
- Reentrancy protection around claim and recover
- Bookkeeping is finalized before any outbound transfer
- Every failed operation restores the state it touched
- Per-beneficiary schedule cap and batch size cap
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections import Counter
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .events import SCHEDULE_CREATED, TOKENS_CLAIMED, TOKENS_RECOVERED, EventLog
from .exceptions import (
    BatchTooLargeError,
    InvalidAmountError,
    InvalidBeneficiaryError,
    InvalidPercentError,
    InvalidTimelineError,
    LengthMismatchError,
    NoSchedulesError,
    NothingToClaimError,
    NothingToWithdrawError,
    ReentrancyError,
    ScheduleLimitExceededError,
    TokenError,
    TransferFailedError,
    VaultValidationError,
)
from .schedule import Schedule, ScheduleStore
from .settings import VaultSettings
from .token import (
    UINT256_MAX,
    ERC20Token,
    TokenCustody,
    TokenLedger,
    is_zero_address,
    normalize_address,
)
from .unlock import claimable_at, unlocked_at

logger = logging.getLogger(__name__)

DEFAULT_MAX_SCHEDULES_PER_BENEFICIARY = 100
DEFAULT_MAX_BATCH_SIZE = 200


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class VestingVault:
    """
    Custodial vesting schedules with claim and recovery.

    Usage:
        vault = VestingVault.deploy(token, administrator="0xadmin", recovery_account="0xsafe")
        token.approve("0xadmin", vault.custody_address, 1_000)
        vault.create_schedule("0xadmin", "0xalice", 1_000, 10, cliff_time=100, ramp_end=1100)
        vault.claim("0xalice", current_time=600)  # 550
    """

    def __init__(
        self,
        token_ledger: TokenLedger,
        settings: VaultSettings,
        time_provider: Optional[Callable[[], int]] = None,
        max_schedules_per_beneficiary: int = DEFAULT_MAX_SCHEDULES_PER_BENEFICIARY,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        store: Optional[ScheduleStore] = None,
        events: Optional[EventLog] = None,
    ) -> None:
        if max_schedules_per_beneficiary < 1:
            raise ValueError("max_schedules_per_beneficiary must be >= 1")
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")

        self.token_ledger = token_ledger
        self.settings = settings
        self.store = store if store is not None else ScheduleStore()
        self.events = events if events is not None else EventLog()
        self.max_schedules_per_beneficiary = max_schedules_per_beneficiary
        self.max_batch_size = max_batch_size
        self._time_provider = time_provider or (lambda: int(time.time()))

        # Reentrancy guard
        self._locked = False

        logger.info(
            "VestingVault initialized",
            extra={
                "event": "vault.initialized",
                "administrator": settings.administrator[:10],
                "deterministic_time": bool(time_provider),
            },
        )

    @classmethod
    def deploy(
        cls,
        token: ERC20Token,
        administrator: str,
        recovery_account: str,
        custody_address: str = "",
        **kwargs: Any,
    ) -> "VestingVault":
        """Create a vault holding its funds in ``token`` at a custody address."""
        if not custody_address:
            addr_input = f"vault{administrator}{token.address}{time.time()}".encode()
            custody_address = f"0x{hashlib.sha3_256(addr_input).digest()[-20:].hex()}"
        settings = VaultSettings(administrator=administrator, recovery_account=recovery_account)
        return cls(TokenCustody(token, custody_address), settings, **kwargs)

    # ==================== Properties ====================

    @property
    def administrator(self) -> str:
        return self.settings.administrator

    @property
    def recovery_account(self) -> str:
        return self.settings.recovery_account

    @property
    def custody_address(self) -> Optional[str]:
        return getattr(self.token_ledger, "vault_address", None)

    # ==================== Schedule Creation ====================

    def create_schedule(
        self,
        caller: str,
        beneficiary: str,
        total_amount: int,
        upfront_percent: int,
        cliff_time: int,
        ramp_end: int,
    ) -> int:
        """
        Create one schedule funded by the administrator.

        Args:
            caller: Must be the administrator
            beneficiary: Address that will be able to claim
            total_amount: Tokens committed, in base units
            upfront_percent: Whole percent (0-100) unlocked immediately
            cliff_time: Timestamp the linear ramp starts
            ramp_end: Timestamp everything is unlocked

        Returns:
            Index of the new schedule within the beneficiary's list

        Raises:
            NotAdministratorError: Caller is not the administrator
            VaultValidationError: Invalid input (nothing is recorded)
            ReentrancyError: Called while a claim or recovery is transferring
            TransferFailedError: Funding transfer failed (nothing is recorded)
        """
        self.settings.require_administrator(caller)
        self._require_not_locked()
        beneficiary_norm, schedule = self._build_schedule(
            beneficiary, total_amount, upfront_percent, cliff_time, ramp_end
        )
        self._check_capacity(beneficiary_norm, 1)

        self._transfer_into(self.settings.administrator, total_amount)
        return self._record(beneficiary_norm, schedule)

    def create_schedules_batch(
        self,
        caller: str,
        beneficiaries: Sequence[str],
        total_amounts: Sequence[int],
        upfront_percents: Sequence[int],
        cliff_times: Sequence[int],
        ramp_ends: Sequence[int],
    ) -> List[int]:
        """
        Create several schedules from parallel sequences, all or nothing.

        Every entry is validated before anything is transferred or recorded,
        and the whole batch is funded by a single transfer.

        Returns:
            Schedule indices, in input order
        """
        self.settings.require_administrator(caller)
        self._require_not_locked()

        lengths = [
            len(beneficiaries),
            len(total_amounts),
            len(upfront_percents),
            len(cliff_times),
            len(ramp_ends),
        ]
        if len(set(lengths)) != 1:
            raise LengthMismatchError(
                "Batch input lengths differ",
                details={"lengths": lengths},
            )
        if lengths[0] > self.max_batch_size:
            raise BatchTooLargeError(
                f"Batch of {lengths[0]} exceeds maximum of {self.max_batch_size}",
                details={"size": lengths[0], "max_batch_size": self.max_batch_size},
            )
        if lengths[0] == 0:
            return []

        entries: List[Tuple[str, Schedule]] = []
        rows = zip(beneficiaries, total_amounts, upfront_percents, cliff_times, ramp_ends)
        for index, row in enumerate(rows):
            try:
                entries.append(self._build_schedule(*row))
            except VaultValidationError as exc:
                exc.details["batch_index"] = index
                raise

        for beneficiary_norm, added in Counter(b for b, _ in entries).items():
            self._check_capacity(beneficiary_norm, added)

        batch_total = sum(schedule.total_amount for _, schedule in entries)
        self._transfer_into(self.settings.administrator, batch_total)

        indices = [self._record(b, schedule) for b, schedule in entries]
        logger.info(
            "Schedule batch created",
            extra={
                "event": "vault.batch_created",
                "count": len(indices),
                "total_amount": batch_total,
            },
        )
        return indices

    # ==================== Claim Engine ====================

    def claim(self, caller: str, current_time: Optional[int] = None) -> int:
        """
        Pay out everything unlocked across the caller's schedules.

        Returns:
            Total amount transferred to the caller

        Raises:
            NoSchedulesError: Caller has no schedules
            NothingToClaimError: Nothing unlocked beyond what was claimed
            TransferFailedError: Payout failed (bookkeeping is restored)
            ReentrancyError: Called while another claim/recover is in flight
        """
        self._require_not_locked()

        try:
            self._locked = True

            beneficiary = normalize_address(caller)
            schedules = self.store.get(beneficiary)
            if not schedules:
                raise NoSchedulesError(
                    "No vesting schedules for beneficiary",
                    details={"beneficiary": beneficiary},
                )

            now = self._current_time(current_time)
            with self._restore_on_error(beneficiary):
                total_paid = 0
                for schedule in schedules:
                    due = claimable_at(schedule, now)
                    if due == 0:
                        continue
                    schedule.claimed_amount += due
                    schedule.claimable_cache = max(schedule.claimable_cache - due, 0)
                    total_paid += due

                if total_paid == 0:
                    raise NothingToClaimError(
                        "Nothing to claim yet",
                        details={"beneficiary": beneficiary, "timestamp": now},
                    )

                self._transfer_out(beneficiary, total_paid)

            self.events.emit(TOKENS_CLAIMED, beneficiary=beneficiary, amount=total_paid)
            logger.info(
                "Tokens claimed",
                extra={
                    "event": "vault.claim",
                    "beneficiary": beneficiary[:10],
                    "amount": total_paid,
                    "timestamp": now,
                },
            )
            return total_paid

        finally:
            self._locked = False

    def preview_claimable(self, beneficiary: str, current_time: Optional[int] = None) -> int:
        """Amount ``claim`` would pay right now; 0 for unknown beneficiaries."""
        return sum(self.preview_schedule_claimables(beneficiary, current_time))

    def preview_schedule_claimables(
        self, beneficiary: str, current_time: Optional[int] = None
    ) -> List[int]:
        """Per-schedule claimable amounts, in schedule order."""
        now = self._current_time(current_time)
        return [claimable_at(s, now) for s in self.store.get(normalize_address(beneficiary))]

    # ==================== Recovery Engine ====================

    def recover(self, caller: str, beneficiary: str) -> int:
        """
        Sweep a beneficiary's entire unpaid balance to the recovery account.

        Locked and unlocked-but-unclaimed amounts are both swept and the
        beneficiary's schedules are deleted. Irreversible once it succeeds.

        Returns:
            Amount transferred to the recovery account
        """
        self.settings.require_administrator(caller)
        self._require_not_locked()

        try:
            self._locked = True

            beneficiary_norm = normalize_address(beneficiary)
            if self.store.count(beneficiary_norm) == 0:
                raise NoSchedulesError(
                    "No vesting schedules for beneficiary",
                    details={"beneficiary": beneficiary_norm},
                )

            recovery_account = self.settings.recovery_account
            with self._restore_on_error(beneficiary_norm):
                cleared = self.store.clear(beneficiary_norm)
                amount = sum(s.remaining for s in cleared)
                if amount == 0:
                    raise NothingToWithdrawError(
                        "Nothing left to recover",
                        details={"beneficiary": beneficiary_norm},
                    )
                self._transfer_out(recovery_account, amount)

            self.events.emit(
                TOKENS_RECOVERED,
                beneficiary=beneficiary_norm,
                recovery_account=recovery_account,
                amount=amount,
            )
            logger.warning(
                "Beneficiary allocation recovered",
                extra={
                    "event": "vault.recover",
                    "beneficiary": beneficiary_norm[:10],
                    "recovery_account": recovery_account[:10],
                    "amount": amount,
                    "schedules_removed": len(cleared),
                },
            )
            return amount

        finally:
            self._locked = False

    # ==================== Administration ====================

    def set_recovery_account(self, caller: str, account: str) -> str:
        return self.settings.set_recovery_account(caller, account, events=self.events)

    def transfer_administrator(self, caller: str, new_administrator: str) -> str:
        return self.settings.transfer_administrator(caller, new_administrator, events=self.events)

    def is_administrator(self, caller: str) -> bool:
        return self.settings.is_administrator(caller)

    # ==================== Queries ====================

    def get_schedules(self, beneficiary: str) -> List[Schedule]:
        """Copies of the beneficiary's schedules."""
        return self.store.snapshot(normalize_address(beneficiary))

    def get_schedule(self, beneficiary: str, index: int) -> Schedule:
        schedules = self.get_schedules(beneficiary)
        if not 0 <= index < len(schedules):
            raise IndexError(f"Schedule index {index} out of range")
        return schedules[index]

    def schedule_count(self, beneficiary: str) -> int:
        return self.store.count(normalize_address(beneficiary))

    def total_outstanding(self) -> int:
        return self.store.total_outstanding()

    def beneficiary_summary(
        self, beneficiary: str, current_time: Optional[int] = None
    ) -> Dict[str, int]:
        now = self._current_time(current_time)
        schedules = self.store.get(normalize_address(beneficiary))
        total = sum(s.total_amount for s in schedules)
        claimed = sum(s.claimed_amount for s in schedules)
        unlocked = sum(unlocked_at(s, now) for s in schedules)
        return {
            "schedules": len(schedules),
            "total_amount": total,
            "claimed_amount": claimed,
            "claimable_amount": sum(claimable_at(s, now) for s in schedules),
            "locked_amount": total - unlocked,
            "timestamp": now,
        }

    def check_solvency(self) -> Dict[str, Any]:
        """Compare custody balance against the sum of unpaid allocations."""
        balance = self.token_ledger.balance()
        outstanding = self.total_outstanding()
        solvent = balance >= outstanding
        if not solvent:
            logger.error(
                "Vault custody balance below outstanding allocations",
                extra={
                    "event": "vault.insolvent",
                    "custody_balance": balance,
                    "outstanding": outstanding,
                },
            )
        return {
            "custody_balance": balance,
            "outstanding": outstanding,
            "surplus": balance - outstanding,
            "solvent": solvent,
        }

    # ==================== Helpers ====================

    def _build_schedule(
        self,
        beneficiary: str,
        total_amount: int,
        upfront_percent: int,
        cliff_time: int,
        ramp_end: int,
    ) -> Tuple[str, Schedule]:
        if not isinstance(beneficiary, str) or is_zero_address(beneficiary):
            raise InvalidBeneficiaryError(
                "Beneficiary cannot be empty or the zero address",
                details={"beneficiary": beneficiary},
            )
        if not _is_int(total_amount) or total_amount <= 0 or total_amount > UINT256_MAX:
            raise InvalidAmountError(
                "Total amount must be a positive 256-bit integer",
                details={"total_amount": total_amount},
            )
        if not _is_int(upfront_percent) or not 0 <= upfront_percent <= 100:
            raise InvalidPercentError(
                "Upfront percent must be an integer between 0 and 100",
                details={"upfront_percent": upfront_percent},
            )
        if not _is_int(cliff_time) or not _is_int(ramp_end) or cliff_time < 0:
            raise InvalidTimelineError(
                "Cliff and ramp end must be non-negative integer timestamps",
                details={"cliff_time": cliff_time, "ramp_end": ramp_end},
            )
        if cliff_time >= ramp_end:
            raise InvalidTimelineError(
                "Cliff time must be before ramp end",
                details={"cliff_time": cliff_time, "ramp_end": ramp_end},
            )

        upfront_amount = total_amount * upfront_percent // 100
        schedule = Schedule(
            total_amount=total_amount,
            claimed_amount=0,
            upfront_amount=upfront_amount,
            claimable_cache=upfront_amount,
            cliff_time=cliff_time,
            ramp_start=cliff_time,
            ramp_end=ramp_end,
        )
        return normalize_address(beneficiary), schedule

    def _check_capacity(self, beneficiary: str, added: int) -> None:
        existing = self.store.count(beneficiary)
        if existing + added > self.max_schedules_per_beneficiary:
            raise ScheduleLimitExceededError(
                f"Beneficiary would exceed {self.max_schedules_per_beneficiary} schedules",
                details={
                    "beneficiary": beneficiary,
                    "existing": existing,
                    "requested": added,
                },
            )

    def _record(self, beneficiary: str, schedule: Schedule) -> int:
        index = self.store.append(beneficiary, schedule)
        self.events.emit(
            SCHEDULE_CREATED,
            beneficiary=beneficiary,
            index=index,
            total_amount=schedule.total_amount,
            upfront_amount=schedule.upfront_amount,
            cliff_time=schedule.cliff_time,
            ramp_end=schedule.ramp_end,
        )
        logger.info(
            "Vesting schedule created",
            extra={
                "event": "vault.schedule_created",
                "beneficiary": beneficiary[:10],
                "index": index,
                "total_amount": schedule.total_amount,
                "upfront_amount": schedule.upfront_amount,
            },
        )
        return index

    def _transfer_into(self, from_address: str, amount: int) -> None:
        try:
            ok = self.token_ledger.transfer_into(from_address, amount)
        except TokenError as exc:
            raise self._transfer_failed("into", from_address, amount, exc) from exc
        if not ok:
            raise self._transfer_failed("into", from_address, amount)

    def _transfer_out(self, to_address: str, amount: int) -> None:
        try:
            ok = self.token_ledger.transfer_out(to_address, amount)
        except TokenError as exc:
            raise self._transfer_failed("out", to_address, amount, exc) from exc
        if not ok:
            raise self._transfer_failed("out", to_address, amount)

    def _transfer_failed(
        self,
        direction: str,
        counterparty: str,
        amount: int,
        cause: Optional[Exception] = None,
    ) -> TransferFailedError:
        logger.error(
            "Token transfer failed",
            extra={
                "event": "vault.transfer_failed",
                "direction": direction,
                "counterparty": counterparty[:10],
                "amount": amount,
                "error": str(cause) if cause else "ledger returned failure",
            },
        )
        message = f"Token transfer {direction} failed for {amount}"
        if cause is not None:
            message = f"{message}: {cause}"
        return TransferFailedError(
            message,
            direction=direction,
            amount=amount,
            details={"counterparty": counterparty},
        )

    @contextmanager
    def _restore_on_error(self, beneficiary: str) -> Iterator[None]:
        snapshot = self.store.snapshot(beneficiary)
        try:
            yield
        except Exception:
            self.store.restore(beneficiary, snapshot)
            raise

    def _current_time(self, current_time: Optional[int] = None) -> int:
        timestamp = self._time_provider() if current_time is None else current_time
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    def _require_not_locked(self) -> None:
        if self._locked:
            raise ReentrancyError("Vault is locked: reentrant call rejected")
