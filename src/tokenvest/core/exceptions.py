"""
Vesting-specific exception hierarchy for tokenvest.

Provides typed exceptions for vault operations so callers can distinguish
caller mistakes, missing permissions, logically empty operations and
collaborator failures without string matching.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class VestingError(Exception):
    """Base exception for all vesting vault errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried by the caller
    """

    code = "vesting_error"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.message,
            "code": self.code,
            "type": self.__class__.__name__,
            "details": self.details,
        }


# ==================== Validation Errors ====================


class VaultValidationError(VestingError):
    """Raised when caller-supplied input is rejected before any mutation."""

    code = "invalid_input"


class InvalidBeneficiaryError(VaultValidationError):
    """Raised when the beneficiary is empty or the zero address."""

    code = "invalid_beneficiary"


class InvalidAmountError(VaultValidationError):
    """Raised when an allocation amount is zero, negative or out of range."""

    code = "invalid_amount"


class InvalidPercentError(VaultValidationError):
    """Raised when the upfront percentage is outside 0..100."""

    code = "invalid_percent"


class InvalidTimelineError(VaultValidationError):
    """Raised when the cliff does not come strictly before the ramp end."""

    code = "invalid_timeline"


class LengthMismatchError(VaultValidationError):
    """Raised when batch input sequences differ in length."""

    code = "length_mismatch"


class BatchTooLargeError(VaultValidationError):
    """Raised when a batch exceeds the configured maximum size."""

    code = "batch_too_large"


class ScheduleLimitExceededError(VaultValidationError):
    """Raised when a beneficiary would hold more schedules than allowed."""

    code = "schedule_limit_exceeded"


class InvalidAddressError(VaultValidationError):
    """Raised when an administrator or recovery address is unusable."""

    code = "invalid_address"


# ==================== Authorization Errors ====================


class AuthorizationError(VestingError):
    """Raised when the caller lacks permission for an operation."""

    code = "unauthorized"


class NotAdministratorError(AuthorizationError):
    """Raised when a non-administrator calls a privileged operation."""

    code = "not_administrator"


# ==================== State Errors ====================


class VaultStateError(VestingError):
    """Raised when an operation is logically empty for the current state."""

    code = "invalid_state"


class NoSchedulesError(VaultStateError):
    """Raised when the beneficiary has no schedules at all."""

    code = "no_schedules"


class NothingToClaimError(VaultStateError):
    """Raised when the beneficiary has schedules but nothing is unlocked yet."""

    code = "nothing_to_claim"


class NothingToWithdrawError(VaultStateError):
    """Raised when a recovery would sweep zero tokens."""

    code = "nothing_to_withdraw"


class ReentrancyError(VaultStateError):
    """Raised when claim or recover is re-entered during a token transfer."""

    code = "reentrant_call"


# ==================== Collaborator Errors ====================


class CollaboratorError(VestingError):
    """Raised when an external collaborator fails."""

    code = "collaborator_failure"


class TransferFailedError(CollaboratorError):
    """Raised when the token ledger rejects a transfer.

    The vault never retries; the caller may retry the whole operation.
    """

    code = "transfer_failed"

    def __init__(
        self,
        message: str,
        direction: Optional[str] = None,
        amount: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, recoverable=True, **kwargs)
        self.direction = direction
        self.amount = amount


# ==================== Token Errors ====================


class TokenError(VestingError):
    """Raised by the token ledger for rejected token operations."""

    code = "token_error"


# ==================== Configuration Errors ====================


class ConfigurationError(VestingError):
    """Raised when required configuration is missing or invalid."""

    code = "configuration_error"


# ==================== Storage Errors ====================


class StorageError(VestingError):
    """Raised when persisted vault state cannot be read or written."""

    code = "storage_error"


__all__ = [
    "VestingError",
    "VaultValidationError",
    "InvalidBeneficiaryError",
    "InvalidAmountError",
    "InvalidPercentError",
    "InvalidTimelineError",
    "LengthMismatchError",
    "BatchTooLargeError",
    "ScheduleLimitExceededError",
    "InvalidAddressError",
    "AuthorizationError",
    "NotAdministratorError",
    "VaultStateError",
    "NoSchedulesError",
    "NothingToClaimError",
    "NothingToWithdrawError",
    "ReentrancyError",
    "CollaboratorError",
    "TransferFailedError",
    "TokenError",
    "ConfigurationError",
    "StorageError",
]
