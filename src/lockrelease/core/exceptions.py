"""
Ledger exception hierarchy for lockrelease.

Every ledger operation validates before it mutates, so each of these errors
means the stores are exactly as they were before the call.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class LedgerError(Exception):
    """Base exception for all ledger errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the caller can retry after fixing external state
    """

    code = "ledger_error"
    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if recoverable is not None:
            self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "type": type(self).__name__,
            "details": dict(self.details),
        }


# ==================== Validation Errors ====================


class ValidationError(LedgerError):
    """Raised when schedule creation arguments are rejected."""

    code = "validation_error"


class ZeroAddressError(ValidationError):
    """Raised when an asset, beneficiary or recipient is the zero address."""

    code = "zero_address"


class ZeroAmountError(ValidationError):
    """Raised when a schedule would be created with nothing in it."""

    code = "zero_amount"


class ZeroDurationError(ValidationError):
    """Raised when a schedule duration is zero."""

    code = "zero_duration"


class DuplicateScheduleError(ValidationError):
    """Raised when a schedule already exists for (asset, beneficiary)."""

    code = "duplicate_schedule"


# ==================== Claim Errors ====================


class ClaimError(LedgerError):
    """Raised when a release request cannot be honoured."""

    code = "claim_error"


class NoTokensDueError(ClaimError):
    """Raised when nothing is releasable, including for unknown schedules."""

    code = "no_tokens_due"


class ZeroClaimError(ClaimError):
    """Raised when an explicit claim amount is not positive."""

    code = "zero_claim"


class OverClaimError(ClaimError):
    """Raised when a claim exceeds the releasable amount."""

    code = "over_claim"


# ==================== Sequencing Errors ====================


class SequencingError(LedgerError):
    """Raised when a caller breaks the marker ordering contract."""

    code = "sequencing_error"


class OutOfOrderWriteError(SequencingError):
    """Raised when a checkpoint write arrives behind the last recorded marker."""

    code = "out_of_order_write"


class FutureLookupError(SequencingError):
    """Raised when a historical lookup targets a marker that is not settled."""

    code = "future_lookup"


# ==================== Transfer Errors ====================


class TransferError(LedgerError):
    """Raised by asset-transfer collaborators; propagated unchanged."""

    code = "transfer_error"


class TransferRejectedError(TransferError):
    """Raised when the collaborator refuses a transfer outright."""

    code = "transfer_rejected"


class InsufficientAllowanceError(TransferError):
    """Raised when the payer has not approved enough for the custodian."""

    code = "insufficient_allowance"
    recoverable = True  # Retry after approving more


class InsufficientBalanceError(TransferError):
    """Raised when the payer holds less than the requested amount."""

    code = "insufficient_balance"
    recoverable = True  # Retry after funding the payer


# ==================== Invariant Violations ====================


class InvariantViolation(LedgerError):
    """Raised when calling accounting logic is broken. Never retried."""

    code = "invariant_violation"


class NegativeBalanceError(InvariantViolation):
    """Raised when a checkpoint write would drive a value below zero."""

    code = "negative_balance"


# ==================== Configuration Errors ====================


class ConfigurationError(LedgerError):
    """Raised when configuration is missing or invalid."""

    code = "configuration_error"
