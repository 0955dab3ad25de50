"""
Error types for svm-htlc.

Three families:
- HTLCError: program errors, numbered like on-chain custom errors (6000+).
  These codes are what calling tooling matches on.
- LedgerError: failures raised by the ledger substrate (accounts, lamports,
  token balances, address derivation).
- ClientError: wrapper raised by the HTLC manager and API client.
"""

from enum import IntEnum
from typing import Any, Optional


# =============================================================================
# Program errors
# =============================================================================

class HTLCErrorCode(IntEnum):
    """Custom program error codes (declaration order, offset 6000)."""
    InvalidTimelockOrder = 6000
    InvalidAmount = 6001
    InvalidTokenMint = 6002
    InvalidDestination = 6003
    WithdrawalNotAllowed = 6004
    CancellationNotAllowed = 6005
    AlreadyWithdrawn = 6006
    AlreadyCancelled = 6007
    InvalidPreimage = 6008
    InvalidSafetyDeposit = 6009


ERROR_MESSAGES = {
    HTLCErrorCode.InvalidTimelockOrder: "Invalid timelock ordering",
    HTLCErrorCode.InvalidAmount: "Amount must be greater than zero",
    HTLCErrorCode.InvalidTokenMint: "Invalid token mint",
    HTLCErrorCode.InvalidDestination: "Invalid destination address",
    HTLCErrorCode.WithdrawalNotAllowed: "Withdrawal not allowed at this time",
    HTLCErrorCode.CancellationNotAllowed: "Cancellation not allowed yet",
    HTLCErrorCode.AlreadyWithdrawn: "HTLC already withdrawn",
    HTLCErrorCode.AlreadyCancelled: "HTLC already cancelled",
    HTLCErrorCode.InvalidPreimage: "Invalid preimage",
    HTLCErrorCode.InvalidSafetyDeposit: "Safety deposit must be greater than zero",
}


class HTLCError(Exception):
    """Base class for HTLC program errors."""

    code: HTLCErrorCode

    def __init__(self, message: Optional[str] = None):
        self.message = message or ERROR_MESSAGES[self.code]
        super().__init__(self.message)

    @property
    def name(self) -> str:
        return self.code.name

    def to_dict(self) -> dict:
        return {"error": self.name, "code": int(self.code), "message": self.message}


class InvalidTimelockOrder(HTLCError):
    code = HTLCErrorCode.InvalidTimelockOrder


class InvalidAmount(HTLCError):
    code = HTLCErrorCode.InvalidAmount


class InvalidTokenMint(HTLCError):
    code = HTLCErrorCode.InvalidTokenMint


class InvalidDestination(HTLCError):
    code = HTLCErrorCode.InvalidDestination


class WithdrawalNotAllowed(HTLCError):
    code = HTLCErrorCode.WithdrawalNotAllowed


class CancellationNotAllowed(HTLCError):
    code = HTLCErrorCode.CancellationNotAllowed


class AlreadyWithdrawn(HTLCError):
    code = HTLCErrorCode.AlreadyWithdrawn


class AlreadyCancelled(HTLCError):
    code = HTLCErrorCode.AlreadyCancelled


class InvalidPreimage(HTLCError):
    code = HTLCErrorCode.InvalidPreimage


class InvalidSafetyDeposit(HTLCError):
    code = HTLCErrorCode.InvalidSafetyDeposit


_ERRORS_BY_CODE = {cls.code: cls for cls in HTLCError.__subclasses__()}


def error_from_code(code: int) -> HTLCError:
    """Build the program error for a numeric code (e.g. from an API response)."""
    return _ERRORS_BY_CODE[HTLCErrorCode(code)]()


# =============================================================================
# Ledger errors
# =============================================================================

class LedgerError(Exception):
    """Base class for ledger substrate failures."""


class AccountNotFound(LedgerError):
    """Referenced account does not exist."""


class AccountAlreadyInUse(LedgerError):
    """Account at the target address already exists."""


class InsufficientFunds(LedgerError):
    """Source lacks the lamports or tokens being moved."""


class InvalidAccountData(LedgerError):
    """Account holds data of an unexpected kind (wrong mint, not a token account...)."""


class IllegalOwner(LedgerError):
    """Account is not owned by the program attempting to modify it."""


class MissingRequiredSignature(LedgerError):
    """Authority for a debit did not sign."""


class InvalidSeeds(LedgerError):
    """Seeds do not derive a valid program address."""


class InvalidInstructionData(LedgerError):
    """Instruction arguments could not be decoded (wrong length, out of range)."""


# =============================================================================
# Client errors
# =============================================================================

class ClientErrorCode:
    CONNECTION_FAILED = "SOL_CONNECTION_FAILED"
    INSUFFICIENT_BALANCE = "SOL_INSUFFICIENT_BALANCE"
    TRANSACTION_FAILED = "SOL_TRANSACTION_FAILED"
    INVALID_ACCOUNT = "SOL_INVALID_ACCOUNT"
    PROGRAM_ERROR = "SOL_PROGRAM_ERROR"
    UNAUTHORIZED = "SOL_UNAUTHORIZED"


class ClientError(Exception):
    """Raised by the manager / API client when an operation fails."""

    def __init__(self, message: str, code: str, details: Any = None):
        super().__init__(message)
        self.code = code
        self.details = details
