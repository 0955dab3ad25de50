"""
Creation-time parameter checks.

Pure and deterministic. Checked in the order below; the first failure is the
error the caller sees. Comparisons are strict (`>`, `<`).
"""

from ..errors import (
    InvalidAmount,
    InvalidDestination,
    InvalidSafetyDeposit,
    InvalidTimelockOrder,
    InvalidTokenMint,
)
from ..ledger.keys import Pubkey


def is_zero(data: bytes) -> bool:
    return not any(data)


def validate_amount(amount: int) -> None:
    if not amount > 0:
        raise InvalidAmount()


def validate_safety_deposit(safety_deposit: int) -> None:
    if not safety_deposit > 0:
        raise InvalidSafetyDeposit()


def validate_token_mint(mint: Pubkey) -> None:
    if mint.is_default():
        raise InvalidTokenMint()


def validate_destination(dst_address: bytes, dst_token: bytes) -> None:
    if is_zero(dst_address):
        raise InvalidDestination()
    if is_zero(dst_token):
        raise InvalidDestination()


def validate_timelock_order(finality: int, resolver: int, public: int, cancellation: int) -> None:
    if not (finality < resolver and resolver < public and public < cancellation):
        raise InvalidTimelockOrder()


def validate_create_params(params, token_mint: Pubkey) -> None:
    """Run every creation check against CreateHTLCParams."""
    validate_amount(params.amount)
    validate_safety_deposit(params.safety_deposit)
    validate_token_mint(token_mint)
    validate_destination(params.dst_address, params.dst_token)
    validate_timelock_order(
        params.finality_deadline,
        params.resolver_deadline,
        params.public_deadline,
        params.cancellation_deadline,
    )
