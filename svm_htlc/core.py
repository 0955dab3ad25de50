"""
Core types and helpers for svm-htlc.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from web3 import Web3


# =============================================================================
# Constants
# =============================================================================

# Seed prefix for HTLC program-derived addresses: [HTLC_SEED, htlc_id]
HTLC_SEED = b"htlc"

HTLC_ID_LENGTH = 32
HASHLOCK_LENGTH = 32
PREIMAGE_LENGTH = 32
EVM_ADDRESS_LENGTH = 20

LAMPORTS_PER_SOL = 1_000_000_000
TOKEN_DECIMALS = 6                   # SPL token amounts carry 6 decimals

# Default incentive paid to whoever executes withdraw / cancel
DEFAULT_SAFETY_DEPOSIT = 10_000      # 0.00001 SOL

# Default timelock offsets (seconds after creation)
DEFAULT_FINALITY_SECONDS = 30
DEFAULT_RESOLVER_SECONDS = 60
DEFAULT_PUBLIC_SECONDS = 300
DEFAULT_CANCELLATION_SECONDS = 600

I64_MIN = -(2**63)
I64_MAX = 2**63 - 1


class TimelockPhase(Enum):
    """Withdrawal phases of an HTLC, in order."""
    FINALITY = "finality"                      # nobody may withdraw
    RESOLVER_EXCLUSIVE = "resolver_exclusive"  # only the resolver may withdraw
    PUBLIC = "public"                          # anyone with the preimage
    EXPIRED = "expired"                        # withdrawal closed, cancel pending/allowed


@dataclass(frozen=True)
class Timelocks:
    """Absolute unix deadlines. Valid when finality < resolver < public < cancellation."""
    finality: int
    resolver: int
    public: int
    cancellation: int

    @classmethod
    def from_offsets(cls, now: int,
                     finality: int = DEFAULT_FINALITY_SECONDS,
                     resolver: int = DEFAULT_RESOLVER_SECONDS,
                     public: int = DEFAULT_PUBLIC_SECONDS,
                     cancellation: int = DEFAULT_CANCELLATION_SECONDS) -> "Timelocks":
        """Build deadlines as offsets (seconds) from `now`."""
        return cls(
            finality=now + finality,
            resolver=now + resolver,
            public=now + public,
            cancellation=now + cancellation,
        )

    def is_ordered(self) -> bool:
        return self.finality < self.resolver < self.public < self.cancellation

    def to_dict(self) -> dict:
        return {
            "finality": self.finality,
            "resolver": self.resolver,
            "public": self.public,
            "cancellation": self.cancellation,
        }


# =============================================================================
# Secret Utilities
# =============================================================================

def generate_secret(seed: Optional[bytes] = None) -> Tuple[bytes, bytes]:
    """
    Generate a random 32-byte secret and its SHA256 hashlock.

    Args:
        seed: Deterministic generation, testing only (secret = sha256(seed))

    Returns:
        (secret, hashlock)
    """
    if seed is not None:
        secret = hashlib.sha256(seed).digest()
    else:
        secret = secrets.token_bytes(PREIMAGE_LENGTH)
    return secret, hashlib.sha256(secret).digest()


def hash_secret(secret: bytes) -> bytes:
    """SHA256 of a 32-byte secret. Single round, no salt."""
    if len(secret) != PREIMAGE_LENGTH:
        raise ValueError(f"Secret must be exactly {PREIMAGE_LENGTH} bytes")
    return hashlib.sha256(secret).digest()


def verify_preimage(preimage: bytes, hashlock: bytes) -> bool:
    """Constant-time check that SHA256(preimage) == hashlock."""
    return hmac.compare_digest(hashlib.sha256(preimage).digest(), hashlock)


def hex_to_bytes(value: str) -> bytes:
    """Decode hex, with or without 0x prefix."""
    if value.startswith(("0x", "0X")):
        value = value[2:]
    if len(value) % 2 != 0:
        raise ValueError("Hex string must have even length")
    try:
        return bytes.fromhex(value)
    except ValueError as e:
        raise ValueError(f"Invalid hex string: {e}") from e


def bytes_to_hex(data: bytes) -> str:
    """Encode as 0x-prefixed lowercase hex."""
    return "0x" + data.hex()


# =============================================================================
# EVM (counterpart chain) addresses
# =============================================================================

def parse_evm_address(address: str) -> bytes:
    """
    Parse a 20-byte EVM address.

    Mixed-case input must carry a valid EIP-55 checksum.
    """
    if not Web3.is_address(address):
        raise ValueError(f"Invalid EVM address: {address}")
    body = address[2:] if address[:2].lower() == "0x" else address
    if body != body.lower() and body != body.upper() and not Web3.is_checksum_address(address):
        raise ValueError(f"Bad EIP-55 checksum: {address}")
    return bytes(Web3.to_bytes(hexstr=address))


def format_evm_address(data: bytes) -> str:
    """EIP-55 checksummed representation of 20 address bytes."""
    if len(data) != EVM_ADDRESS_LENGTH:
        raise ValueError(f"EVM address must be {EVM_ADDRESS_LENGTH} bytes, got {len(data)}")
    return Web3.to_checksum_address(data)


def to_base_units(amount: float, decimals: int = TOKEN_DECIMALS) -> int:
    """Convert a display amount to integer base units."""
    return int(round(amount * 10 ** decimals))


def from_base_units(amount: int, decimals: int = TOKEN_DECIMALS) -> float:
    """Convert integer base units to a display amount."""
    return amount / 10 ** decimals
