"""
Keys and addresses for the ledger.

Pubkeys are 32 bytes rendered as base58. Keypairs are Ed25519.
Program-derived addresses (PDAs) follow the Solana construction:

    sha256(seed_0 || ... || seed_n || program_id || "ProgramDerivedAddress")

rejected when the digest is a valid Ed25519 point, so no private key can
exist for a PDA. Only the owning program can act for it.
"""

import hashlib
import secrets
from typing import List, Optional, Sequence, Tuple, Union

import base58
from ecdsa import BadSignatureError, Ed25519, SigningKey, VerifyingKey
from ecdsa.errors import MalformedPointError
from ecdsa.numbertheory import SquareRootError

from ..errors import InvalidSeeds

PUBKEY_LENGTH = 32
SIGNATURE_LENGTH = 64
MAX_SEED_LENGTH = 32
MAX_SEEDS = 16
PDA_MARKER = b"ProgramDerivedAddress"


class Pubkey:
    """32-byte public key / account address."""

    __slots__ = ("_bytes",)

    def __init__(self, value: Union[bytes, bytearray, str, "Pubkey"]):
        if isinstance(value, Pubkey):
            raw = bytes(value)
        elif isinstance(value, str):
            try:
                raw = base58.b58decode(value)
            except ValueError as e:
                raise ValueError(f"Invalid base58 pubkey: {value!r}") from e
        else:
            raw = bytes(value)
        if len(raw) != PUBKEY_LENGTH:
            raise ValueError(f"Pubkey must be {PUBKEY_LENGTH} bytes, got {len(raw)}")
        self._bytes = raw

    @classmethod
    def default(cls) -> "Pubkey":
        return cls(bytes(PUBKEY_LENGTH))

    @classmethod
    def new_unique(cls) -> "Pubkey":
        """Random pubkey (test and devnet helper, no keypair behind it)."""
        return cls(secrets.token_bytes(PUBKEY_LENGTH))

    def is_default(self) -> bool:
        return self._bytes == bytes(PUBKEY_LENGTH)

    def is_on_curve(self) -> bool:
        return is_on_curve(self._bytes)

    def __bytes__(self) -> bytes:
        return self._bytes

    def __str__(self) -> str:
        return base58.b58encode(self._bytes).decode("ascii")

    def __repr__(self) -> str:
        return f"Pubkey({self})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Pubkey) and self._bytes == other._bytes

    def __hash__(self) -> int:
        return hash(self._bytes)

    # immutable
    def __copy__(self) -> "Pubkey":
        return self

    def __deepcopy__(self, memo) -> "Pubkey":
        return self


def is_on_curve(data: bytes) -> bool:
    """True if `data` decodes as a valid Ed25519 public key point."""
    try:
        VerifyingKey.from_string(data, curve=Ed25519)
    except (MalformedPointError, SquareRootError, ValueError):
        return False
    return True


class Keypair:
    """Ed25519 signing keypair."""

    def __init__(self, signing_key: Optional[SigningKey] = None):
        self._signing_key = signing_key or SigningKey.from_string(
            secrets.token_bytes(32), curve=Ed25519
        )
        self.pubkey = Pubkey(self._signing_key.get_verifying_key().to_string())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        if len(seed) != 32:
            raise ValueError("Keypair seed must be exactly 32 bytes")
        return cls(SigningKey.from_string(seed, curve=Ed25519))

    def secret(self) -> bytes:
        return self._signing_key.to_string()

    def sign(self, message: bytes) -> bytes:
        return self._signing_key.sign(message)

    def __repr__(self) -> str:
        return f"Keypair({self.pubkey})"


def verify_signature(pubkey: Pubkey, message: bytes, signature: bytes) -> bool:
    """Check an Ed25519 signature. Never raises on malformed input."""
    if len(signature) != SIGNATURE_LENGTH:
        return False
    try:
        key = VerifyingKey.from_string(bytes(pubkey), curve=Ed25519)
        return key.verify(signature, message)
    except (BadSignatureError, MalformedPointError, SquareRootError, ValueError):
        return False


# =============================================================================
# Program-derived addresses
# =============================================================================

def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """
    Derive a program address from exact seeds (bump included).

    Raises:
        InvalidSeeds: too many / too long seeds, or the result is on the curve
    """
    if len(seeds) > MAX_SEEDS:
        raise InvalidSeeds(f"Too many seeds: {len(seeds)} > {MAX_SEEDS}")

    hasher = hashlib.sha256()
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise InvalidSeeds(f"Seed too long: {len(seed)} > {MAX_SEED_LENGTH}")
        hasher.update(seed)
    hasher.update(bytes(program_id))
    hasher.update(PDA_MARKER)
    digest = hasher.digest()

    if is_on_curve(digest):
        raise InvalidSeeds("Derived address lands on the Ed25519 curve")
    return Pubkey(digest)


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """
    Find the first off-curve program address, trying bump 255 down to 0.

    Returns:
        (address, bump)
    """
    for bump in range(255, -1, -1):
        try:
            address = create_program_address(list(seeds) + [bytes([bump])], program_id)
        except InvalidSeeds:
            continue
        return address, bump
    raise InvalidSeeds("Unable to find a viable program address bump seed")


def seeds_with_bump(seeds: List[bytes], bump: int) -> List[bytes]:
    return list(seeds) + [bytes([bump])]


# =============================================================================
# Well-known program ids
# =============================================================================

SYSTEM_PROGRAM_ID = Pubkey("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")

# Deployed HTLC program id (devnet); overridable through config
DEFAULT_HTLC_PROGRAM_ID = Pubkey("5dkHPRP7JU8k8rPScNLX6eG8vLhtMvciFjKxAsDqzBcL")
