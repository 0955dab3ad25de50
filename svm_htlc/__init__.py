"""
svm-htlc - HTLC Escrow for Cross-Chain Atomic Swaps

Solana-side leg of an atomic swap: a resolver locks SPL tokens plus a
safety deposit behind a SHA256 hashlock and four timelocks. The escrow
is either withdrawn with the preimage or cancelled back to the source,
exactly once.

Usage:
    from svm_htlc import Bank, ManualClock, HTLCProgram, HTLCManager
    from svm_htlc import CreateHTLCParams, Timelocks, generate_secret

    bank = Bank(ManualClock(1_700_000_000))
    program = HTLCProgram(bank)

    # Resolver locks tokens
    manager = HTLCManager(program, resolver_keypair, token_mint)
    secret, hashlock = generate_secret()
    params = CreateHTLCParams.build(
        htlc_id, dst_address, dst_token, amount=1_000_000,
        safety_deposit=10_000, hashlock=hashlock,
        timelocks=Timelocks.from_offsets(bank.unix_timestamp()),
    )
    result = manager.create_htlc(params)

    # After finality, the resolver withdraws with the secret
    manager.withdraw_to_destination(htlc_id, secret)
"""

from .core import (
    TimelockPhase,
    Timelocks,
    generate_secret,
    hash_secret,
    verify_preimage,
    hex_to_bytes,
    bytes_to_hex,
    parse_evm_address,
    format_evm_address,
    DEFAULT_SAFETY_DEPOSIT,
)
from .errors import (
    HTLCError,
    HTLCErrorCode,
    LedgerError,
    ClientError,
    ClientErrorCode,
)

from .ledger import Bank, Keypair, Pubkey, ManualClock, SystemClock, TokenProgram
from .program import HTLCProgram, HTLCRecord, CreateHTLCParams, InvocationContext

from .config import SVMConfig
from .manager import HTLCManager, CreateHTLCResult
from .keeper import CancellationKeeper
from .api_client import HTLCApiClient

__version__ = "0.1.0"
__all__ = [
    # Core types
    "TimelockPhase",
    "Timelocks",
    "DEFAULT_SAFETY_DEPOSIT",
    # Utilities
    "generate_secret",
    "hash_secret",
    "verify_preimage",
    "hex_to_bytes",
    "bytes_to_hex",
    "parse_evm_address",
    "format_evm_address",
    # Errors
    "HTLCError",
    "HTLCErrorCode",
    "LedgerError",
    "ClientError",
    "ClientErrorCode",
    # Ledger
    "Bank",
    "Keypair",
    "Pubkey",
    "ManualClock",
    "SystemClock",
    "TokenProgram",
    # Program
    "HTLCProgram",
    "HTLCRecord",
    "CreateHTLCParams",
    "InvocationContext",
    # Clients
    "SVMConfig",
    "HTLCManager",
    "CreateHTLCResult",
    "CancellationKeeper",
    "HTLCApiClient",
]
