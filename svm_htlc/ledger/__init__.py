"""
Ledger substrate for svm-htlc.

A small Solana-shaped runtime the HTLC program executes against:
- keys: Pubkey / Keypair / program-derived addresses
- clock: SystemClock / ManualClock
- bank: accounts, lamports, atomic transactions, event log
- token: SPL-style mints, token accounts and transfers
"""

from .keys import (
    Pubkey,
    Keypair,
    verify_signature,
    create_program_address,
    find_program_address,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    ASSOCIATED_TOKEN_PROGRAM_ID,
    DEFAULT_HTLC_PROGRAM_ID,
)
from .clock import SystemClock, ManualClock
from .bank import Bank, Account, LoggedEvent, TransactionContext
from .token import TokenProgram, Mint, TokenAccount, get_associated_token_address

__all__ = [
    "Pubkey",
    "Keypair",
    "verify_signature",
    "create_program_address",
    "find_program_address",
    "SYSTEM_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "DEFAULT_HTLC_PROGRAM_ID",
    "SystemClock",
    "ManualClock",
    "Bank",
    "Account",
    "LoggedEvent",
    "TransactionContext",
    "TokenProgram",
    "Mint",
    "TokenAccount",
    "get_associated_token_address",
]
