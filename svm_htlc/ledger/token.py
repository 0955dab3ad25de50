"""
SPL-style token program for the ledger.

Token balances live in token accounts, each tied to one mint and one owner.
A transfer needs the owner's authority: either an external signer
(`transfer`) or, for program-derived owners, the seeds that derive the
owner under the calling program (`transfer_signed`). The second form is
how the HTLC program moves funds out of its vaults.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from ..errors import (
    AccountAlreadyInUse,
    InsufficientFunds,
    InvalidAccountData,
    InvalidInstructionData,
    MissingRequiredSignature,
)
from .bank import U64_MAX, Bank, account_type, check_u64
from .keys import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    Pubkey,
    create_program_address,
    find_program_address,
)

log = logging.getLogger(__name__)


@account_type
@dataclass
class Mint:
    """Token mint."""
    KIND = "mint"

    mint_authority: Pubkey
    decimals: int
    supply: int = 0

    def to_dict(self) -> Dict:
        return {
            "mint_authority": str(self.mint_authority),
            "decimals": self.decimals,
            "supply": self.supply,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "Mint":
        return cls(
            mint_authority=Pubkey(d["mint_authority"]),
            decimals=int(d["decimals"]),
            supply=int(d["supply"]),
        )


@account_type
@dataclass
class TokenAccount:
    """Balance of one mint held by one owner."""
    KIND = "token_account"

    mint: Pubkey
    owner: Pubkey
    amount: int = 0

    def to_dict(self) -> Dict:
        return {"mint": str(self.mint), "owner": str(self.owner), "amount": self.amount}

    @classmethod
    def from_dict(cls, d: Dict) -> "TokenAccount":
        return cls(mint=Pubkey(d["mint"]), owner=Pubkey(d["owner"]), amount=int(d["amount"]))


def get_associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """Deterministic token account address for (owner, mint). Owner may be off-curve."""
    address, _ = find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


class TokenProgram:
    """Mint, account and transfer operations over a Bank."""

    def __init__(self, bank: Bank):
        self.bank = bank

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_mint(self, mint: Pubkey) -> Mint:
        account = self.bank.require_account(mint)
        if account.owner != TOKEN_PROGRAM_ID or not isinstance(account.data, Mint):
            raise InvalidAccountData(f"{mint} is not a token mint")
        return account.data

    def get_token_account(self, address: Pubkey) -> TokenAccount:
        account = self.bank.require_account(address)
        if account.owner != TOKEN_PROGRAM_ID or not isinstance(account.data, TokenAccount):
            raise InvalidAccountData(f"{address} is not a token account")
        return account.data

    def balance_of(self, address: Pubkey) -> int:
        """Token balance, 0 when the account does not exist."""
        account = self.bank.get_account(address)
        if account is None or not isinstance(account.data, TokenAccount):
            return 0
        return account.data.amount

    def balance_of_owner(self, owner: Pubkey, mint: Pubkey) -> int:
        return self.balance_of(get_associated_token_address(owner, mint))

    # =========================================================================
    # Account creation
    # =========================================================================

    def create_mint(self, mint_authority: Pubkey, decimals: int = 6,
                    mint: Optional[Pubkey] = None) -> Pubkey:
        mint = mint or Pubkey.new_unique()
        self.bank.create_program_account(
            mint, TOKEN_PROGRAM_ID, Mint(mint_authority=mint_authority, decimals=decimals)
        )
        log.info(f"Created mint {mint} (decimals={decimals})")
        return mint

    def create_associated_account(self, owner: Pubkey, mint: Pubkey) -> Pubkey:
        with self.bank.transaction():
            self.get_mint(mint)
            address = get_associated_token_address(owner, mint)
            self.bank.create_program_account(
                address, TOKEN_PROGRAM_ID, TokenAccount(mint=mint, owner=owner)
            )
            return address

    def get_or_create_associated_account(self, owner: Pubkey, mint: Pubkey) -> Pubkey:
        with self.bank.transaction():
            address = get_associated_token_address(owner, mint)
            if self.bank.get_account(address) is None:
                self.create_associated_account(owner, mint)
            else:
                token_account = self.get_token_account(address)
                if token_account.mint != mint or token_account.owner != owner:
                    raise AccountAlreadyInUse(f"{address} holds a different token account")
            return address

    # =========================================================================
    # Supply and transfers
    # =========================================================================

    def mint_to(self, mint: Pubkey, destination: Pubkey, amount: int,
                authority: Pubkey) -> None:
        check_u64(amount)
        with self.bank.transaction():
            mint_data = self.get_mint(mint)
            if mint_data.mint_authority != authority:
                raise MissingRequiredSignature(f"{authority} is not the mint authority of {mint}")
            token_account = self.get_token_account(destination)
            if token_account.mint != mint:
                raise InvalidAccountData(f"{destination} is not an account of mint {mint}")
            if mint_data.supply + amount > U64_MAX:
                raise InvalidInstructionData("Mint supply overflow")
            mint_data.supply += amount
            token_account.amount += amount

    def transfer(self, source: Pubkey, destination: Pubkey, amount: int,
                 authority: Pubkey) -> None:
        """Transfer signed by the source account's owner."""
        check_u64(amount)
        with self.bank.transaction():
            src = self.get_token_account(source)
            if src.owner != authority:
                raise MissingRequiredSignature(f"{authority} does not own token account {source}")
            self._move(src, source, destination, amount)

    def transfer_signed(self, source: Pubkey, destination: Pubkey, amount: int,
                        signer_seeds: Sequence[bytes], program_id: Pubkey) -> None:
        """Transfer out of an account owned by a program-derived address."""
        check_u64(amount)
        with self.bank.transaction():
            authority = create_program_address(signer_seeds, program_id)
            src = self.get_token_account(source)
            if src.owner != authority:
                raise MissingRequiredSignature(
                    f"Seeds derive {authority}, which does not own {source}"
                )
            self._move(src, source, destination, amount)

    def _move(self, src: TokenAccount, source: Pubkey, destination: Pubkey, amount: int) -> None:
        dst = self.get_token_account(destination)
        if dst.mint != src.mint:
            raise InvalidAccountData(f"Mint mismatch: {source} -> {destination}")
        if src.amount < amount:
            raise InsufficientFunds(f"{source} holds {src.amount} tokens, needs {amount}")
        src.amount -= amount
        dst.amount += amount
