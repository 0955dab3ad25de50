"""
HTLC program entry point.

HTLCProgram binds the instruction handlers to a bank and a program id.
Every instruction runs in its own bank transaction, so a rejected call
leaves no trace on the ledger.
"""

import dataclasses
import logging
from typing import List, Optional, Tuple

from ..core import HTLC_SEED
from ..errors import HTLCError, IllegalOwner, InvalidAccountData, LedgerError
from ..ledger.bank import Bank
from ..ledger.keys import DEFAULT_HTLC_PROGRAM_ID, Pubkey, find_program_address
from ..ledger.token import TokenProgram, get_associated_token_address
from . import instructions
from .instructions import CreateHTLCParams, InvocationContext
from .state import HTLCRecord

log = logging.getLogger(__name__)


class HTLCProgram:
    """
    The HTLC escrow program.

    Instructions:
    - create_htlc: lock tokens + safety deposit behind a hashlock
    - withdraw: release tokens for the preimage inside the withdrawal window
    - cancel: refund the source after the cancellation deadline

    Reads (get_htlc, find_htlc, list_htlcs) return copies; records only
    change through the three instructions.
    """

    def __init__(self, bank: Bank, program_id: Pubkey = DEFAULT_HTLC_PROGRAM_ID):
        self.bank = bank
        self.program_id = program_id
        self.tokens = TokenProgram(bank)

    # =========================================================================
    # Addresses
    # =========================================================================

    def find_htlc_address(self, htlc_id: bytes) -> Tuple[Pubkey, int]:
        return find_program_address([HTLC_SEED, bytes(htlc_id)], self.program_id)

    def get_htlc_address(self, htlc_id: bytes) -> Pubkey:
        """Record address for `htlc_id`. Same id, same address."""
        address, _ = self.find_htlc_address(htlc_id)
        return address

    def get_vault_address(self, htlc_address: Pubkey, mint: Pubkey) -> Pubkey:
        return get_associated_token_address(htlc_address, mint)

    # =========================================================================
    # Reads
    # =========================================================================

    def load_htlc(self, htlc_address: Pubkey) -> HTLCRecord:
        """Live record at `htlc_address`. Raises if absent or not an HTLC."""
        account = self.bank.require_account(htlc_address)
        if account.owner != self.program_id:
            raise IllegalOwner(f"{htlc_address} is not owned by the HTLC program")
        if not isinstance(account.data, HTLCRecord):
            raise InvalidAccountData(f"{htlc_address} is not an HTLC account")
        return account.data

    def get_htlc(self, htlc_address: Pubkey) -> Optional[HTLCRecord]:
        account = self.bank.get_account(htlc_address)
        if account is None or account.owner != self.program_id:
            return None
        if not isinstance(account.data, HTLCRecord):
            return None
        return dataclasses.replace(account.data)

    def find_htlc(self, htlc_id: bytes) -> Optional[HTLCRecord]:
        return self.get_htlc(self.get_htlc_address(htlc_id))

    def list_htlcs(self, status: Optional[str] = None) -> List[Tuple[Pubkey, HTLCRecord]]:
        """All HTLC records, optionally filtered by status, oldest first."""
        found = [
            (address, dataclasses.replace(account.data))
            for address, account in self.bank.program_accounts(self.program_id)
            if isinstance(account.data, HTLCRecord)
        ]
        if status is not None:
            found = [(a, r) for a, r in found if r.status == status]
        found.sort(key=lambda item: item[1].created_at)
        return found

    # =========================================================================
    # Instructions
    # =========================================================================
    #
    # Each call commits on its own, or joins a transaction the caller has
    # already opened (callers do this to read the signature and slot).

    def create_htlc(self, ctx: InvocationContext, params: CreateHTLCParams,
                    token_mint: Pubkey) -> Pubkey:
        try:
            with self.bank.transaction():
                htlc_address = instructions.create_htlc(self, ctx, params, token_mint)
        except (HTLCError, LedgerError) as e:
            log.warning(f"create_htlc rejected: id={params.htlc_id.hex()[:16]}... "
                        f"resolver={ctx.signer}: {type(e).__name__}: {e}")
            raise

        log.info(f"HTLC created: {htlc_address} id={params.htlc_id.hex()[:16]}... "
                 f"amount={params.amount}")
        return htlc_address

    def withdraw(self, ctx: InvocationContext, htlc_address: Pubkey, preimage: bytes,
                 destination_token_account: Optional[Pubkey] = None) -> None:
        try:
            with self.bank.transaction():
                instructions.withdraw(self, ctx, htlc_address, preimage,
                                      destination_token_account)
        except (HTLCError, LedgerError) as e:
            log.warning(f"withdraw rejected: {htlc_address} executor={ctx.signer}: "
                        f"{type(e).__name__}: {e}")
            raise

        log.info(f"HTLC withdrawn: {htlc_address} executor={ctx.signer}")

    def cancel(self, ctx: InvocationContext, htlc_address: Pubkey,
               source_identity: Pubkey) -> None:
        try:
            with self.bank.transaction():
                instructions.cancel(self, ctx, htlc_address, source_identity)
        except (HTLCError, LedgerError) as e:
            log.warning(f"cancel rejected: {htlc_address} executor={ctx.signer}: "
                        f"{type(e).__name__}: {e}")
            raise

        log.info(f"HTLC cancelled: {htlc_address} executor={ctx.signer}")
