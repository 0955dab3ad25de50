"""
HTLC manager for svm-htlc.

Client-side wrapper around the program for one keypair and one token mint:
- create_htlc: lock tokens, returns address + transaction signature
- withdraw_to_destination: claim with the preimage into our token account
- cancel: refund an expired HTLC to its source, collect the deposit
- get_htlc_state / get_htlc_address: reads
- watch_htlc_events: subscribe to program events
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .core import hex_to_bytes
from .errors import ClientError, ClientErrorCode, HTLCError, LedgerError
from .ledger.bank import LoggedEvent
from .ledger.keys import Keypair, Pubkey
from .program import (
    CreateHTLCParams,
    HTLCCancelled,
    HTLCCreated,
    HTLCProgram,
    HTLCRecord,
    HTLCWithdrawn,
    InvocationContext,
)

log = logging.getLogger(__name__)

HTLC_EVENT_TYPES = (HTLCCreated, HTLCWithdrawn, HTLCCancelled)

HtlcId = Union[bytes, str]


@dataclass
class CreateHTLCResult:
    """Result of a successful create_htlc."""
    htlc_address: str
    transaction_hash: str
    slot: int

    def to_dict(self) -> dict:
        return {
            "htlc_address": self.htlc_address,
            "transaction_hash": self.transaction_hash,
            "slot": self.slot,
        }


def _htlc_id_bytes(htlc_id: HtlcId) -> bytes:
    if isinstance(htlc_id, str):
        return hex_to_bytes(htlc_id)
    return bytes(htlc_id)


def _error_details(e: Exception) -> dict:
    if isinstance(e, HTLCError):
        return e.to_dict()
    return {"error": type(e).__name__, "message": str(e)}


class HTLCManager:
    """
    HTLC operations signed by one keypair, for one token mint.

    Program and ledger failures are re-raised as ClientError
    (SOL_TRANSACTION_FAILED) with the original error as __cause__.
    """

    def __init__(self, program: HTLCProgram, keypair: Keypair, token_mint: Pubkey):
        self.program = program
        self.keypair = keypair
        self.token_mint = token_mint

    @property
    def bank(self):
        return self.program.bank

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey

    def _ctx(self) -> InvocationContext:
        return InvocationContext(signer=self.keypair.pubkey)

    # =========================================================================
    # Instructions
    # =========================================================================

    def create_htlc(self, params: CreateHTLCParams) -> CreateHTLCResult:
        """
        Lock `params.amount` tokens and the safety deposit.

        Args:
            params: HTLC parameters (id, hashlock, EVM destination, deadlines)

        Returns:
            CreateHTLCResult(htlc_address, transaction_hash, slot)
        """
        log.info(f"Creating HTLC: id={params.htlc_id.hex()[:16]}..., "
                 f"hashlock={params.hashlock.hex()[:16]}..., amount={params.amount}")
        try:
            with self.bank.transaction() as tx:
                htlc_address = self.program.create_htlc(self._ctx(), params, self.token_mint)
        except (HTLCError, LedgerError) as e:
            log.error(f"Failed to create HTLC: {e}")
            raise ClientError(
                f"Failed to create HTLC: {e}",
                ClientErrorCode.TRANSACTION_FAILED,
                _error_details(e),
            ) from e

        log.info(f"HTLC created: {htlc_address} tx={tx.signature}")
        return CreateHTLCResult(
            htlc_address=str(htlc_address),
            transaction_hash=tx.signature,
            slot=tx.slot,
        )

    def withdraw_to_destination(self, htlc_id: HtlcId, preimage: Union[bytes, str]) -> str:
        """
        Withdraw into this keypair's associated token account.

        Returns:
            Transaction signature
        """
        htlc_address = self.program.get_htlc_address(_htlc_id_bytes(htlc_id))
        if isinstance(preimage, str):
            preimage = hex_to_bytes(preimage)

        log.info(f"Withdrawing HTLC: {htlc_address}")
        try:
            with self.bank.transaction() as tx:
                destination = self.program.tokens.get_or_create_associated_account(
                    self.pubkey, self.token_mint
                )
                self.program.withdraw(self._ctx(), htlc_address, preimage, destination)
        except (HTLCError, LedgerError) as e:
            log.error(f"Failed to withdraw HTLC {htlc_address}: {e}")
            raise ClientError(
                f"Failed to withdraw HTLC: {e}",
                ClientErrorCode.TRANSACTION_FAILED,
                _error_details(e),
            ) from e

        log.info(f"HTLC withdrawn: {htlc_address} tx={tx.signature}")
        return tx.signature

    def cancel(self, htlc_id: HtlcId) -> str:
        """
        Cancel an expired HTLC. The refund goes to the recorded source;
        this keypair collects the safety deposit.

        Returns:
            Transaction signature
        """
        htlc_address = self.program.get_htlc_address(_htlc_id_bytes(htlc_id))
        record = self.program.get_htlc(htlc_address)
        if record is None:
            raise ClientError(
                f"HTLC not found: {htlc_address}",
                ClientErrorCode.INVALID_ACCOUNT,
                {"htlc_address": str(htlc_address)},
            )

        log.info(f"Cancelling HTLC: {htlc_address}")
        try:
            with self.bank.transaction() as tx:
                self.program.cancel(self._ctx(), htlc_address, record.src_address)
        except (HTLCError, LedgerError) as e:
            log.error(f"Failed to cancel HTLC {htlc_address}: {e}")
            raise ClientError(
                f"Failed to cancel HTLC: {e}",
                ClientErrorCode.TRANSACTION_FAILED,
                _error_details(e),
            ) from e

        log.info(f"HTLC cancelled: {htlc_address} tx={tx.signature}")
        return tx.signature

    # =========================================================================
    # Reads
    # =========================================================================

    def get_htlc_state(self, htlc_id: HtlcId) -> Optional[HTLCRecord]:
        return self.program.find_htlc(_htlc_id_bytes(htlc_id))

    def get_htlc_address(self, htlc_id: HtlcId) -> str:
        return str(self.program.get_htlc_address(_htlc_id_bytes(htlc_id)))

    def watch_htlc_events(self, callback: Callable[[LoggedEvent], None]) -> Callable[[], None]:
        """
        Call `callback` for every committed HTLC event.

        Returns:
            Function that stops the subscription.
        """
        def on_event(logged: LoggedEvent):
            if isinstance(logged.event, HTLC_EVENT_TYPES):
                callback(logged)

        return self.bank.subscribe(on_event)
