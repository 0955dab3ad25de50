"""
In-process ledger ("bank") for svm-htlc.

Holds every account, serialises transactions, and gives each transaction
all-or-nothing semantics: state is snapshotted when the outermost
transaction opens and restored if anything inside it raises. Events emitted
inside a transaction are buffered and only published on commit.

Account data kinds (token mints, token accounts, HTLC records) register
themselves with @account_type so snapshots can be saved and reloaded.
"""

import copy
import json
import logging
import os
import secrets
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import base58

from ..errors import (
    AccountAlreadyInUse,
    AccountNotFound,
    IllegalOwner,
    InsufficientFunds,
    InvalidInstructionData,
    LedgerError,
    MissingRequiredSignature,
)
from .clock import SystemClock
from .keys import SYSTEM_PROGRAM_ID, Pubkey

log = logging.getLogger(__name__)

U64_MAX = 2**64 - 1

# kind -> data class with to_dict()/from_dict()
_ACCOUNT_TYPES: Dict[str, type] = {}


def account_type(cls):
    """Register an account data class for snapshot persistence."""
    _ACCOUNT_TYPES[cls.KIND] = cls
    return cls


@dataclass
class Account:
    """A ledger account: native balance, owning program, typed data."""
    lamports: int = 0
    owner: Pubkey = SYSTEM_PROGRAM_ID
    data: Any = None


@dataclass
class LoggedEvent:
    """Event as seen by off-chain observers."""
    name: str
    event: Any
    signature: str
    slot: int
    block_time: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.name,
            "signature": self.signature,
            "slot": self.slot,
            "block_time": self.block_time,
            "data": self.event.to_dict(),
        }


@dataclass
class TransactionContext:
    """Per-transaction state. signature/slot are set on commit."""
    block_time: int
    events: List[Any] = field(default_factory=list)
    signature: Optional[str] = None
    slot: Optional[int] = None


class Bank:
    """
    Account store + transaction processor.

    All mutations run inside transaction(); public mutators open one
    themselves, joining the caller's transaction if one is already open.
    """

    def __init__(self, clock=None, snapshot_path: Optional[str] = None):
        self.clock = clock or SystemClock()
        self.snapshot_path = snapshot_path  # saved after every commit when set
        self.accounts: Dict[Pubkey, Account] = {}
        self.slot = 0
        self.event_log: List[LoggedEvent] = []

        self._lock = threading.RLock()
        self._tx: Optional[TransactionContext] = None
        self._subscribers: List[Callable[[LoggedEvent], None]] = []

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[TransactionContext]:
        """
        Run a block atomically.

        Nested calls join the outer transaction; only the outermost one
        snapshots, commits or rolls back.
        """
        with self._lock:
            if self._tx is not None:
                yield self._tx
                return

            tx = TransactionContext(block_time=self.clock.unix_timestamp())
            snapshot = copy.deepcopy(self.accounts)
            self._tx = tx
            try:
                yield tx
            except BaseException:
                self.accounts = snapshot
                log.debug(f"Transaction rolled back ({len(tx.events)} events discarded)")
                raise
            finally:
                self._tx = None

            published = self._commit(tx)
            if self.snapshot_path:
                self._save_snapshot()

        self._publish(published)

    def _commit(self, tx: TransactionContext) -> List[LoggedEvent]:
        self.slot += 1
        tx.slot = self.slot
        tx.signature = base58.b58encode(secrets.token_bytes(64)).decode("ascii")

        published = [
            LoggedEvent(
                name=type(event).__name__,
                event=event,
                signature=tx.signature,
                slot=tx.slot,
                block_time=tx.block_time,
            )
            for event in tx.events
        ]
        self.event_log.extend(published)
        return published

    def _save_snapshot(self) -> None:
        try:
            self.save(self.snapshot_path)
        except OSError as e:
            log.error(f"Failed to save ledger snapshot after slot {self.slot}: {e}")

    def _publish(self, events: List[LoggedEvent]) -> None:
        for logged in events:
            for callback in list(self._subscribers):
                try:
                    callback(logged)
                except Exception as e:
                    log.error(f"Event subscriber failed on {logged.name}: {e}")

    def unix_timestamp(self) -> int:
        """Clock value for the current transaction (read once when it opened)."""
        tx = self._tx
        if tx is not None:
            return tx.block_time
        return self.clock.unix_timestamp()

    # =========================================================================
    # Events
    # =========================================================================

    def emit(self, event: Any) -> None:
        """Buffer an event on the open transaction."""
        if self._tx is None:
            raise LedgerError("Events can only be emitted inside a transaction")
        self._tx.events.append(event)

    def subscribe(self, callback: Callable[[LoggedEvent], None]) -> Callable[[], None]:
        """
        Register an event callback.

        Returns:
            Function that removes the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def events_since(self, slot: int = 0) -> List[LoggedEvent]:
        with self._lock:
            return [e for e in self.event_log if e.slot > slot]

    # =========================================================================
    # Accounts
    # =========================================================================

    def get_account(self, address: Pubkey) -> Optional[Account]:
        return self.accounts.get(address)

    def require_account(self, address: Pubkey) -> Account:
        account = self.accounts.get(address)
        if account is None:
            raise AccountNotFound(f"Account not found: {address}")
        return account

    def program_accounts(self, program_id: Pubkey) -> List[Tuple[Pubkey, Account]]:
        """Every account owned by `program_id`."""
        with self._lock:
            return [
                (address, account)
                for address, account in self.accounts.items()
                if account.owner == program_id
            ]

    def create_program_account(self, address: Pubkey, owner: Pubkey, data: Any) -> Account:
        """
        Allocate an account owned by `owner`.

        A pre-funded system account with no data is taken over with its
        lamports; anything else at the address is AccountAlreadyInUse.
        """
        with self.transaction():
            account = self.accounts.get(address)
            if account is not None:
                if account.owner != SYSTEM_PROGRAM_ID or account.data is not None:
                    raise AccountAlreadyInUse(f"Account {address} already in use")
                account.owner = owner
                account.data = data
                return account
            account = Account(lamports=0, owner=owner, data=data)
            self.accounts[address] = account
            return account

    # =========================================================================
    # Native currency
    # =========================================================================

    def get_balance(self, address: Pubkey) -> int:
        account = self.accounts.get(address)
        return account.lamports if account else 0

    def airdrop(self, address: Pubkey, lamports: int) -> None:
        check_u64(lamports)
        with self.transaction():
            account = self.accounts.setdefault(address, Account())
            if account.lamports + lamports > U64_MAX:
                raise InvalidInstructionData("Lamport balance overflow")
            account.lamports += lamports
        log.info(f"Airdropped {lamports} lamports to {address}")

    def transfer_lamports(self, source: Pubkey, destination: Pubkey,
                          lamports: int, signer: Pubkey) -> None:
        """System transfer: the source must sign and be system-owned."""
        check_u64(lamports)
        with self.transaction():
            if signer != source:
                raise MissingRequiredSignature(f"{source} must sign lamport transfer")
            src = self.require_account(source)
            if src.owner != SYSTEM_PROGRAM_ID:
                raise IllegalOwner(f"{source} is not a system account")
            self._move_lamports(src, source, destination, lamports)

    def debit_program_account(self, source: Pubkey, destination: Pubkey,
                              lamports: int, program_id: Pubkey) -> None:
        """Move lamports out of an account owned by `program_id`."""
        check_u64(lamports)
        with self.transaction():
            src = self.require_account(source)
            if src.owner != program_id:
                raise IllegalOwner(f"{source} is not owned by {program_id}")
            self._move_lamports(src, source, destination, lamports)

    def _move_lamports(self, src: Account, source: Pubkey, destination: Pubkey,
                       lamports: int) -> None:
        if src.lamports < lamports:
            raise InsufficientFunds(
                f"{source} has {src.lamports} lamports, needs {lamports}"
            )
        dst = self.accounts.setdefault(destination, Account())
        src.lamports -= lamports
        dst.lamports += lamports

    # =========================================================================
    # Persistence
    # =========================================================================

    def save(self, path: str) -> None:
        """Write account state to disk as JSON."""
        with self._lock:
            state = {
                "slot": self.slot,
                "accounts": {
                    str(address): {
                        "lamports": account.lamports,
                        "owner": str(account.owner),
                        "kind": account.data.KIND if account.data is not None else None,
                        "data": account.data.to_dict() if account.data is not None else None,
                    }
                    for address, account in self.accounts.items()
                },
            }
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = path + ".tmp"
        with open(tmp_path, "w") as f:
            json.dump(state, f, indent=2)
        os.replace(tmp_path, path)
        log.debug(f"Saved {len(state['accounts'])} accounts to {path}")

    def load(self, path: str) -> bool:
        """Replace account state from a JSON snapshot. Returns False if absent."""
        if not os.path.exists(path):
            return False
        with open(path, "r") as f:
            state = json.load(f)

        accounts = {}
        for address, entry in state.get("accounts", {}).items():
            data = None
            if entry.get("kind"):
                data = _ACCOUNT_TYPES[entry["kind"]].from_dict(entry["data"])
            accounts[Pubkey(address)] = Account(
                lamports=int(entry["lamports"]),
                owner=Pubkey(entry["owner"]),
                data=data,
            )

        with self._lock:
            self.accounts = accounts
            self.slot = int(state.get("slot", 0))
        log.info(f"Loaded {len(accounts)} accounts from {path}")
        return True


def check_u64(amount: int) -> None:
    if not isinstance(amount, int) or amount < 0 or amount > U64_MAX:
        raise InvalidInstructionData(f"Amount out of u64 range: {amount}")
