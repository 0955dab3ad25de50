"""
HTLC escrow record.

One record per swap, stored at the program-derived address of
[b"htlc", htlc_id]. Only the withdrawn / cancelled flags change after
creation, each at most once, and never both.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

from ..core import TimelockPhase, Timelocks, format_evm_address
from ..ledger.bank import account_type
from ..ledger.keys import Pubkey

STATUS_ACTIVE = "active"
STATUS_WITHDRAWN = "withdrawn"
STATUS_CANCELLED = "cancelled"


@account_type
@dataclass
class HTLCRecord:
    """HTLC account data."""
    KIND = "htlc"

    resolver: Pubkey          # who opened the escrow; exclusive withdrawer early on
    src_address: Pubkey       # refund target on cancel
    dst_address: bytes        # EVM recipient (20 bytes), informational
    src_token: Pubkey         # SPL mint
    dst_token: bytes          # ERC20 on the other chain (20 bytes), opaque
    amount: int
    safety_deposit: int       # lamports paid to the executor
    hashlock: bytes           # sha256(preimage)
    htlc_id: bytes            # cross-chain identifier (32 bytes)

    finality_deadline: int
    resolver_deadline: int
    public_deadline: int
    cancellation_deadline: int

    created_at: int
    bump: int
    withdrawn: bool = field(default=False)
    cancelled: bool = field(default=False)

    @property
    def timelocks(self) -> Timelocks:
        return Timelocks(
            finality=self.finality_deadline,
            resolver=self.resolver_deadline,
            public=self.public_deadline,
            cancellation=self.cancellation_deadline,
        )

    @property
    def is_completed(self) -> bool:
        return self.withdrawn or self.cancelled

    @property
    def status(self) -> str:
        if self.withdrawn:
            return STATUS_WITHDRAWN
        if self.cancelled:
            return STATUS_CANCELLED
        return STATUS_ACTIVE

    def phase_at(self, now: int) -> TimelockPhase:
        """Withdrawal phase at `now`. Each phase starts at its deadline, inclusive."""
        if now < self.finality_deadline:
            return TimelockPhase.FINALITY
        if now < self.resolver_deadline:
            return TimelockPhase.RESOLVER_EXCLUSIVE
        if now < self.public_deadline:
            return TimelockPhase.PUBLIC
        return TimelockPhase.EXPIRED

    def can_withdraw_at(self, now: int, executor: Pubkey) -> bool:
        phase = self.phase_at(now)
        if phase == TimelockPhase.RESOLVER_EXCLUSIVE:
            return executor == self.resolver
        return phase == TimelockPhase.PUBLIC

    def can_cancel_at(self, now: int) -> bool:
        return now >= self.cancellation_deadline

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolver": str(self.resolver),
            "src_address": str(self.src_address),
            "dst_address": format_evm_address(self.dst_address),
            "src_token": str(self.src_token),
            "dst_token": format_evm_address(self.dst_token),
            "amount": self.amount,
            "safety_deposit": self.safety_deposit,
            "hashlock": self.hashlock.hex(),
            "htlc_id": self.htlc_id.hex(),
            "finality_deadline": self.finality_deadline,
            "resolver_deadline": self.resolver_deadline,
            "public_deadline": self.public_deadline,
            "cancellation_deadline": self.cancellation_deadline,
            "withdrawn": self.withdrawn,
            "cancelled": self.cancelled,
            "created_at": self.created_at,
            "bump": self.bump,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HTLCRecord":
        return cls(
            resolver=Pubkey(d["resolver"]),
            src_address=Pubkey(d["src_address"]),
            dst_address=bytes.fromhex(d["dst_address"][2:]),
            src_token=Pubkey(d["src_token"]),
            dst_token=bytes.fromhex(d["dst_token"][2:]),
            amount=int(d["amount"]),
            safety_deposit=int(d["safety_deposit"]),
            hashlock=bytes.fromhex(d["hashlock"]),
            htlc_id=bytes.fromhex(d["htlc_id"]),
            finality_deadline=int(d["finality_deadline"]),
            resolver_deadline=int(d["resolver_deadline"]),
            public_deadline=int(d["public_deadline"]),
            cancellation_deadline=int(d["cancellation_deadline"]),
            created_at=int(d["created_at"]),
            bump=int(d["bump"]),
            withdrawn=bool(d["withdrawn"]),
            cancelled=bool(d["cancelled"]),
        )
