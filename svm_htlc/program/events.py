"""
Events emitted by the HTLC program for off-chain observers
(e.g. the relayer on the counterpart chain).
"""

from dataclasses import dataclass
from typing import Any, Dict

from ..core import format_evm_address
from ..ledger.keys import Pubkey


@dataclass(frozen=True)
class HTLCCreated:
    htlc_account: Pubkey
    htlc_id: bytes
    resolver: Pubkey
    dst_address: bytes
    amount: int
    hashlock: bytes
    finality_deadline: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "htlc_account": str(self.htlc_account),
            "htlc_id": self.htlc_id.hex(),
            "resolver": str(self.resolver),
            "dst_address": format_evm_address(self.dst_address),
            "amount": self.amount,
            "hashlock": self.hashlock.hex(),
            "finality_deadline": self.finality_deadline,
        }


@dataclass(frozen=True)
class HTLCWithdrawn:
    htlc_account: Pubkey
    preimage: bytes
    executor: Pubkey
    destination: bytes      # EVM recipient recorded at creation (logging only)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "htlc_account": str(self.htlc_account),
            "preimage": self.preimage.hex(),
            "executor": str(self.executor),
            "destination": format_evm_address(self.destination),
        }


@dataclass(frozen=True)
class HTLCCancelled:
    htlc_account: Pubkey
    executor: Pubkey

    def to_dict(self) -> Dict[str, Any]:
        return {
            "htlc_account": str(self.htlc_account),
            "executor": str(self.executor),
        }
