"""
HTLC instruction handlers: create_htlc, withdraw, cancel.

Each handler runs inside one bank transaction opened by HTLCProgram, reads
the clock once, and either applies all of its effects (flag, token
transfer, deposit payout, event) or none of them.
"""

from dataclasses import dataclass
from typing import Optional

from ..core import (
    EVM_ADDRESS_LENGTH,
    HASHLOCK_LENGTH,
    HTLC_ID_LENGTH,
    HTLC_SEED,
    I64_MAX,
    I64_MIN,
    PREIMAGE_LENGTH,
    TimelockPhase,
    Timelocks,
    verify_preimage,
)
from ..errors import (
    AlreadyCancelled,
    AlreadyWithdrawn,
    CancellationNotAllowed,
    InvalidDestination,
    InvalidInstructionData,
    InvalidPreimage,
    WithdrawalNotAllowed,
)
from ..ledger.bank import U64_MAX
from ..ledger.keys import Pubkey, seeds_with_bump
from ..ledger.token import get_associated_token_address
from .events import HTLCCancelled, HTLCCreated, HTLCWithdrawn
from .state import HTLCRecord
from .validation import validate_create_params


@dataclass(frozen=True)
class InvocationContext:
    """Who authorised the current instruction."""
    signer: Pubkey


@dataclass
class CreateHTLCParams:
    """create_htlc instruction arguments."""
    htlc_id: bytes
    dst_address: bytes
    dst_token: bytes
    amount: int
    safety_deposit: int
    hashlock: bytes
    finality_deadline: int
    resolver_deadline: int
    public_deadline: int
    cancellation_deadline: int

    def __post_init__(self):
        _check_length("htlc_id", self.htlc_id, HTLC_ID_LENGTH)
        _check_length("dst_address", self.dst_address, EVM_ADDRESS_LENGTH)
        _check_length("dst_token", self.dst_token, EVM_ADDRESS_LENGTH)
        _check_length("hashlock", self.hashlock, HASHLOCK_LENGTH)
        for name in ("amount", "safety_deposit"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value > U64_MAX:
                raise InvalidInstructionData(f"{name} out of u64 range: {value}")
        for name in ("finality_deadline", "resolver_deadline",
                     "public_deadline", "cancellation_deadline"):
            value = getattr(self, name)
            if (isinstance(value, bool) or not isinstance(value, int)
                    or not I64_MIN <= value <= I64_MAX):
                raise InvalidInstructionData(f"{name} out of i64 range: {value}")

    @classmethod
    def build(cls, htlc_id: bytes, dst_address: bytes, dst_token: bytes,
              amount: int, safety_deposit: int, hashlock: bytes,
              timelocks: Timelocks) -> "CreateHTLCParams":
        return cls(
            htlc_id=htlc_id,
            dst_address=dst_address,
            dst_token=dst_token,
            amount=amount,
            safety_deposit=safety_deposit,
            hashlock=hashlock,
            finality_deadline=timelocks.finality,
            resolver_deadline=timelocks.resolver,
            public_deadline=timelocks.public,
            cancellation_deadline=timelocks.cancellation,
        )


def _check_length(name: str, value: bytes, length: int) -> None:
    if not isinstance(value, (bytes, bytearray)) or len(value) != length:
        raise InvalidInstructionData(f"{name} must be {length} bytes")


# =============================================================================
# create_htlc
# =============================================================================

def create_htlc(program, ctx: InvocationContext, params: CreateHTLCParams,
                token_mint: Pubkey) -> Pubkey:
    """Open an escrow: allocate the record, fund the vault and the deposit."""
    bank = program.bank
    now = bank.unix_timestamp()

    validate_create_params(params, token_mint)
    program.tokens.get_mint(token_mint)

    htlc_address, bump = program.find_htlc_address(params.htlc_id)
    resolver = ctx.signer

    record = HTLCRecord(
        resolver=resolver,
        src_address=resolver,
        dst_address=bytes(params.dst_address),
        src_token=token_mint,
        dst_token=bytes(params.dst_token),
        amount=params.amount,
        safety_deposit=params.safety_deposit,
        hashlock=bytes(params.hashlock),
        htlc_id=bytes(params.htlc_id),
        finality_deadline=params.finality_deadline,
        resolver_deadline=params.resolver_deadline,
        public_deadline=params.public_deadline,
        cancellation_deadline=params.cancellation_deadline,
        created_at=now,
        bump=bump,
        withdrawn=False,
        cancelled=False,
    )
    bank.create_program_account(htlc_address, program.program_id, record)

    # Principal: resolver token account -> vault (owned by the HTLC address)
    resolver_token_account = get_associated_token_address(resolver, token_mint)
    vault = program.tokens.get_or_create_associated_account(htlc_address, token_mint)
    program.tokens.transfer(resolver_token_account, vault, params.amount, authority=resolver)

    # Incentive: resolver lamports -> HTLC account
    bank.transfer_lamports(resolver, htlc_address, params.safety_deposit, signer=resolver)

    bank.emit(HTLCCreated(
        htlc_account=htlc_address,
        htlc_id=record.htlc_id,
        resolver=resolver,
        dst_address=record.dst_address,
        amount=record.amount,
        hashlock=record.hashlock,
        finality_deadline=record.finality_deadline,
    ))
    return htlc_address


# =============================================================================
# withdraw
# =============================================================================

def withdraw(program, ctx: InvocationContext, htlc_address: Pubkey, preimage: bytes,
             destination_token_account: Optional[Pubkey] = None) -> None:
    """Release the principal for a matching preimage inside the allowed window."""
    bank = program.bank
    now = bank.unix_timestamp()

    _check_length("preimage", preimage, PREIMAGE_LENGTH)
    record = program.load_htlc(htlc_address)
    executor = ctx.signer

    if record.withdrawn:
        raise AlreadyWithdrawn()
    if record.cancelled:
        raise AlreadyCancelled()

    if not verify_preimage(bytes(preimage), record.hashlock):
        raise InvalidPreimage()

    phase = record.phase_at(now)
    if phase == TimelockPhase.FINALITY:
        raise WithdrawalNotAllowed("Withdrawal not allowed during finality period")
    if phase == TimelockPhase.RESOLVER_EXCLUSIVE and executor != record.resolver:
        raise WithdrawalNotAllowed("Only the resolver may withdraw during the exclusive period")
    if phase == TimelockPhase.EXPIRED:
        raise WithdrawalNotAllowed("Withdrawal period has ended")

    record.withdrawn = True

    if destination_token_account is None:
        destination_token_account = program.tokens.get_or_create_associated_account(
            executor, record.src_token
        )
    vault = get_associated_token_address(htlc_address, record.src_token)
    program.tokens.transfer_signed(
        vault,
        destination_token_account,
        record.amount,
        signer_seeds=seeds_with_bump([HTLC_SEED, record.htlc_id], record.bump),
        program_id=program.program_id,
    )
    bank.debit_program_account(htlc_address, executor, record.safety_deposit, program.program_id)

    bank.emit(HTLCWithdrawn(
        htlc_account=htlc_address,
        preimage=bytes(preimage),
        executor=executor,
        destination=record.dst_address,
    ))


# =============================================================================
# cancel
# =============================================================================

def cancel(program, ctx: InvocationContext, htlc_address: Pubkey,
           source_identity: Pubkey) -> None:
    """Refund the principal to the source after the cancellation deadline."""
    bank = program.bank
    now = bank.unix_timestamp()

    record = program.load_htlc(htlc_address)
    executor = ctx.signer

    # Same code as a malformed destination at creation; tooling matches on it
    if source_identity != record.src_address:
        raise InvalidDestination("Refund target does not match the HTLC source")

    if record.withdrawn:
        raise AlreadyWithdrawn()
    if record.cancelled:
        raise AlreadyCancelled()

    if not record.can_cancel_at(now):
        raise CancellationNotAllowed()

    record.cancelled = True

    src_token_account = program.tokens.get_or_create_associated_account(
        record.src_address, record.src_token
    )
    vault = get_associated_token_address(htlc_address, record.src_token)
    program.tokens.transfer_signed(
        vault,
        src_token_account,
        record.amount,
        signer_seeds=seeds_with_bump([HTLC_SEED, record.htlc_id], record.bump),
        program_id=program.program_id,
    )
    bank.debit_program_account(htlc_address, executor, record.safety_deposit, program.program_id)

    bank.emit(HTLCCancelled(htlc_account=htlc_address, executor=executor))
