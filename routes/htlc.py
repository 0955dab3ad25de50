"""
HTLC program endpoints.

Reads are open; create / withdraw / cancel must be signed by the caller
(see svm_htlc.signing). Program and ledger errors propagate to the
exception handlers registered in server.py.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from svm_htlc import __version__
from svm_htlc.core import DEFAULT_SAFETY_DEPOSIT, hex_to_bytes, parse_evm_address
from svm_htlc.ledger import Pubkey
from svm_htlc.program import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_WITHDRAWN,
    CreateHTLCParams,
    HTLCProgram,
    InvocationContext,
)
from svm_htlc.signing import verify_instruction

log = logging.getLogger(__name__)

router = APIRouter()

# ---------------------------------------------------------------------------
# Program handle (set by server.py at init)
# ---------------------------------------------------------------------------

_program: Optional[HTLCProgram] = None
_faucet_enabled = False


def configure(program: HTLCProgram, faucet_enabled: bool = False):
    """Configure HTLC routes. Called once at startup by server.py."""
    global _program, _faucet_enabled
    _program = program
    _faucet_enabled = faucet_enabled


def _get_program() -> HTLCProgram:
    if _program is None:
        raise HTTPException(503, "Ledger not initialised")
    return _program


def _parse_pubkey(value: str, field: str) -> Pubkey:
    try:
        return Pubkey(value)
    except ValueError as e:
        raise HTTPException(400, f"Invalid {field}: {e}")


def _parse_hex(value: str, field: str) -> bytes:
    try:
        return hex_to_bytes(value)
    except ValueError as e:
        raise HTTPException(400, f"Invalid {field}: {e}")


def _parse_evm(value: str, field: str) -> bytes:
    try:
        return parse_evm_address(value)
    except ValueError as e:
        raise HTTPException(400, f"Invalid {field}: {e}")


def _record_view(program: HTLCProgram, address: Pubkey, record) -> dict:
    now = program.bank.unix_timestamp()
    vault = program.get_vault_address(address, record.src_token)
    view = record.to_dict()
    view.update({
        "htlc_address": str(address),
        "vault_address": str(vault),
        "vault_balance": program.tokens.balance_of(vault),
        "status": record.status,
        "phase": record.phase_at(now).value,
        "can_cancel": not record.is_completed and record.can_cancel_at(now),
    })
    return view


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class CreateHTLCRequest(BaseModel):
    htlc_id: str = Field(..., description="32-byte swap id (hex)")
    dst_address: str = Field(..., description="EVM recipient (0x...)")
    dst_token: str = Field(..., description="EVM token contract (0x...)")
    amount: int = Field(..., description="Token base units")
    safety_deposit: int = Field(DEFAULT_SAFETY_DEPOSIT, description="Lamports paid to the executor")
    hashlock: str = Field(..., description="SHA256 of the preimage (hex)")
    finality_deadline: int
    resolver_deadline: int
    public_deadline: int
    cancellation_deadline: int
    token_mint: str = Field(..., description="SPL mint (base58)")
    signer: str = Field(..., description="Resolver pubkey (base58)")
    signature: str = Field(..., description="Ed25519 signature (base58)")


class WithdrawRequest(BaseModel):
    htlc_address: str
    preimage: str = Field(..., description="32-byte preimage (hex)")
    destination_token_account: Optional[str] = Field(
        None, description="Token account to pay; default: signer's associated account"
    )
    signer: str
    signature: str


class CancelRequest(BaseModel):
    htlc_address: str
    source_identity: str = Field(..., description="Refund target, must match the HTLC source")
    signer: str
    signature: str


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get("/api/status")
async def get_status():
    """Health check."""
    program = _get_program()
    htlcs = program.list_htlcs()
    return {
        "status": "ok",
        "version": __version__,
        "program_id": str(program.program_id),
        "slot": program.bank.slot,
        "timestamp": program.bank.unix_timestamp(),
        "faucet": _faucet_enabled,
        "htlcs_active": len([r for _, r in htlcs if r.status == STATUS_ACTIVE]),
        "htlcs_total": len(htlcs),
    }


@router.get("/api/htlc/{htlc_id}")
async def get_htlc(htlc_id: str):
    """HTLC record by swap id."""
    program = _get_program()
    address = program.get_htlc_address(_parse_hex(htlc_id, "htlc_id"))
    record = program.get_htlc(address)
    if record is None:
        raise HTTPException(404, "HTLC not found")
    return _record_view(program, address, record)


@router.get("/api/htlc/{htlc_id}/address")
async def get_htlc_address(htlc_id: str):
    """Derived record address for a swap id (whether or not it exists yet)."""
    program = _get_program()
    address, bump = program.find_htlc_address(_parse_hex(htlc_id, "htlc_id"))
    return {
        "htlc_id": htlc_id,
        "htlc_address": str(address),
        "bump": bump,
        "exists": program.get_htlc(address) is not None,
    }


@router.get("/api/htlcs")
async def list_htlcs(status: Optional[str] = Query(None, description="active, withdrawn, cancelled")):
    """List HTLCs, oldest first."""
    if status is not None and status not in (STATUS_ACTIVE, STATUS_WITHDRAWN, STATUS_CANCELLED):
        raise HTTPException(400, f"Unknown status: {status}")
    program = _get_program()
    htlcs = [_record_view(program, address, record)
             for address, record in program.list_htlcs(status=status)]
    return {"count": len(htlcs), "htlcs": htlcs}


@router.get("/api/events")
async def list_events(since: int = Query(0, ge=0, description="Only events after this slot")):
    """Program events committed after `since`."""
    program = _get_program()
    events = [e.to_dict() for e in program.bank.events_since(since)]
    return {"count": len(events), "slot": program.bank.slot, "events": events}


@router.get("/api/balance/{pubkey}")
async def get_balance(pubkey: str, mint: Optional[str] = Query(None)):
    """Lamports, plus the associated token balance for `mint` if given."""
    program = _get_program()
    owner = _parse_pubkey(pubkey, "pubkey")
    result = {"pubkey": pubkey, "lamports": program.bank.get_balance(owner)}
    if mint:
        result["mint"] = mint
        result["token_balance"] = program.tokens.balance_of_owner(owner, _parse_pubkey(mint, "mint"))
    return result


# ---------------------------------------------------------------------------
# Instructions
# ---------------------------------------------------------------------------

@router.post("/api/htlc/create")
async def create_htlc(req: CreateHTLCRequest):
    """Lock tokens + safety deposit behind a hashlock (signed by the resolver)."""
    program = _get_program()
    signer = verify_instruction("create_htlc", req.model_dump(exclude={"signature"}), req.signature)

    params = CreateHTLCParams(
        htlc_id=_parse_hex(req.htlc_id, "htlc_id"),
        dst_address=_parse_evm(req.dst_address, "dst_address"),
        dst_token=_parse_evm(req.dst_token, "dst_token"),
        amount=req.amount,
        safety_deposit=req.safety_deposit,
        hashlock=_parse_hex(req.hashlock, "hashlock"),
        finality_deadline=req.finality_deadline,
        resolver_deadline=req.resolver_deadline,
        public_deadline=req.public_deadline,
        cancellation_deadline=req.cancellation_deadline,
    )
    token_mint = _parse_pubkey(req.token_mint, "token_mint")

    with program.bank.transaction() as tx:
        htlc_address = program.create_htlc(InvocationContext(signer=signer), params, token_mint)

    return {
        "htlc_address": str(htlc_address),
        "transaction_hash": tx.signature,
        "slot": tx.slot,
    }


@router.post("/api/htlc/withdraw")
async def withdraw_htlc(req: WithdrawRequest):
    """Claim with the preimage (signed by the executor)."""
    program = _get_program()
    signer = verify_instruction("withdraw", req.model_dump(exclude={"signature"}), req.signature)

    htlc_address = _parse_pubkey(req.htlc_address, "htlc_address")
    preimage = _parse_hex(req.preimage, "preimage")
    destination = None
    if req.destination_token_account:
        destination = _parse_pubkey(req.destination_token_account, "destination_token_account")

    with program.bank.transaction() as tx:
        program.withdraw(InvocationContext(signer=signer), htlc_address, preimage, destination)

    return {
        "htlc_address": str(htlc_address),
        "status": STATUS_WITHDRAWN,
        "transaction_hash": tx.signature,
        "slot": tx.slot,
    }


@router.post("/api/htlc/cancel")
async def cancel_htlc(req: CancelRequest):
    """Refund an expired HTLC to its source (any signer may execute)."""
    program = _get_program()
    signer = verify_instruction("cancel", req.model_dump(exclude={"signature"}), req.signature)

    htlc_address = _parse_pubkey(req.htlc_address, "htlc_address")
    source_identity = _parse_pubkey(req.source_identity, "source_identity")

    with program.bank.transaction() as tx:
        program.cancel(InvocationContext(signer=signer), htlc_address, source_identity)

    return {
        "htlc_address": str(htlc_address),
        "status": STATUS_CANCELLED,
        "transaction_hash": tx.signature,
        "slot": tx.slot,
    }
