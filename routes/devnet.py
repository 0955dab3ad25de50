"""
Devnet faucet endpoints: airdrop lamports, mint test tokens, move the clock.

Only served when the faucet is enabled (SVM_HTLC_FAUCET=1); otherwise every
endpoint answers 404.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from svm_htlc.core import LAMPORTS_PER_SOL
from svm_htlc.ledger import ManualClock, Pubkey, find_program_address
from svm_htlc.program import HTLCProgram

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/devnet")

FAUCET_AUTHORITY_SEED = b"faucet"
DEVNET_MINT_SEED = b"devnet-mint"

MAX_AIRDROP_LAMPORTS = 100 * LAMPORTS_PER_SOL

# ---------------------------------------------------------------------------
# Faucet state (set by server.py at init)
# ---------------------------------------------------------------------------

_program: Optional[HTLCProgram] = None
_enabled = False
_token_decimals = 6


def configure(program: HTLCProgram, enabled: bool, token_decimals: int = 6):
    """Configure devnet module. Called once at startup by server.py."""
    global _program, _enabled, _token_decimals
    _program = program
    _enabled = enabled
    _token_decimals = token_decimals


def faucet_authority(program: HTLCProgram) -> Pubkey:
    address, _ = find_program_address([FAUCET_AUTHORITY_SEED], program.program_id)
    return address


def devnet_mint_address(program: HTLCProgram) -> Pubkey:
    address, _ = find_program_address([DEVNET_MINT_SEED], program.program_id)
    return address


def ensure_devnet_mint(program: HTLCProgram, decimals: int) -> Pubkey:
    """Create the faucet's test token mint unless it already exists."""
    mint = devnet_mint_address(program)
    if program.bank.get_account(mint) is None:
        program.tokens.create_mint(faucet_authority(program), decimals=decimals, mint=mint)
        log.info(f"Devnet mint created: {mint}")
    return mint


def _get_program() -> HTLCProgram:
    if not _enabled or _program is None:
        raise HTTPException(404, "Faucet disabled")
    return _program


def _parse_pubkey(value: str, field: str) -> Pubkey:
    try:
        return Pubkey(value)
    except ValueError as e:
        raise HTTPException(400, f"Invalid {field}: {e}")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class AirdropRequest(BaseModel):
    pubkey: str
    lamports: int = Field(LAMPORTS_PER_SOL, gt=0, le=MAX_AIRDROP_LAMPORTS)


class MintRequest(BaseModel):
    owner: str = Field(..., description="Wallet pubkey; tokens land in its associated account")
    amount: int = Field(..., gt=0, description="Token base units")


class ClockAdvanceRequest(BaseModel):
    seconds: int = Field(..., ge=0)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/mint")
async def get_devnet_mint():
    """The faucet's test token mint."""
    program = _get_program()
    mint = devnet_mint_address(program)
    if program.bank.get_account(mint) is None:
        raise HTTPException(404, "Devnet mint not created yet")
    info = program.tokens.get_mint(mint)
    return {"mint": str(mint), "decimals": info.decimals, "supply": info.supply}


@router.post("/airdrop")
async def airdrop(req: AirdropRequest):
    """Credit lamports to any pubkey."""
    program = _get_program()
    pubkey = _parse_pubkey(req.pubkey, "pubkey")
    program.bank.airdrop(pubkey, req.lamports)
    return {"pubkey": req.pubkey, "lamports": program.bank.get_balance(pubkey)}


@router.post("/mint")
async def mint_tokens(req: MintRequest):
    """Mint test tokens to the owner's associated token account."""
    program = _get_program()
    owner = _parse_pubkey(req.owner, "owner")
    mint = ensure_devnet_mint(program, _token_decimals)

    with program.bank.transaction():
        token_account = program.tokens.get_or_create_associated_account(owner, mint)
        program.tokens.mint_to(mint, token_account, req.amount, authority=faucet_authority(program))

    log.info(f"Minted {req.amount} devnet tokens to {owner}")
    return {
        "owner": req.owner,
        "mint": str(mint),
        "token_account": str(token_account),
        "balance": program.tokens.balance_of(token_account),
    }


@router.post("/clock/advance")
async def advance_clock(req: ClockAdvanceRequest):
    """Move the manual clock forward (SVM_HTLC_CLOCK=manual only)."""
    program = _get_program()
    clock = program.bank.clock
    if not isinstance(clock, ManualClock):
        raise HTTPException(400, "Clock is not manual")
    now = clock.advance(req.seconds)
    log.info(f"Clock advanced {req.seconds}s to {now}")
    return {"unix_timestamp": now}
