#!/usr/bin/env python3
"""
svm-htlc Server
HTLC escrow program (Solana leg of a cross-chain atomic swap) on a local ledger.

Endpoints:
  GET  /api/status               - Health check
  GET  /api/htlc/{id}            - HTLC state by swap id
  GET  /api/htlc/{id}/address    - Derived HTLC address
  GET  /api/htlcs                - List HTLCs (?status=active|withdrawn|cancelled)
  GET  /api/events               - Program events (?since=slot)
  GET  /api/balance/{pubkey}     - Lamports / token balance

  POST /api/htlc/create          - Lock tokens behind a hashlock (signed)
  POST /api/htlc/withdraw        - Claim with preimage (signed)
  POST /api/htlc/cancel          - Refund after cancellation deadline (signed)

  # Devnet (SVM_HTLC_FAUCET=1)
  POST /api/devnet/airdrop       - Credit lamports
  GET  /api/devnet/mint          - Test token mint
  POST /api/devnet/mint          - Mint test tokens
  POST /api/devnet/clock/advance - Move the manual clock
"""

import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from svm_htlc import __version__
from svm_htlc.config import CLOCK_MANUAL, SVMConfig
from svm_htlc.errors import (
    AccountNotFound,
    ClientError,
    ClientErrorCode,
    HTLCError,
    LedgerError,
)
from svm_htlc.keeper import CancellationKeeper
from svm_htlc.ledger import Bank, Keypair, ManualClock, SystemClock
from svm_htlc.program import HTLCProgram

from routes import devnet as devnet_routes
from routes import htlc as htlc_routes

# =============================================================================
# CONFIGURATION
# =============================================================================

config = SVMConfig.from_env()

# =============================================================================
# LOGGING
# =============================================================================

logging.basicConfig(
    level=config.log_level,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
log = logging.getLogger(__name__)

# =============================================================================
# LEDGER STATE (set by configure / startup)
# =============================================================================

bank: Optional[Bank] = None
program: Optional[HTLCProgram] = None
keeper: Optional[CancellationKeeper] = None


def build_bank(cfg: SVMConfig) -> Bank:
    if cfg.clock == CLOCK_MANUAL:
        return Bank(ManualClock(int(time.time())))
    return Bank(SystemClock())


def configure(cfg: SVMConfig, ledger: Optional[Bank] = None) -> HTLCProgram:
    """Bind the service to a ledger. Startup calls this unless already done."""
    global config, bank, program
    config = cfg
    bank = ledger or build_bank(cfg)
    program = HTLCProgram(bank, cfg.program_id)
    htlc_routes.configure(program, faucet_enabled=cfg.faucet_enabled)
    devnet_routes.configure(program, enabled=cfg.faucet_enabled, token_decimals=cfg.token_decimals)
    return program


# =============================================================================
# APP SETUP
# =============================================================================

app = FastAPI(
    title="svm-htlc",
    description="HTLC escrow for cross-chain atomic swaps",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(htlc_routes.router)
app.include_router(devnet_routes.router)


# =============================================================================
# ERROR MAPPING
# =============================================================================

@app.exception_handler(HTLCError)
async def htlc_error_handler(request: Request, exc: HTLCError):
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = 404 if isinstance(exc, AccountNotFound) else 400
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "message": str(exc)},
    )


@app.exception_handler(ClientError)
async def client_error_handler(request: Request, exc: ClientError):
    status_code = 401 if exc.code == ClientErrorCode.UNAUTHORIZED else 400
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "message": str(exc), "details": exc.details},
    )


@app.get("/")
async def root():
    return {
        "name": "svm-htlc",
        "version": __version__,
        "program_id": str(config.program_id),
        "docs": "/docs",
    }


# =============================================================================
# LIFECYCLE
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize ledger, snapshot (saved on every commit from here on) and keeper."""
    global keeper

    if program is None:
        configure(config)

    if config.db_path:
        if bank.load(config.db_path):
            log.info(f"Ledger restored from {config.db_path} (slot {bank.slot})")
        else:
            log.info(f"No snapshot at {config.db_path}, starting empty ledger")
        bank.snapshot_path = config.db_path

    if config.faucet_enabled:
        mint = devnet_routes.ensure_devnet_mint(program, config.token_decimals)
        log.info(f"Faucet enabled, devnet mint {mint}")

    if config.keeper_poll_interval > 0:
        keeper = CancellationKeeper(program, Keypair(), poll_interval=config.keeper_poll_interval)
        keeper.start()
        log.info(f"Keeper collecting deposits as {keeper.keypair.pubkey}")

    log.info(f"svm-htlc ready: program {config.program_id}, clock={config.clock}")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop keeper, persist ledger."""
    global keeper
    if keeper:
        keeper.stop()
        keeper = None
    if config.db_path and bank is not None:
        try:
            bank.save(config.db_path)
        except OSError as e:
            log.error(f"Failed to save ledger snapshot: {e}")
    log.info("svm-htlc stopped")


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    log.info(f"Starting svm-htlc on {config.host}:{config.port}")
    log.info(f"Docs: http://{config.host}:{config.port}/docs")
    uvicorn.run(app, host=config.host, port=config.port)
