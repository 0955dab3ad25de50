#!/usr/bin/env python3
"""
Example: Solana leg of an atomic swap, on a local ledger

Walks through both outcomes of an HTLC:

1. Resolver locks tokens + safety deposit behind a hashlock
2. Finality period: nobody can withdraw
3. Resolver-exclusive period: resolver withdraws with the secret
4. Second HTLC is never claimed; after the cancellation deadline the
   keeper cancels it, refunding the resolver and collecting the deposit

Usage:
    python local_swap.py
"""

import sys
import logging
from pathlib import Path

# Add package to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from svm_htlc import (
    Bank,
    CancellationKeeper,
    ClientError,
    CreateHTLCParams,
    HTLCManager,
    HTLCProgram,
    Keypair,
    ManualClock,
    Timelocks,
    generate_secret,
    parse_evm_address,
)
from svm_htlc.core import LAMPORTS_PER_SOL, from_base_units, to_base_units

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger(__name__)

USER_EVM_ADDRESS = "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"
USDC_EVM_ADDRESS = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"


def main():
    # =================================================================
    # 1. Local ledger, token and resolver
    # =================================================================
    clock = ManualClock(1_700_000_000)
    bank = Bank(clock)
    program = HTLCProgram(bank)

    resolver = Keypair()
    keeper_keypair = Keypair()
    mint_authority = Keypair()

    bank.airdrop(resolver.pubkey, 2 * LAMPORTS_PER_SOL)
    mint = program.tokens.create_mint(mint_authority.pubkey, decimals=6)
    resolver_ata = program.tokens.create_associated_account(resolver.pubkey, mint)
    program.tokens.mint_to(mint, resolver_ata, to_base_units(100), authority=mint_authority.pubkey)

    manager = HTLCManager(program, resolver, mint)
    manager.watch_htlc_events(
        lambda e: log.info(f"  event {e.name} slot={e.slot} {e.event.htlc_account}")
    )

    # =================================================================
    # 2. Lock 25 tokens
    # =================================================================
    secret, hashlock = generate_secret()
    htlc_id, _ = generate_secret()

    params = CreateHTLCParams.build(
        htlc_id=htlc_id,
        dst_address=parse_evm_address(USER_EVM_ADDRESS),
        dst_token=parse_evm_address(USDC_EVM_ADDRESS),
        amount=to_base_units(25),
        safety_deposit=10_000,
        hashlock=hashlock,
        timelocks=Timelocks.from_offsets(clock.unix_timestamp()),
    )
    result = manager.create_htlc(params)
    log.info(f"HTLC {result.htlc_address} created in slot {result.slot}")

    # =================================================================
    # 3. Finality period: withdraw refused
    # =================================================================
    try:
        manager.withdraw_to_destination(htlc_id, secret)
    except ClientError as e:
        log.info(f"Withdraw during finality refused: {e.details['error']}")

    # =================================================================
    # 4. Resolver-exclusive period: resolver withdraws
    # =================================================================
    clock.advance(45)
    signature = manager.withdraw_to_destination(htlc_id, secret)
    log.info(f"Withdrawn, tx={signature}")
    log.info(f"HTLC status: {manager.get_htlc_state(htlc_id).status}")

    # =================================================================
    # 5. Unclaimed HTLC, cancelled by the keeper
    # =================================================================
    _, hashlock2 = generate_secret()
    htlc_id2, _ = generate_secret()
    params2 = CreateHTLCParams.build(
        htlc_id=htlc_id2,
        dst_address=parse_evm_address(USER_EVM_ADDRESS),
        dst_token=parse_evm_address(USDC_EVM_ADDRESS),
        amount=to_base_units(10),
        safety_deposit=10_000,
        hashlock=hashlock2,
        timelocks=Timelocks.from_offsets(clock.unix_timestamp()),
    )
    manager.create_htlc(params2)

    keeper = CancellationKeeper(program, keeper_keypair)
    log.info(f"Keeper before deadline: cancelled {len(keeper.run_once())}")

    clock.advance(600)
    cancelled = keeper.run_once()
    log.info(f"Keeper after deadline: cancelled {len(cancelled)}, "
             f"earned {bank.get_balance(keeper_keypair.pubkey)} lamports")

    balance = program.tokens.balance_of(resolver_ata)
    log.info(f"Resolver token balance: {from_base_units(balance)}")


if __name__ == "__main__":
    main()
