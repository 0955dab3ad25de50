#!/usr/bin/env python3
"""
HTLC program tests against a local ledger.

Covers:
1. Create: funds move into the vault, record initialised, uniqueness
2. Withdraw: preimage, phase windows, boundaries, payouts
3. Cancel: deadline, any caller, refund target check
4. Exactly-once completion (double withdraw / cancel after withdraw)
5. Atomicity: rejected calls leave every balance untouched

Usage:
    python test_program.py
"""

import sys
import os
import hashlib
import unittest

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from svm_htlc.core import LAMPORTS_PER_SOL, generate_secret
from svm_htlc.errors import (
    AccountAlreadyInUse,
    AccountNotFound,
    AlreadyCancelled,
    AlreadyWithdrawn,
    CancellationNotAllowed,
    InsufficientFunds,
    InvalidAccountData,
    InvalidDestination,
    InvalidInstructionData,
    InvalidPreimage,
    InvalidTimelockOrder,
    WithdrawalNotAllowed,
)
from svm_htlc.ledger import Bank, Keypair, ManualClock, get_associated_token_address
from svm_htlc.program import (
    CreateHTLCParams,
    HTLCCancelled,
    HTLCCreated,
    HTLCProgram,
    HTLCWithdrawn,
    InvocationContext,
)

START = 50
DST_ADDRESS = bytes.fromhex("742d35cc6634c0532925a3b844bc454e4438f44e")
DST_TOKEN = bytes.fromhex("036cbd53842c5426634e7929541ec2318f3dcf7e")
AMOUNT = 250_000
DEPOSIT = 10_000
RESOLVER_TOKENS = 1_000_000


class ProgramTestCase(unittest.TestCase):
    """Fresh ledger with a funded resolver, a taker and a keeper."""

    def setUp(self):
        self.clock = ManualClock(START)
        self.bank = Bank(self.clock)
        self.program = HTLCProgram(self.bank)
        self.tokens = self.program.tokens

        self.resolver = Keypair()
        self.taker = Keypair()
        self.keeper = Keypair()
        mint_authority = Keypair()

        for kp in (self.resolver, self.taker, self.keeper):
            self.bank.airdrop(kp.pubkey, LAMPORTS_PER_SOL)

        self.mint = self.tokens.create_mint(mint_authority.pubkey)
        self.resolver_ata = self.tokens.create_associated_account(self.resolver.pubkey, self.mint)
        self.tokens.mint_to(self.mint, self.resolver_ata, RESOLVER_TOKENS,
                            authority=mint_authority.pubkey)

        self.secret, self.hashlock = generate_secret(b"swap-secret")
        self.htlc_id = hashlib.sha256(b"swap-1").digest()

    def ctx(self, keypair: Keypair) -> InvocationContext:
        return InvocationContext(signer=keypair.pubkey)

    def params(self, **overrides) -> CreateHTLCParams:
        values = dict(
            htlc_id=self.htlc_id,
            dst_address=DST_ADDRESS,
            dst_token=DST_TOKEN,
            amount=AMOUNT,
            safety_deposit=DEPOSIT,
            hashlock=self.hashlock,
            finality_deadline=100,
            resolver_deadline=200,
            public_deadline=300,
            cancellation_deadline=400,
        )
        values.update(overrides)
        return CreateHTLCParams(**values)

    def create(self, **overrides):
        return self.program.create_htlc(self.ctx(self.resolver), self.params(**overrides), self.mint)

    def vault(self, address):
        return self.program.get_vault_address(address, self.mint)

    def snapshot(self, *addresses):
        """(lamports, token balance) of every address of interest."""
        return {a: (self.bank.get_balance(a), self.tokens.balance_of(a)) for a in addresses}


class TestCreate(ProgramTestCase):

    def test_create_moves_funds_and_initialises_record(self):
        resolver_lamports = self.bank.get_balance(self.resolver.pubkey)
        address = self.create()

        self.assertEqual(address, self.program.get_htlc_address(self.htlc_id))
        self.assertEqual(self.tokens.balance_of(self.vault(address)), AMOUNT)
        self.assertEqual(self.tokens.balance_of(self.resolver_ata), RESOLVER_TOKENS - AMOUNT)
        self.assertEqual(self.bank.get_balance(address), DEPOSIT)
        self.assertEqual(self.bank.get_balance(self.resolver.pubkey), resolver_lamports - DEPOSIT)

        record = self.program.get_htlc(address)
        self.assertEqual(record.resolver, self.resolver.pubkey)
        self.assertEqual(record.src_address, self.resolver.pubkey)
        self.assertEqual(record.src_token, self.mint)
        self.assertEqual(record.amount, AMOUNT)
        self.assertEqual(record.hashlock, self.hashlock)
        self.assertEqual(record.created_at, START)
        self.assertFalse(record.withdrawn)
        self.assertFalse(record.cancelled)

    def test_vault_owned_by_record_address(self):
        address = self.create()
        vault = self.tokens.get_token_account(self.vault(address))
        self.assertEqual(vault.owner, address)
        self.assertEqual(self.vault(address), get_associated_token_address(address, self.mint))

    def test_created_event(self):
        address = self.create()
        logged = self.bank.event_log[-1]
        self.assertIsInstance(logged.event, HTLCCreated)
        self.assertEqual(logged.event.htlc_account, address)
        self.assertEqual(logged.event.htlc_id, self.htlc_id)
        self.assertEqual(logged.event.resolver, self.resolver.pubkey)
        self.assertEqual(logged.event.dst_address, DST_ADDRESS)
        self.assertEqual(logged.event.amount, AMOUNT)
        self.assertEqual(logged.event.hashlock, self.hashlock)
        self.assertEqual(logged.event.finality_deadline, 100)

    def test_same_id_only_once(self):
        self.create()
        with self.assertRaises(AccountAlreadyInUse):
            self.create()
        self.assertEqual(self.tokens.balance_of(self.resolver_ata), RESOLVER_TOKENS - AMOUNT)

    def test_distinct_ids_distinct_addresses(self):
        a = self.create()
        b = self.create(htlc_id=hashlib.sha256(b"swap-2").digest())
        self.assertNotEqual(a, b)
        self.assertEqual(len(self.program.list_htlcs()), 2)

    def test_malformed_timelocks_move_no_funds(self):
        watched = [self.resolver.pubkey, self.resolver_ata,
                   self.program.get_htlc_address(self.htlc_id)]
        before = self.snapshot(*watched)
        slot = self.bank.slot

        with self.assertRaises(InvalidTimelockOrder):
            self.create(resolver_deadline=100)

        self.assertEqual(self.snapshot(*watched), before)
        self.assertIsNone(self.program.find_htlc(self.htlc_id))
        self.assertEqual(self.bank.slot, slot)
        self.assertEqual(self.bank.event_log[-1:], [])

    def test_insufficient_tokens_rolls_back_record(self):
        with self.assertRaises(InsufficientFunds):
            self.create(amount=RESOLVER_TOKENS + 1)
        self.assertIsNone(self.program.find_htlc(self.htlc_id))
        self.assertEqual(self.tokens.balance_of(self.resolver_ata), RESOLVER_TOKENS)

    def test_insufficient_lamports_rolls_back_tokens(self):
        with self.assertRaises(InsufficientFunds):
            self.create(safety_deposit=2 * LAMPORTS_PER_SOL)
        self.assertIsNone(self.program.find_htlc(self.htlc_id))
        self.assertEqual(self.tokens.balance_of(self.resolver_ata), RESOLVER_TOKENS)
        self.assertEqual(self.bank.get_balance(self.resolver.pubkey), LAMPORTS_PER_SOL)

    def test_unknown_mint(self):
        with self.assertRaises(AccountNotFound):
            self.program.create_htlc(self.ctx(self.resolver), self.params(), Keypair().pubkey)


class TestWithdraw(ProgramTestCase):

    def setUp(self):
        super().setUp()
        self.address = self.create()

    def test_finality_blocks_everyone(self):
        self.clock.set(99)
        with self.assertRaises(WithdrawalNotAllowed):
            self.program.withdraw(self.ctx(self.resolver), self.address, self.secret)

    def test_resolver_exclusive_starts_at_finality_deadline(self):
        self.clock.set(100)
        self.program.withdraw(self.ctx(self.resolver), self.address, self.secret)
        self.assertTrue(self.program.get_htlc(self.address).withdrawn)

    def test_resolver_exclusive_rejects_others(self):
        self.clock.set(150)
        with self.assertRaises(WithdrawalNotAllowed):
            self.program.withdraw(self.ctx(self.taker), self.address, self.secret)

    def test_public_window_anyone(self):
        self.clock.set(200)
        self.program.withdraw(self.ctx(self.taker), self.address, self.secret)
        taker_ata = get_associated_token_address(self.taker.pubkey, self.mint)
        self.assertEqual(self.tokens.balance_of(taker_ata), AMOUNT)

    def test_expired_at_public_deadline(self):
        self.clock.set(300)
        with self.assertRaises(WithdrawalNotAllowed):
            self.program.withdraw(self.ctx(self.resolver), self.address, self.secret)

    def test_wrong_preimage_never_succeeds(self):
        wrong = b"\x00" * 32
        for t in (99, 100, 150, 200, 250, 299, 300, 450):
            with self.subTest(t=t):
                self.clock.set(t)
                for kp in (self.resolver, self.taker):
                    with self.assertRaises((InvalidPreimage, WithdrawalNotAllowed)):
                        self.program.withdraw(self.ctx(kp), self.address, wrong)
        self.assertFalse(self.program.get_htlc(self.address).withdrawn)

    def test_preimage_checked_before_window(self):
        self.clock.set(99)
        with self.assertRaises(InvalidPreimage):
            self.program.withdraw(self.ctx(self.resolver), self.address, b"\x00" * 32)

    def test_preimage_length(self):
        self.clock.set(150)
        with self.assertRaises(InvalidInstructionData):
            self.program.withdraw(self.ctx(self.resolver), self.address, self.secret[:31])

    def test_round_trip_balances(self):
        """Vault drops by exactly the amount, record by exactly the deposit."""
        self.clock.set(150)
        vault = self.vault(self.address)
        executor_lamports = self.bank.get_balance(self.resolver.pubkey)
        resolver_tokens = self.tokens.balance_of(self.resolver_ata)

        self.program.withdraw(self.ctx(self.resolver), self.address, self.secret)

        self.assertEqual(self.tokens.balance_of(vault), 0)
        self.assertEqual(self.bank.get_balance(self.address), 0)
        self.assertEqual(self.tokens.balance_of(self.resolver_ata), resolver_tokens + AMOUNT)
        self.assertEqual(self.bank.get_balance(self.resolver.pubkey), executor_lamports + DEPOSIT)

    def test_caller_designated_destination(self):
        self.clock.set(250)
        receiver = Keypair().pubkey
        receiver_ata = self.tokens.create_associated_account(receiver, self.mint)
        taker_lamports = self.bank.get_balance(self.taker.pubkey)

        self.program.withdraw(self.ctx(self.taker), self.address, self.secret, receiver_ata)

        self.assertEqual(self.tokens.balance_of(receiver_ata), AMOUNT)
        self.assertEqual(self.bank.get_balance(self.taker.pubkey), taker_lamports + DEPOSIT)

    def test_withdrawn_event(self):
        self.clock.set(150)
        self.program.withdraw(self.ctx(self.resolver), self.address, self.secret)
        logged = self.bank.event_log[-1]
        self.assertIsInstance(logged.event, HTLCWithdrawn)
        self.assertEqual(logged.event.preimage, self.secret)
        self.assertEqual(logged.event.executor, self.resolver.pubkey)
        self.assertEqual(logged.event.destination, DST_ADDRESS)
        self.assertEqual(logged.block_time, 150)

    def test_double_withdraw(self):
        self.clock.set(250)
        self.program.withdraw(self.ctx(self.taker), self.address, self.secret)
        for _ in range(3):
            with self.assertRaises(AlreadyWithdrawn):
                self.program.withdraw(self.ctx(self.resolver), self.address, self.secret)

    def test_already_withdrawn_checked_before_preimage(self):
        self.clock.set(250)
        self.program.withdraw(self.ctx(self.taker), self.address, self.secret)
        with self.assertRaises(AlreadyWithdrawn):
            self.program.withdraw(self.ctx(self.taker), self.address, b"\x00" * 32)

    def test_failed_transfer_leaves_flag_unset(self):
        """A bad destination aborts the whole withdraw, flag included."""
        self.clock.set(150)
        other_mint = self.tokens.create_mint(Keypair().pubkey)
        wrong_account = self.tokens.create_associated_account(self.resolver.pubkey, other_mint)
        before = self.snapshot(self.address, self.vault(self.address), self.resolver.pubkey)

        with self.assertRaises(InvalidAccountData):
            self.program.withdraw(self.ctx(self.resolver), self.address, self.secret, wrong_account)

        self.assertFalse(self.program.get_htlc(self.address).withdrawn)
        self.assertEqual(self.snapshot(self.address, self.vault(self.address), self.resolver.pubkey), before)

    def test_unknown_htlc(self):
        with self.assertRaises(AccountNotFound):
            self.program.withdraw(self.ctx(self.resolver), Keypair().pubkey, self.secret)


class TestCancel(ProgramTestCase):

    def setUp(self):
        super().setUp()
        self.address = self.create()

    def test_before_deadline(self):
        self.clock.set(399)
        with self.assertRaises(CancellationNotAllowed):
            self.program.cancel(self.ctx(self.keeper), self.address, self.resolver.pubkey)

    def test_any_caller_after_deadline(self):
        self.clock.set(400)
        keeper_lamports = self.bank.get_balance(self.keeper.pubkey)
        resolver_tokens = self.tokens.balance_of(self.resolver_ata)

        self.program.cancel(self.ctx(self.keeper), self.address, self.resolver.pubkey)

        record = self.program.get_htlc(self.address)
        self.assertTrue(record.cancelled)
        self.assertFalse(record.withdrawn)
        self.assertEqual(self.tokens.balance_of(self.resolver_ata), resolver_tokens + AMOUNT)
        self.assertEqual(self.bank.get_balance(self.keeper.pubkey), keeper_lamports + DEPOSIT)
        self.assertEqual(self.tokens.balance_of(self.vault(self.address)), 0)
        self.assertEqual(self.bank.get_balance(self.address), 0)

    def test_cancelled_event(self):
        self.clock.set(500)
        self.program.cancel(self.ctx(self.keeper), self.address, self.resolver.pubkey)
        logged = self.bank.event_log[-1]
        self.assertIsInstance(logged.event, HTLCCancelled)
        self.assertEqual(logged.event.htlc_account, self.address)
        self.assertEqual(logged.event.executor, self.keeper.pubkey)

    def test_wrong_source_identity(self):
        self.clock.set(450)
        with self.assertRaises(InvalidDestination):
            self.program.cancel(self.ctx(self.keeper), self.address, self.keeper.pubkey)
        self.assertFalse(self.program.get_htlc(self.address).cancelled)

    def test_source_checked_before_state(self):
        self.clock.set(450)
        self.program.cancel(self.ctx(self.keeper), self.address, self.resolver.pubkey)
        with self.assertRaises(InvalidDestination):
            self.program.cancel(self.ctx(self.keeper), self.address, self.keeper.pubkey)

    def test_double_cancel(self):
        self.clock.set(450)
        self.program.cancel(self.ctx(self.keeper), self.address, self.resolver.pubkey)
        with self.assertRaises(AlreadyCancelled):
            self.program.cancel(self.ctx(self.taker), self.address, self.resolver.pubkey)

    def test_withdraw_after_cancel(self):
        self.clock.set(450)
        self.program.cancel(self.ctx(self.keeper), self.address, self.resolver.pubkey)
        with self.assertRaises(AlreadyCancelled):
            self.program.withdraw(self.ctx(self.resolver), self.address, self.secret)

    def test_cancel_after_withdraw(self):
        self.clock.set(150)
        self.program.withdraw(self.ctx(self.resolver), self.address, self.secret)
        self.clock.set(450)
        for _ in range(3):
            with self.assertRaises(AlreadyWithdrawn):
                self.program.cancel(self.ctx(self.keeper), self.address, self.resolver.pubkey)

    def test_refund_goes_to_source_associated_account(self):
        """Refund lands in the associated token account of the recorded source."""
        self.clock.set(450)
        self.program.cancel(self.ctx(self.keeper), self.address, self.resolver.pubkey)
        self.assertEqual(self.tokens.balance_of_owner(self.resolver.pubkey, self.mint), RESOLVER_TOKENS)


class TestTimelineScenario(ProgramTestCase):
    """finality=100, resolver=200, public=300, cancellation=400."""

    def setUp(self):
        super().setUp()
        self.address = self.create()

    def test_t150_only_resolver(self):
        self.clock.set(150)
        with self.assertRaises(WithdrawalNotAllowed):
            self.program.withdraw(self.ctx(self.taker), self.address, self.secret)
        self.program.withdraw(self.ctx(self.resolver), self.address, self.secret)

    def test_t250_anyone(self):
        self.clock.set(250)
        self.program.withdraw(self.ctx(self.taker), self.address, self.secret)

    def test_t350_no_withdraw_no_cancel_yet(self):
        self.clock.set(350)
        with self.assertRaises(WithdrawalNotAllowed):
            self.program.withdraw(self.ctx(self.resolver), self.address, self.secret)
        with self.assertRaises(CancellationNotAllowed):
            self.program.cancel(self.ctx(self.keeper), self.address, self.resolver.pubkey)

    def test_t450_cancel_refunds_source(self):
        self.clock.set(450)
        self.program.cancel(self.ctx(self.taker), self.address, self.resolver.pubkey)
        self.assertEqual(self.tokens.balance_of(self.resolver_ata), RESOLVER_TOKENS)


class TestReads(ProgramTestCase):

    def test_list_by_status(self):
        a = self.create()
        b = self.create(htlc_id=hashlib.sha256(b"swap-2").digest())
        self.clock.set(150)
        self.program.withdraw(self.ctx(self.resolver), a, self.secret)

        self.assertEqual([addr for addr, _ in self.program.list_htlcs(status="withdrawn")], [a])
        self.assertEqual([addr for addr, _ in self.program.list_htlcs(status="active")], [b])
        self.assertEqual(self.program.list_htlcs(status="cancelled"), [])

    def test_reads_return_copies(self):
        address = self.create()
        record = self.program.get_htlc(address)
        record.withdrawn = True
        self.assertFalse(self.program.get_htlc(address).withdrawn)

    def test_find_missing(self):
        self.assertIsNone(self.program.find_htlc(b"\x99" * 32))


if __name__ == "__main__":
    unittest.main(verbosity=2)
