#!/usr/bin/env python3
"""
Creation checks, instruction decoding and record phase logic.

Usage:
    python test_validation.py
"""

import sys
import os
import unittest

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from svm_htlc.core import TimelockPhase, Timelocks
from svm_htlc.errors import (
    InvalidAmount,
    InvalidDestination,
    InvalidInstructionData,
    InvalidSafetyDeposit,
    InvalidTimelockOrder,
    InvalidTokenMint,
)
from svm_htlc.ledger import Keypair, Pubkey
from svm_htlc.program import CreateHTLCParams, HTLCRecord
from svm_htlc.program.validation import validate_create_params, validate_timelock_order

DST_ADDRESS = bytes.fromhex("742d35cc6634c0532925a3b844bc454e4438f44e")
DST_TOKEN = bytes.fromhex("036cbd53842c5426634e7929541ec2318f3dcf7e")


def make_params(**overrides) -> CreateHTLCParams:
    values = dict(
        htlc_id=b"\x11" * 32,
        dst_address=DST_ADDRESS,
        dst_token=DST_TOKEN,
        amount=1_000,
        safety_deposit=10_000,
        hashlock=b"\x22" * 32,
        finality_deadline=100,
        resolver_deadline=200,
        public_deadline=300,
        cancellation_deadline=400,
    )
    values.update(overrides)
    return CreateHTLCParams(**values)


def make_record(**overrides) -> HTLCRecord:
    resolver = Keypair().pubkey
    values = dict(
        resolver=resolver,
        src_address=resolver,
        dst_address=DST_ADDRESS,
        src_token=Pubkey.new_unique(),
        dst_token=DST_TOKEN,
        amount=1_000,
        safety_deposit=10_000,
        hashlock=b"\x22" * 32,
        htlc_id=b"\x11" * 32,
        finality_deadline=100,
        resolver_deadline=200,
        public_deadline=300,
        cancellation_deadline=400,
        created_at=50,
        bump=254,
    )
    values.update(overrides)
    return HTLCRecord(**values)


class TestCreateValidation(unittest.TestCase):
    """Checks run in a fixed order; the first failure wins."""

    def setUp(self):
        self.mint = Pubkey.new_unique()

    def test_valid(self):
        validate_create_params(make_params(), self.mint)

    def test_zero_amount(self):
        with self.assertRaises(InvalidAmount):
            validate_create_params(make_params(amount=0), self.mint)

    def test_negative_amount(self):
        with self.assertRaises(InvalidAmount):
            validate_create_params(make_params(amount=-5), self.mint)

    def test_zero_safety_deposit(self):
        with self.assertRaises(InvalidSafetyDeposit):
            validate_create_params(make_params(safety_deposit=0), self.mint)

    def test_default_mint(self):
        with self.assertRaises(InvalidTokenMint):
            validate_create_params(make_params(), Pubkey.default())

    def test_zero_dst_address(self):
        with self.assertRaises(InvalidDestination):
            validate_create_params(make_params(dst_address=bytes(20)), self.mint)

    def test_zero_dst_token(self):
        with self.assertRaises(InvalidDestination):
            validate_create_params(make_params(dst_token=bytes(20)), self.mint)

    def test_timelock_order(self):
        for deadlines in [(100, 100, 300, 400), (100, 200, 200, 400),
                          (100, 200, 300, 300), (200, 100, 300, 400),
                          (100, 200, 300, 250)]:
            with self.subTest(deadlines=deadlines):
                with self.assertRaises(InvalidTimelockOrder):
                    validate_timelock_order(*deadlines)

    def test_amount_checked_before_everything(self):
        params = make_params(amount=0, safety_deposit=0, dst_address=bytes(20),
                             resolver_deadline=50)
        with self.assertRaises(InvalidAmount):
            validate_create_params(params, Pubkey.default())

    def test_deposit_checked_before_mint(self):
        with self.assertRaises(InvalidSafetyDeposit):
            validate_create_params(make_params(safety_deposit=0), Pubkey.default())

    def test_mint_checked_before_destination(self):
        with self.assertRaises(InvalidTokenMint):
            validate_create_params(make_params(dst_address=bytes(20)), Pubkey.default())

    def test_destination_checked_before_timelocks(self):
        with self.assertRaises(InvalidDestination):
            validate_create_params(make_params(dst_token=bytes(20), public_deadline=0), self.mint)


class TestInstructionDecoding(unittest.TestCase):
    """Malformed byte lengths and out-of-range integers never reach the program."""

    def test_lengths(self):
        for field, value in [("htlc_id", b"\x01" * 31), ("hashlock", b"\x01" * 33),
                             ("dst_address", b"\x01" * 32), ("dst_token", b"\x01" * 19)]:
            with self.subTest(field=field):
                with self.assertRaises(InvalidInstructionData):
                    make_params(**{field: value})

    def test_u64_overflow(self):
        with self.assertRaises(InvalidInstructionData):
            make_params(amount=2**64)

    def test_bool_is_not_an_integer(self):
        for field in ("amount", "safety_deposit", "finality_deadline"):
            with self.subTest(field=field):
                with self.assertRaises(InvalidInstructionData):
                    make_params(**{field: True})

    def test_i64_range(self):
        with self.assertRaises(InvalidInstructionData):
            make_params(cancellation_deadline=2**63)

    def test_build_from_timelocks(self):
        params = CreateHTLCParams.build(
            b"\x11" * 32, DST_ADDRESS, DST_TOKEN, 1, 1, b"\x22" * 32,
            Timelocks(10, 20, 30, 40),
        )
        self.assertEqual(params.finality_deadline, 10)
        self.assertEqual(params.cancellation_deadline, 40)


class TestRecordPhases(unittest.TestCase):

    def test_phase_boundaries_inclusive(self):
        record = make_record()
        self.assertEqual(record.phase_at(99), TimelockPhase.FINALITY)
        self.assertEqual(record.phase_at(100), TimelockPhase.RESOLVER_EXCLUSIVE)
        self.assertEqual(record.phase_at(199), TimelockPhase.RESOLVER_EXCLUSIVE)
        self.assertEqual(record.phase_at(200), TimelockPhase.PUBLIC)
        self.assertEqual(record.phase_at(299), TimelockPhase.PUBLIC)
        self.assertEqual(record.phase_at(300), TimelockPhase.EXPIRED)

    def test_can_withdraw(self):
        record = make_record()
        other = Keypair().pubkey
        self.assertFalse(record.can_withdraw_at(50, record.resolver))
        self.assertTrue(record.can_withdraw_at(150, record.resolver))
        self.assertFalse(record.can_withdraw_at(150, other))
        self.assertTrue(record.can_withdraw_at(250, other))
        self.assertFalse(record.can_withdraw_at(300, record.resolver))

    def test_can_cancel(self):
        record = make_record()
        self.assertFalse(record.can_cancel_at(399))
        self.assertTrue(record.can_cancel_at(400))

    def test_status(self):
        self.assertEqual(make_record().status, "active")
        self.assertEqual(make_record(withdrawn=True).status, "withdrawn")
        self.assertEqual(make_record(cancelled=True).status, "cancelled")
        self.assertTrue(make_record(cancelled=True).is_completed)

    def test_dict_roundtrip(self):
        record = make_record()
        d = record.to_dict()
        self.assertEqual(d["dst_address"], "0x742d35Cc6634C0532925a3b844Bc454e4438f44e")
        self.assertEqual(HTLCRecord.from_dict(d), record)


if __name__ == "__main__":
    unittest.main(verbosity=2)
