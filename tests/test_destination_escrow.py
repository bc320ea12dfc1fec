#!/usr/bin/env python3
"""
Destination escrow tests: taker funding, source confirmation gate, claims.

Usage:
    python -m pytest tests/test_destination_escrow.py
"""

import sys
import os
import unittest

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from xswap.core import generate_secret
from xswap.chains import LocalChain, coins
from xswap.errors import (
    AlreadyCancelled, AlreadyDeposited, AlreadyWithdrawn, InvalidAmount, InvalidSecret,
    NotFunded, SourceEscrowNotConfirmed, TimelockNotExpired, Unauthorized, UnknownMessage,
)
from xswap.htlc import DestinationEscrow
from xswap.htlc.msg import (
    Cancel, ConfirmSourceEscrow, CurrentPrice, DestinationInstantiate, Deposit, Escrow,
    PartialWithdraw, Withdraw,
)

DENOM = "udst"


class DestinationEscrowCase(unittest.TestCase):
    """Destination escrow on a LocalChain; taker holds 500 udst."""

    def setUp(self):
        self.chain = LocalChain()
        self.code_id = self.chain.store_code(DestinationEscrow)
        self.secret, self.secret_hash = generate_secret()
        self.start = self.chain.block().seconds
        self.chain.mint("taker", coins(500, DENOM))

    def create(self, **overrides):
        fields = dict(
            taker="taker",
            maker="maker",
            secret_hash=self.secret_hash,
            timelock=self.start + 60,
            src_chain_id="src-1",
            src_escrow_address="contract7",
            expected_amount=500,
        )
        fields.update(overrides)
        return self.chain.instantiate("deployer", self.code_id, DestinationInstantiate(**fields),
                                      label="dst").contract_address

    def create_funded(self, **overrides):
        escrow = self.create(**overrides)
        self.chain.execute("taker", escrow, Deposit(), coins(500, DENOM))
        return escrow

    def confirm(self, escrow, sender="relayer", tx_hash="ABCD", height=42):
        return self.chain.execute(sender, escrow,
                                  ConfirmSourceEscrow(src_tx_hash=tx_hash, block_height=height))

    def escrow(self, address):
        return self.chain.query(address, Escrow())


class TestDeposit(DestinationEscrowCase):

    def test_taker_funds_exact_amount(self):
        escrow = self.create_funded()
        info = self.escrow(escrow)
        self.assertTrue(info["funded"])
        self.assertEqual(info["deposited_amount"], 500)
        self.assertEqual(self.chain.balance(escrow, DENOM), 500)

    def test_wrong_amount(self):
        escrow = self.create()
        with self.assertRaises(InvalidAmount):
            self.chain.execute("taker", escrow, Deposit(), coins(499, DENOM))
        self.assertEqual(self.chain.balance("taker", DENOM), 500)

    def test_only_taker(self):
        escrow = self.create()
        self.chain.mint("maker", coins(500, DENOM))
        with self.assertRaises(Unauthorized):
            self.chain.execute("maker", escrow, Deposit(), coins(500, DENOM))

    def test_second_deposit(self):
        escrow = self.create_funded()
        self.chain.mint("taker", coins(500, DENOM))
        with self.assertRaises(AlreadyDeposited):
            self.chain.execute("taker", escrow, Deposit(), coins(500, DENOM))


class TestConfirmation(DestinationEscrowCase):

    def test_open_confirmation(self):
        escrow = self.create()
        result = self.confirm(escrow)
        self.assertEqual(result.attribute("method"), "confirm_source_escrow")

        info = self.escrow(escrow)
        self.assertTrue(info["src_confirmed"])
        self.assertEqual(info["src_tx_hash"], "ABCD")
        self.assertEqual(info["src_block_height"], 42)

    def test_confirmation_overwrites(self):
        escrow = self.create()
        self.confirm(escrow, tx_hash="FIRST", height=1)
        self.confirm(escrow, tx_hash="SECOND", height=2)
        info = self.escrow(escrow)
        self.assertEqual(info["src_tx_hash"], "SECOND")
        self.assertEqual(info["src_block_height"], 2)

    def test_authorized_confirmer(self):
        escrow = self.create(authorized_confirmer="resolver")
        with self.assertRaises(Unauthorized):
            self.confirm(escrow, sender="relayer")
        self.assertFalse(self.escrow(escrow)["src_confirmed"])

        self.confirm(escrow, sender="resolver")
        self.assertTrue(self.escrow(escrow)["src_confirmed"])

    def test_no_confirmation_after_close(self):
        escrow = self.create_funded()
        self.confirm(escrow)
        self.chain.execute("maker", escrow, Withdraw(secret=self.secret))
        with self.assertRaises(AlreadyWithdrawn):
            self.confirm(escrow)


class TestWithdraw(DestinationEscrowCase):

    def test_maker_claims_after_confirmation(self):
        escrow = self.create_funded()
        self.confirm(escrow)
        self.chain.execute("maker", escrow, Withdraw(secret=self.secret))

        self.assertEqual(self.chain.balance("maker", DENOM), 500)
        self.assertEqual(self.escrow(escrow)["status"], "withdrawn")

    def test_requires_confirmation(self):
        escrow = self.create_funded()
        with self.assertRaises(SourceEscrowNotConfirmed):
            self.chain.execute("maker", escrow, Withdraw(secret=self.secret))

    def test_only_maker(self):
        escrow = self.create_funded()
        self.confirm(escrow)
        with self.assertRaises(Unauthorized):
            self.chain.execute("taker", escrow, Withdraw(secret=self.secret))

    def test_not_funded(self):
        escrow = self.create()
        self.confirm(escrow)
        with self.assertRaises(NotFunded):
            self.chain.execute("maker", escrow, Withdraw(secret=self.secret))

    def test_wrong_secret(self):
        escrow = self.create_funded()
        self.confirm(escrow)
        with self.assertRaises(InvalidSecret):
            self.chain.execute("maker", escrow, Withdraw(secret="guess"))

    def test_partial_withdraw_not_accepted(self):
        escrow = self.create_funded()
        with self.assertRaises(UnknownMessage):
            self.chain.execute("maker", escrow, PartialWithdraw(secret=self.secret, amount=1))

    def test_not_priced(self):
        with self.assertRaises(UnknownMessage):
            self.chain.query(self.create(), CurrentPrice())


class TestCancel(DestinationEscrowCase):

    def test_taker_refund_after_timelock(self):
        escrow = self.create_funded()
        self.chain.advance_time(60)
        self.chain.execute("taker", escrow, Cancel())
        self.assertEqual(self.chain.balance("taker", DENOM), 500)
        self.assertEqual(self.escrow(escrow)["status"], "cancelled")

    def test_before_timelock(self):
        escrow = self.create_funded()
        self.chain.advance_time(59)
        with self.assertRaises(TimelockNotExpired):
            self.chain.execute("taker", escrow, Cancel())

    def test_only_taker(self):
        escrow = self.create_funded()
        self.chain.advance_time(60)
        with self.assertRaises(Unauthorized):
            self.chain.execute("maker", escrow, Cancel())

    def test_claim_blocked_after_cancel(self):
        escrow = self.create_funded()
        self.confirm(escrow)
        self.chain.advance_time(60)
        self.chain.execute("taker", escrow, Cancel())
        with self.assertRaises(AlreadyCancelled):
            self.chain.execute("maker", escrow, Withdraw(secret=self.secret))


if __name__ == "__main__":
    unittest.main(verbosity=2)
