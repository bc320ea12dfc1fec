#!/usr/bin/env python3
"""
Source escrow tests: funding, withdraw, partial fills, cancel, pricing.

Usage:
    python -m pytest tests/test_source_escrow.py
"""

import sys
import os
import unittest
from unittest.mock import MagicMock

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from xswap.core import generate_secret
from xswap.chains import LocalChain, coins
from xswap.chains.testing import mock_dependencies, mock_env, mock_info
from xswap.errors import (
    AlreadyCancelled, AlreadyDeposited, AlreadyWithdrawn, InsufficientFunds,
    InvalidAddress, InvalidDutchAuctionParams, InvalidFunds, InvalidPartialFillAmount,
    InvalidSecret, InvalidSecretHash, NotFunded, PartialFillNotAllowed,
    TimelockNotExpired, Unauthorized, UnknownMessage,
)
from xswap.htlc import SourceEscrow
from xswap.htlc.msg import (
    Cancel, CurrentPrice, Deposit, Escrow, FillStatus, PartialWithdraw,
    SourceInstantiate, UpdatePrice, Withdraw,
)

DENOM = "usrc"


class SourceEscrowCase(unittest.TestCase):
    """Source escrow on a LocalChain; maker holds 1000 usrc."""

    def setUp(self):
        self.chain = LocalChain()
        self.code_id = self.chain.store_code(SourceEscrow)
        self.secret, self.secret_hash = generate_secret()
        self.start = self.chain.block().seconds
        self.chain.mint("maker", coins(1_000, DENOM))

    def create(self, **overrides):
        fields = dict(
            maker="maker",
            taker="taker",
            secret_hash=self.secret_hash,
            timelock=self.start + 100,
            dst_chain_id="dst-1",
            dst_asset="udst",
            dst_amount=500,
        )
        fields.update(overrides)
        return self.chain.instantiate("deployer", self.code_id, SourceInstantiate(**fields),
                                      label="src").contract_address

    def create_funded(self, **overrides):
        escrow = self.create(**overrides)
        self.chain.execute("maker", escrow, Deposit(), coins(1_000, DENOM))
        return escrow

    def escrow(self, address):
        return self.chain.query(address, Escrow())


class TestInstantiate(SourceEscrowCase):

    def test_initial_state(self):
        info = self.escrow(self.create())
        self.assertEqual(info["status"], "active")
        self.assertFalse(info["funded"])
        self.assertEqual(info["created_at"], self.start)
        self.assertEqual(info["deposited_amount"], 0)

    def test_bad_secret_hash(self):
        with self.assertRaises(InvalidSecretHash):
            self.create(secret_hash="abc")

    def test_inverted_auction(self):
        with self.assertRaises(InvalidDutchAuctionParams):
            self.create(initial_price=100, minimum_price=100, price_decay_rate=1)

    def test_bad_maker(self):
        with self.assertRaises(InvalidAddress):
            self.create(maker="Not An Address")
        self.assertEqual(self.chain.contracts(self.code_id), [])


class TestDeposit(SourceEscrowCase):

    def test_deposit_records_funding(self):
        escrow = self.create()
        result = self.chain.execute("maker", escrow, Deposit(), coins(1_000, DENOM))

        info = self.escrow(escrow)
        self.assertTrue(info["funded"])
        self.assertEqual(info["deposited_amount"], 1_000)
        self.assertEqual(info["deposited_denom"], DENOM)
        self.assertEqual(info["remaining_amount"], 1_000)
        self.assertEqual(info["funded_tx_hash"], result.tx_hash)
        self.assertEqual(info["funded_height"], result.height)
        self.assertEqual(self.chain.balance(escrow, DENOM), 1_000)

    def test_only_maker(self):
        escrow = self.create()
        self.chain.mint("other", coins(10, DENOM))
        with self.assertRaises(Unauthorized):
            self.chain.execute("other", escrow, Deposit(), coins(10, DENOM))
        self.assertEqual(self.chain.balance("other", DENOM), 10)

    def test_funds_shape(self):
        escrow = self.create()
        self.chain.mint("maker", coins(5, "uother"))
        with self.assertRaises(InvalidFunds):
            self.chain.execute("maker", escrow, Deposit())
        with self.assertRaises(InvalidFunds):
            self.chain.execute("maker", escrow, Deposit(),
                               coins(10, DENOM) + coins(5, "uother"))

    def test_second_deposit(self):
        escrow = self.create_funded()
        self.chain.mint("maker", coins(1, DENOM))
        with self.assertRaises(AlreadyDeposited):
            self.chain.execute("maker", escrow, Deposit(), coins(1, DENOM))


class TestWithdraw(SourceEscrowCase):

    def test_anyone_with_secret_releases_to_taker(self):
        escrow = self.create_funded()
        self.chain.execute("stranger", escrow, Withdraw(secret=self.secret))

        self.assertEqual(self.chain.balance("taker", DENOM), 1_000)
        self.assertEqual(self.chain.balance("stranger", DENOM), 0)
        info = self.escrow(escrow)
        self.assertEqual(info["status"], "withdrawn")
        self.assertEqual(info["filled_amount"], 1_000)
        self.assertEqual(info["remaining_amount"], 0)

    def test_without_taker_pays_caller(self):
        escrow = self.create_funded(taker=None)
        self.chain.execute("resolver", escrow, Withdraw(secret=self.secret))
        self.assertEqual(self.chain.balance("resolver", DENOM), 1_000)

    def test_wrong_secret(self):
        escrow = self.create_funded()
        with self.assertRaises(InvalidSecret):
            self.chain.execute("taker", escrow, Withdraw(secret="wrong"))
        self.assertEqual(self.escrow(escrow)["status"], "active")
        self.assertEqual(self.chain.balance(escrow, DENOM), 1_000)

    def test_not_funded(self):
        escrow = self.create()
        with self.assertRaises(NotFunded):
            self.chain.execute("taker", escrow, Withdraw(secret=self.secret))

    def test_withdraw_once(self):
        escrow = self.create_funded()
        self.chain.execute("taker", escrow, Withdraw(secret=self.secret))
        with self.assertRaises(AlreadyWithdrawn):
            self.chain.execute("taker", escrow, Withdraw(secret=self.secret))

    def test_withdraw_after_timelock_still_allowed(self):
        escrow = self.create_funded()
        self.chain.advance_time(1_000)
        self.chain.execute("taker", escrow, Withdraw(secret=self.secret))
        self.assertEqual(self.chain.balance("taker", DENOM), 1_000)


class TestPartialFill(SourceEscrowCase):

    def create_partial(self, **overrides):
        return self.create_funded(allow_partial_fill=True, minimum_fill_amount=100, **overrides)

    def test_fills_accumulate(self):
        escrow = self.create_partial()
        result = self.chain.execute("taker", escrow,
                                    PartialWithdraw(secret=self.secret, amount=300))
        self.assertEqual(result.attribute("remaining"), "700")

        info = self.escrow(escrow)
        self.assertEqual(info["status"], "partially_filled")
        self.assertEqual(info["filled_amount"], 300)
        self.assertEqual(info["remaining_amount"], 700)
        self.assertEqual(self.chain.balance("taker", DENOM), 300)

        status = self.chain.query(escrow, FillStatus())
        self.assertEqual(status["fill_percentage"], 30)
        self.assertFalse(status["is_fully_filled"])

        self.chain.execute("taker", escrow, PartialWithdraw(secret=self.secret, amount=700))
        info = self.escrow(escrow)
        self.assertEqual(info["status"], "withdrawn")
        self.assertEqual(info["remaining_amount"], 0)
        self.assertTrue(self.chain.query(escrow, FillStatus())["is_fully_filled"])
        self.assertEqual(self.chain.balance("taker", DENOM), 1_000)

        with self.assertRaises(AlreadyWithdrawn):
            self.chain.execute("taker", escrow, Withdraw(secret=self.secret))

    def test_below_minimum(self):
        escrow = self.create_partial()
        with self.assertRaises(InvalidPartialFillAmount):
            self.chain.execute("taker", escrow, PartialWithdraw(secret=self.secret, amount=50))

    def test_zero_amount(self):
        escrow = self.create_partial()
        with self.assertRaises(InvalidPartialFillAmount):
            self.chain.execute("taker", escrow, PartialWithdraw(secret=self.secret, amount=0))

    def test_more_than_remaining(self):
        escrow = self.create_partial()
        self.chain.execute("taker", escrow, PartialWithdraw(secret=self.secret, amount=300))
        with self.assertRaises(InsufficientFunds):
            self.chain.execute("taker", escrow, PartialWithdraw(secret=self.secret, amount=701))

    def test_not_allowed(self):
        escrow = self.create_funded()
        with self.assertRaises(PartialFillNotAllowed):
            self.chain.execute("taker", escrow, PartialWithdraw(secret=self.secret, amount=100))

    def test_wrong_secret(self):
        escrow = self.create_partial()
        with self.assertRaises(InvalidSecret):
            self.chain.execute("taker", escrow, PartialWithdraw(secret="nope", amount=100))
        self.assertEqual(self.escrow(escrow)["filled_amount"], 0)

    def test_withdraw_takes_remainder(self):
        escrow = self.create_partial()
        self.chain.execute("taker", escrow, PartialWithdraw(secret=self.secret, amount=300))
        result = self.chain.execute("taker", escrow, Withdraw(secret=self.secret))
        self.assertEqual(result.attribute("amount"), "700")
        self.assertEqual(self.chain.balance("taker", DENOM), 1_000)

    def test_cancel_refunds_remainder(self):
        escrow = self.create_partial()
        self.chain.execute("taker", escrow, PartialWithdraw(secret=self.secret, amount=400))
        self.chain.advance_time(100)
        self.chain.execute("maker", escrow, Cancel())
        self.assertEqual(self.chain.balance("maker", DENOM), 600)
        self.assertEqual(self.escrow(escrow)["status"], "cancelled")


class TestCancel(SourceEscrowCase):

    def test_before_timelock(self):
        escrow = self.create_funded()
        self.chain.advance_time(99)
        with self.assertRaises(TimelockNotExpired):
            self.chain.execute("maker", escrow, Cancel())

    def test_at_timelock(self):
        escrow = self.create_funded()
        self.chain.advance_time(100)
        self.chain.execute("maker", escrow, Cancel())
        self.assertEqual(self.chain.balance("maker", DENOM), 1_000)
        self.assertEqual(self.chain.balance(escrow, DENOM), 0)

    def test_only_maker(self):
        escrow = self.create_funded()
        self.chain.advance_time(100)
        with self.assertRaises(Unauthorized):
            self.chain.execute("taker", escrow, Cancel())

    def test_unfunded_cancel(self):
        escrow = self.create()
        self.chain.advance_time(100)
        result = self.chain.execute("maker", escrow, Cancel())
        self.assertEqual(result.attribute("amount"), "0")
        self.assertEqual(self.escrow(escrow)["status"], "cancelled")

    def test_no_withdraw_after_cancel(self):
        escrow = self.create_funded()
        self.chain.advance_time(100)
        self.chain.execute("maker", escrow, Cancel())
        with self.assertRaises(AlreadyCancelled):
            self.chain.execute("taker", escrow, Withdraw(secret=self.secret))
        with self.assertRaises(AlreadyCancelled):
            self.chain.execute("maker", escrow, Cancel())

    def test_no_cancel_after_withdraw(self):
        escrow = self.create_funded()
        self.chain.execute("taker", escrow, Withdraw(secret=self.secret))
        self.chain.advance_time(100)
        with self.assertRaises(AlreadyWithdrawn):
            self.chain.execute("maker", escrow, Cancel())


class TestPricing(SourceEscrowCase):

    def test_decaying_price(self):
        escrow = self.create(initial_price=1_000, minimum_price=100, price_decay_rate=10)
        price = self.chain.query(escrow, CurrentPrice())
        self.assertEqual(price["current_price"], 1_000)
        self.assertEqual(price["time_elapsed"], 0)

        self.chain.advance_time(50)
        price = self.chain.query(escrow, CurrentPrice())
        self.assertEqual(price["current_price"], 500)
        self.assertEqual(price["time_elapsed"], 50)

        self.chain.advance_time(500)
        self.assertEqual(self.chain.query(escrow, CurrentPrice())["current_price"], 100)

    def test_update_price_reports(self):
        escrow = self.create(initial_price=1_000, minimum_price=100, price_decay_rate=10)
        self.chain.advance_time(30)
        result = self.chain.execute("anyone", escrow, UpdatePrice())
        self.assertEqual(result.attribute("current_price"), "700")

    def test_fixed_price_without_auction(self):
        escrow = self.create(initial_price=800)
        self.chain.advance_time(50)
        self.assertEqual(self.chain.query(escrow, CurrentPrice())["current_price"], 800)
        self.assertEqual(self.chain.query(self.create(), CurrentPrice())["current_price"], 0)


class TestHandlerDirect(unittest.TestCase):
    """Calling the handler without a chain."""

    def test_instantiate_and_query(self):
        deps = mock_dependencies()
        env = mock_env(time=5_000)
        _, secret_hash = generate_secret()
        handler = SourceEscrow()

        response = handler.instantiate(deps, env, mock_info("deployer"), {
            "maker": "maker", "secret_hash": secret_hash, "timelock": 6_000,
            "dst_chain_id": "dst-1", "dst_asset": "udst", "dst_amount": 1,
        })
        self.assertEqual(response.attribute("maker"), "maker")
        self.assertEqual(response.messages, [])

        info = handler.query(deps, env, {"escrow": {}})
        self.assertEqual(info.created_at, 5_000)
        self.assertIsNone(info.taker)

    def test_deposit_without_transaction_info(self):
        deps = mock_dependencies()
        env = mock_env()
        env.transaction = None
        _, secret_hash = generate_secret()
        handler = SourceEscrow()
        handler.instantiate(deps, env, mock_info("deployer"), {
            "maker": "maker", "secret_hash": secret_hash, "timelock": env.block.seconds + 10,
            "dst_chain_id": "dst-1", "dst_asset": "udst", "dst_amount": 1,
        })

        handler.execute(deps, env, mock_info("maker", coins(7, DENOM)), "deposit")
        info = handler.query(deps, env, "escrow")
        self.assertTrue(info.funded)
        self.assertIsNone(info.funded_tx_hash)

    def test_querier_not_used(self):
        querier = MagicMock()
        deps = mock_dependencies(querier)
        _, secret_hash = generate_secret()
        SourceEscrow().instantiate(deps, mock_env(), mock_info("deployer"), {
            "maker": "maker", "secret_hash": secret_hash, "timelock": 1,
            "dst_chain_id": "dst-1", "dst_asset": "udst", "dst_amount": 1,
        })
        querier.query_wasm_smart.assert_not_called()

    def test_destination_message_rejected(self):
        deps = mock_dependencies()
        _, secret_hash = generate_secret()
        handler = SourceEscrow()
        handler.instantiate(deps, mock_env(), mock_info("deployer"), {
            "maker": "maker", "secret_hash": secret_hash, "timelock": 1,
            "dst_chain_id": "dst-1", "dst_asset": "udst", "dst_amount": 1,
        })
        with self.assertRaises(UnknownMessage):
            handler.execute(deps, mock_env(), mock_info("maker"),
                            {"confirm_source_escrow": {"src_tx_hash": "AB", "block_height": 1}})


if __name__ == "__main__":
    unittest.main(verbosity=2)
