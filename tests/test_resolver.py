#!/usr/bin/env python3
"""
Escrow resolver tests: deploy, relayer actions, order projection, admin.

Usage:
    python -m pytest tests/test_resolver.py
"""

import sys
import os
import unittest
from unittest.mock import MagicMock

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from xswap.core import PENDING_ADDRESS, EscrowStatus, OrderStatus, generate_secret
from xswap.chains import LocalChain, coins
from xswap.chains.testing import MockQuerier, mock_dependencies, mock_env, mock_info
from xswap.chains.types import Reply, SubMsgResult
from xswap.errors import (
    ContractError, EscrowPending, InvalidOrderAction, InvalidRelayer, InvalidSecret,
    NotFound, Unauthorized,
)
from xswap.htlc.msg import ConfirmSourceEscrow, Deposit, Escrow
from xswap.swap import deploy_stack, store_codes
from xswap.swap.msg import (
    ActiveOrders, AddRelayer, CancelOrderAction, Config, ConfirmSourceAction, DeployDst,
    DeploySrc, EscrowList, EscrowPrice, ExecuteSwapAction, ForwardCancel,
    ForwardPartialWithdraw, ForwardWithdraw,
    IsAuthorizedRelayer, OrderAction, OrderByEscrow, OrderQuery, Orders, ProcessOrder,
    RefreshPrice, RemoveRelayer, ResolverInstantiate, SyncOrder, UpdateOwner,
)
from xswap.swap.resolver import EscrowResolver, project_status


class ResolverCase(unittest.TestCase):
    """Factory + resolver on a LocalChain; "relayer" is on the allow-list."""

    restrict = False

    def setUp(self):
        self.chain = LocalChain()
        self.deployment = deploy_stack(self.chain, "owner", ["relayer"], store_codes(self.chain),
                                       restrict_source_confirmation=self.restrict)
        self.resolver = self.deployment.resolver
        self.secret, self.secret_hash = generate_secret()
        self.start = self.chain.block().seconds

    def deploy_src(self, sender="relayer", **overrides):
        fields = dict(
            maker="maker", taker="taker", secret_hash=self.secret_hash,
            timelock=self.start + 100, dst_chain_id="dst-1", dst_asset="udst",
            dst_amount=500, label="src",
        )
        fields.update(overrides)
        return self.chain.execute(sender, self.resolver, DeploySrc(**fields)).data

    def deploy_dst(self, sender="relayer", **overrides):
        fields = dict(
            taker="taker", maker="maker", secret_hash=self.secret_hash,
            timelock=self.start + 50, src_chain_id="src-1", src_escrow_address="contract9",
            expected_amount=500, label="dst",
        )
        fields.update(overrides)
        return self.chain.execute(sender, self.resolver, DeployDst(**fields)).data

    def fund_source(self, escrow, amount=1000):
        self.chain.mint("maker", coins(amount, "usrc"))
        self.chain.execute("maker", escrow, Deposit(), coins(amount, "usrc"))

    def process(self, order_id, sender="relayer", proof=None, **action):
        return self.chain.execute(sender, self.resolver, ProcessOrder(
            order_id=order_id, action=OrderAction(**action), proof=proof))

    def order(self, order_id):
        return self.chain.query(self.resolver, OrderQuery(order_id=order_id))


class TestDeploy(ResolverCase):

    def test_deploy_src_creates_order_and_escrow(self):
        data = self.deploy_src()
        self.assertEqual(data["order_id"], 1)
        self.assertNotEqual(data["escrow_address"], PENDING_ADDRESS)

        order = self.order(1)
        self.assertEqual(order["escrow_type"], "source")
        self.assertEqual(order["escrow_address"], data["escrow_address"])
        self.assertEqual(order["salt"], data["salt"])
        self.assertEqual(order["status"], "active")
        self.assertIsNone(order["dutch_auction"])

        escrow = self.chain.query(data["escrow_address"], Escrow())
        self.assertEqual(escrow["maker"], "maker")
        self.assertEqual(escrow["dst_amount"], 500)

        by_escrow = self.chain.query(self.resolver, OrderByEscrow(escrow_address=data["escrow_address"]))
        self.assertEqual(by_escrow["order_id"], 1)

    def test_salt_matches_factory_registry(self):
        data = self.deploy_src()
        entries = self.chain.query(self.deployment.factory, EscrowList())["escrows"]
        self.assertEqual([e["salt"] for e in entries], [data["salt"]])
        self.assertEqual(entries[0]["creator"], self.resolver)

    def test_owner_may_deploy(self):
        self.assertEqual(self.deploy_src(sender="owner")["order_id"], 1)

    def test_stranger_rejected(self):
        with self.assertRaises(Unauthorized):
            self.deploy_src(sender="mallory")
        with self.assertRaises(Unauthorized):
            self.deploy_dst(sender="mallory")

    def test_auction_and_partial_fill_recorded(self):
        data = self.deploy_src(initial_price=1000, minimum_price=100, price_decay_rate=10,
                               allow_partial_fill=True, minimum_fill_amount=50,
                               lop_order_data="0xdeadbeef")
        order = self.order(data["order_id"])
        self.assertEqual(order["dutch_auction"]["current_price"], 1000)
        self.assertEqual(order["dutch_auction"]["start_time"], self.start)
        self.assertEqual(order["partial_fill"]["remaining_amount"], 500)
        self.assertEqual(order["lop_order_data"], "0xdeadbeef")

    def test_failed_escrow_creation_rolls_back(self):
        with self.assertRaises(ContractError):
            self.deploy_src(secret_hash="not-a-hash")
        self.assertEqual(self.chain.query(self.resolver, Orders())["orders"], [])
        self.assertEqual(self.chain.query(self.deployment.factory, EscrowList())["escrows"], [])

    def test_deploy_dst(self):
        data = self.deploy_dst()
        order = self.order(data["order_id"])
        self.assertEqual(order["escrow_type"], "destination")
        escrow = self.chain.query(data["escrow_address"], Escrow())
        self.assertEqual(escrow["src_escrow_address"], "contract9")
        self.assertIsNone(escrow["authorized_confirmer"])


class TestProcessOrder(ResolverCase):

    def test_requires_relayer(self):
        data = self.deploy_dst()
        actions = {
            "confirm_source": ConfirmSourceAction(src_tx_hash="AB", block_height=1),
            "execute_swap": ExecuteSwapAction(secret=self.secret),
            "cancel_order": CancelOrderAction(),
        }
        for kind, payload in actions.items():
            with self.subTest(action=kind):
                with self.assertRaises(InvalidRelayer):
                    self.process(data["order_id"], sender="owner", **{kind: payload})
        self.assertEqual(self.order(data["order_id"])["status"], "active")

    def test_confirm_source(self):
        data = self.deploy_dst()
        result = self.process(data["order_id"], proof="proof-bytes",
                              confirm_source=ConfirmSourceAction(src_tx_hash="AB", block_height=7))
        self.assertEqual(result.attribute("action"), "confirm_source")
        self.assertEqual(result.attribute("proof_provided"), "true")

        escrow = self.chain.query(data["escrow_address"], Escrow())
        self.assertTrue(escrow["src_confirmed"])
        self.assertEqual(escrow["src_block_height"], 7)
        self.assertEqual(self.order(data["order_id"])["status"], "matched")

    def test_confirm_source_on_source_order(self):
        data = self.deploy_src()
        with self.assertRaises(InvalidOrderAction):
            self.process(data["order_id"],
                         confirm_source=ConfirmSourceAction(src_tx_hash="AB", block_height=1))

    def test_execute_swap(self):
        data = self.deploy_src()
        self.fund_source(data["escrow_address"])
        self.process(data["order_id"], execute_swap=ExecuteSwapAction(secret=self.secret))

        self.assertEqual(self.chain.balance("taker", "usrc"), 1000)
        self.assertEqual(self.order(data["order_id"])["status"], "completed")

    def test_failed_action_leaves_order(self):
        data = self.deploy_src()
        self.fund_source(data["escrow_address"])
        with self.assertRaises(InvalidSecret):
            self.process(data["order_id"], execute_swap=ExecuteSwapAction(secret="wrong"))
        self.assertEqual(self.order(data["order_id"])["status"], "active")
        self.assertEqual(self.chain.balance(data["escrow_address"], "usrc"), 1000)

    def test_cancel_order_needs_escrow_party(self):
        data = self.deploy_src()
        self.chain.advance_time(100)
        with self.assertRaises(Unauthorized):
            self.process(data["order_id"], cancel_order=CancelOrderAction())

    def test_unknown_order(self):
        with self.assertRaises(NotFound):
            self.process(42, cancel_order=CancelOrderAction())


class TestRestrictedConfirmation(ResolverCase):

    restrict = True

    def test_only_resolver_confirms(self):
        data = self.deploy_dst()
        escrow = data["escrow_address"]
        self.assertEqual(self.chain.query(escrow, Escrow())["authorized_confirmer"], self.resolver)

        with self.assertRaises(Unauthorized):
            self.chain.execute("relayer", escrow,
                               ConfirmSourceEscrow(src_tx_hash="AB", block_height=1))

        self.process(data["order_id"],
                     confirm_source=ConfirmSourceAction(src_tx_hash="AB", block_height=1))
        self.assertTrue(self.chain.query(escrow, Escrow())["src_confirmed"])


class TestSyncAndPricing(ResolverCase):

    def test_sync_marks_expired(self):
        data = self.deploy_src()
        self.chain.advance_time(100)
        self.chain.execute("anyone", self.resolver, SyncOrder(order_id=data["order_id"]))
        self.assertEqual(self.order(data["order_id"])["status"], "expired")
        self.assertEqual(self.chain.query(self.resolver, ActiveOrders())["orders"], [])

    def test_sync_sees_direct_withdraw(self):
        data = self.deploy_src()
        self.fund_source(data["escrow_address"])
        self.chain.execute("taker", data["escrow_address"], {"withdraw": {"secret": self.secret}})
        self.assertEqual(self.order(data["order_id"])["status"], "active")

        result = self.chain.execute("anyone", self.resolver, SyncOrder(order_id=data["order_id"]))
        self.assertEqual(result.attribute("status"), "completed")

    def test_update_price(self):
        data = self.deploy_src(initial_price=1000, minimum_price=100, price_decay_rate=10)
        self.chain.advance_time(50)
        result = self.chain.execute("anyone", self.resolver,
                                    RefreshPrice(escrow_address=data["escrow_address"]))
        self.assertEqual(result.attribute("new_price"), "500")
        self.assertEqual(self.order(data["order_id"])["dutch_auction"]["current_price"], 500)

        price = self.chain.query(self.resolver, EscrowPrice(escrow_address=data["escrow_address"]))
        self.assertEqual(price["current_price"], 500)

    def test_update_price_unknown_escrow(self):
        with self.assertRaises(NotFound):
            self.chain.execute("anyone", self.resolver, RefreshPrice(escrow_address="contract99"))

    def test_update_price_destination(self):
        data = self.deploy_dst()
        with self.assertRaises(InvalidOrderAction):
            self.chain.execute("anyone", self.resolver,
                               RefreshPrice(escrow_address=data["escrow_address"]))

    def test_order_listing(self):
        self.deploy_src(label="a")
        self.deploy_dst(label="b")
        self.deploy_src(label="c")
        orders = self.chain.query(self.resolver, Orders(limit=2))["orders"]
        self.assertEqual([o["order_id"] for o in orders], [1, 2])
        rest = self.chain.query(self.resolver, Orders(start_after=2))["orders"]
        self.assertEqual([o["order_id"] for o in rest], [3])

        self.chain.advance_time(50)
        self.chain.execute("anyone", self.resolver, SyncOrder(order_id=2))
        active = self.chain.query(self.resolver, ActiveOrders())["orders"]
        self.assertEqual([o["order_id"] for o in active], [1, 3])


class TestForwarding(ResolverCase):

    def test_forward_withdraw(self):
        data = self.deploy_src()
        self.fund_source(data["escrow_address"])
        result = self.chain.execute("relayer", self.resolver, ForwardWithdraw(
            escrow_address=data["escrow_address"], secret=self.secret))
        self.assertEqual(result.attribute("order_id"), str(data["order_id"]))
        self.assertEqual(self.chain.balance("taker", "usrc"), 1000)
        self.assertEqual(self.order(data["order_id"])["status"], "completed")

    def test_forward_partial_withdraw_mirrors_fills(self):
        data = self.deploy_src(allow_partial_fill=True)
        escrow, order_id = data["escrow_address"], data["order_id"]
        self.fund_source(escrow, amount=100)

        for amount, status in ((30, "active"), (70, "completed")):
            self.chain.execute("relayer", self.resolver, ForwardPartialWithdraw(
                escrow_address=escrow, secret=self.secret, amount=amount))
            order = self.order(order_id)
            state = self.chain.query(escrow, Escrow())
            self.assertEqual(order["partial_fill"]["filled_amount"], state["filled_amount"])
            self.assertEqual(order["partial_fill"]["remaining_amount"], state["remaining_amount"])
            self.assertEqual(order["status"], status)

        self.assertEqual(order["partial_fill"]["filled_amount"], 100)
        self.assertEqual(order["partial_fill"]["remaining_amount"], 0)
        self.assertEqual(self.chain.balance("taker", "usrc"), 100)

    def test_forward_cancel_for_resolver_owned_escrow(self):
        data = self.deploy_src(maker=self.resolver)
        self.chain.advance_time(100)
        self.chain.execute("owner", self.resolver,
                           ForwardCancel(escrow_address=data["escrow_address"]))
        self.assertEqual(self.order(data["order_id"])["status"], "cancelled")

    def test_forward_requires_operator(self):
        data = self.deploy_src()
        with self.assertRaises(Unauthorized):
            self.chain.execute("mallory", self.resolver,
                               ForwardCancel(escrow_address=data["escrow_address"]))


class TestAdmin(ResolverCase):

    def test_add_relayer_is_idempotent(self):
        result = self.chain.execute("owner", self.resolver, AddRelayer(relayer="bob"))
        self.assertEqual(result.attribute("changed"), "true")
        result = self.chain.execute("owner", self.resolver, AddRelayer(relayer="bob"))
        self.assertEqual(result.attribute("changed"), "false")

        config = self.chain.query(self.resolver, Config())
        self.assertEqual(config["authorized_relayers"], ["relayer", "bob"])
        self.assertTrue(self.chain.query(self.resolver, IsAuthorizedRelayer(relayer="bob"))["is_authorized"])

    def test_remove_relayer(self):
        self.chain.execute("owner", self.resolver, RemoveRelayer(relayer="relayer"))
        result = self.chain.execute("owner", self.resolver, RemoveRelayer(relayer="relayer"))
        self.assertEqual(result.attribute("changed"), "false")
        with self.assertRaises(Unauthorized):
            self.deploy_src(sender="relayer")

    def test_admin_is_owner_only(self):
        with self.assertRaises(Unauthorized):
            self.chain.execute("relayer", self.resolver, AddRelayer(relayer="bob"))
        with self.assertRaises(Unauthorized):
            self.chain.execute("relayer", self.resolver, UpdateOwner(new_owner="relayer"))

    def test_update_owner(self):
        self.chain.execute("owner", self.resolver, UpdateOwner(new_owner="carol"))
        self.assertEqual(self.chain.query(self.resolver, Config())["owner"], "carol")


class TestResolverHandler(unittest.TestCase):
    """Resolver handler with a mocked factory; no callbacks are delivered."""

    def setUp(self):
        self.factory = MagicMock(return_value={"address": PENDING_ADDRESS})
        self.deps = mock_dependencies(MockQuerier({"factory": self.factory}))
        self.env = mock_env(contract="resolver")
        self.resolver = EscrowResolver()
        self.resolver.instantiate(self.deps, self.env, mock_info("owner"), ResolverInstantiate(
            owner="owner", escrow_factory="factory", authorized_relayers=["relayer", "relayer"],
        ))
        _, secret_hash = generate_secret()
        self.resolver.execute(self.deps, self.env, mock_info("relayer"), DeploySrc(
            maker="maker", secret_hash=secret_hash, timelock=2_000_000_000,
            dst_chain_id="dst-1", dst_asset="udst", dst_amount=1, label="x",
        ))

    def test_duplicate_relayers_collapsed(self):
        config = self.resolver.query(self.deps, self.env, Config())
        self.assertEqual(config.authorized_relayers, ["relayer"])

    def test_order_waits_for_escrow(self):
        order = self.resolver.query(self.deps, self.env, OrderQuery(order_id=1))
        self.assertEqual(order.escrow_address, PENDING_ADDRESS)

        with self.assertRaises(EscrowPending):
            self.resolver.execute(self.deps, self.env, mock_info("relayer"), ProcessOrder(
                order_id=1, action=OrderAction(cancel_order=CancelOrderAction())))

    def test_escrow_lookup_normalizes_evm_address(self):
        checksummed = "0x52908400098527886E0F7030069857D2E4169EE7"
        order = self.resolver.query(self.deps, self.env, OrderQuery(order_id=1))
        self.resolver.reply(self.deps, self.env, Reply(id=1, result=SubMsgResult(data={
            "creation_id": 1, "salt": order.salt, "escrow_type": "source", "address": checksummed,
        })))

        found = self.resolver.query(self.deps, self.env,
                                    OrderByEscrow(escrow_address=checksummed.lower()))
        self.assertEqual(found.order_id, 1)
        self.assertEqual(found.escrow_address, checksummed)

    def test_sync_asks_factory(self):
        with self.assertRaises(EscrowPending):
            self.resolver.execute(self.deps, self.env, mock_info("anyone"), SyncOrder(order_id=1))
        self.factory.assert_called_once()


class TestProjectStatus(unittest.TestCase):

    def test_terminal_wins_over_expiry(self):
        self.assertEqual(project_status(EscrowStatus.WITHDRAWN, False, 10, 20), OrderStatus.COMPLETED)
        self.assertEqual(project_status(EscrowStatus.CANCELLED, True, 10, 20), OrderStatus.CANCELLED)

    def test_expiry_wins_over_match(self):
        self.assertEqual(project_status(EscrowStatus.ACTIVE, True, 10, 10), OrderStatus.EXPIRED)

    def test_match_and_active(self):
        self.assertEqual(project_status(EscrowStatus.ACTIVE, True, 10, 5), OrderStatus.MATCHED)
        self.assertEqual(project_status(EscrowStatus.PARTIALLY_FILLED, False, 10, 5),
                         OrderStatus.ACTIVE)

    def test_unit_variant_action(self):
        self.assertEqual(OrderAction.model_validate("cancel_order").kind, "cancel_order")
        with self.assertRaises(ValueError):
            OrderAction()


if __name__ == "__main__":
    unittest.main(verbosity=2)
