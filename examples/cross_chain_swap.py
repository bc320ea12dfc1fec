#!/usr/bin/env python3
"""
Example: cross-chain atomic swap on two local chains

The maker sells 1,000,000 usrc on the source chain for 500,000 udst on the
destination chain:

1. Resolvers on both chains deploy the escrows
2. Maker funds the source escrow, taker funds the destination escrow
3. Relayer attests source funding to the destination order
4. Maker claims the destination escrow with the secret (revealing it)
5. Taker claims the source escrow with the same secret

Usage:
    python examples/cross_chain_swap.py
"""

import sys
import logging
from pathlib import Path

# Add package to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from xswap.core import generate_secret
from xswap.chains import LocalChain, LocalChainConfig, coins
from xswap.htlc.msg import Deposit, Withdraw
from xswap.swap.deploy import deploy_stack, store_codes
from xswap.swap.msg import DeployDst, DeploySrc, OrderQuery, SyncOrder
from xswap.swap.relayer import Relayer, RelayerConfig

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger(__name__)

OWNER = "owner"
RELAYER = "relayer"
MAKER = "maker"
TAKER = "taker"


def main():
    # =================================================================
    # 1. Chains and contracts
    # =================================================================
    src = LocalChain(LocalChainConfig(chain_id="xswap-src-1"))
    dst = LocalChain(LocalChainConfig(chain_id="xswap-dst-1"))

    store_codes(src)
    store_codes(dst)
    src_stack = deploy_stack(src, OWNER, [RELAYER])
    dst_stack = deploy_stack(dst, OWNER, [RELAYER], restrict_source_confirmation=True)

    src.mint(MAKER, coins(1_000_000, "usrc"))
    dst.mint(TAKER, coins(500_000, "udst"))

    secret, secret_hash = generate_secret()
    log.info(f"Secret hash: {secret_hash}")

    # =================================================================
    # 2. Source side
    # =================================================================
    now = src.block().seconds
    result = src.execute(OWNER, src_stack.resolver, DeploySrc(
        maker=MAKER,
        taker=TAKER,
        secret_hash=secret_hash,
        timelock=now + 7200,
        dst_chain_id=dst.chain_id,
        dst_asset="udst",
        dst_amount=500_000,
        label="swap-1-src",
    ))
    src_order = result.data["order_id"]
    src_escrow = result.data["escrow_address"]
    log.info(f"Source order {src_order} -> escrow {src_escrow}")

    src.execute(MAKER, src_escrow, Deposit(), coins(1_000_000, "usrc"))
    src.advance_blocks(1)

    # =================================================================
    # 3. Destination side (shorter timelock)
    # =================================================================
    now = dst.block().seconds
    result = dst.execute(OWNER, dst_stack.resolver, DeployDst(
        taker=TAKER,
        maker=MAKER,
        secret_hash=secret_hash,
        timelock=now + 3600,
        src_chain_id=src.chain_id,
        src_escrow_address=src_escrow,
        expected_amount=500_000,
        label="swap-1-dst",
    ))
    dst_order = result.data["order_id"]
    dst_escrow = result.data["escrow_address"]
    log.info(f"Destination order {dst_order} -> escrow {dst_escrow}")

    dst.execute(TAKER, dst_escrow, Deposit(), coins(500_000, "udst"))

    # =================================================================
    # 4. Relayer attests the source escrow
    # =================================================================
    relayer = Relayer(RELAYER, src, src_stack.resolver, dst, dst_stack.resolver,
                      RelayerConfig(auto_sync=False))
    relayer.link(src_order, dst_order)
    stats = relayer.poll_once()
    log.info(f"Relayer pass: {stats}")

    # =================================================================
    # 5. Claims
    # =================================================================
    dst.execute(MAKER, dst_escrow, Withdraw(secret=secret))
    log.info(f"Maker received {dst.balance(MAKER, 'udst')} udst")

    src.execute(TAKER, src_escrow, Withdraw(secret=secret))
    log.info(f"Taker received {src.balance(TAKER, 'usrc')} usrc")

    # =================================================================
    # 6. Reconcile order caches
    # =================================================================
    src.execute(RELAYER, src_stack.resolver, SyncOrder(order_id=src_order))
    dst.execute(RELAYER, dst_stack.resolver, SyncOrder(order_id=dst_order))

    for name, chain, resolver, order_id in (
        ("source", src, src_stack.resolver, src_order),
        ("destination", dst, dst_stack.resolver, dst_order),
    ):
        order = chain.query(resolver, OrderQuery(order_id=order_id))
        log.info(f"{name} order {order_id}: {order['status']}")


if __name__ == "__main__":
    main()
