"""
xswap - Cross-Chain HTLC Atomic Swaps

Hash-time-locked escrows on both sides of a swap, an escrow factory and a
resolver that originates orders, plus a relayer that attests source funding
to the destination chain. Contracts run on an in-process chain (LocalChain)
or behind the HTTP node in server.py (RemoteChain).

Usage:
    from xswap import LocalChain, deploy_stack, store_codes, generate_secret

    chain = LocalChain()
    store_codes(chain)
    stack = deploy_stack(chain, owner="owner", relayers=["relayer"])

    secret, secret_hash = generate_secret()
    chain.execute("owner", stack.resolver, DeploySrc(...))
"""

from .core import (
    EscrowStatus,
    EscrowType,
    OrderStatus,
    DutchAuctionParams,
    FillLedger,
    generate_secret,
    hash_secret,
    verify_secret,
    linear_decay_price,
)
from .errors import ContractError, Unauthorized, InvalidState, InvalidInput, TimingViolation

from .chains import LocalChain, LocalChainConfig, RemoteChain, RemoteChainConfig, Coin, coins

from .htlc import SourceEscrow, DestinationEscrow
from .reference import DutchAuction, PartialFillBook

from .swap import (
    EscrowFactory,
    EscrowResolver,
    Relayer,
    RelayerConfig,
    Deployment,
    deploy_stack,
    store_codes,
)

__version__ = "0.1.0"
__all__ = [
    # Core types
    "EscrowStatus",
    "EscrowType",
    "OrderStatus",
    "DutchAuctionParams",
    "FillLedger",
    # Utilities
    "generate_secret",
    "hash_secret",
    "verify_secret",
    "linear_decay_price",
    # Errors
    "ContractError",
    "Unauthorized",
    "InvalidState",
    "InvalidInput",
    "TimingViolation",
    # Chains
    "LocalChain",
    "LocalChainConfig",
    "RemoteChain",
    "RemoteChainConfig",
    "Coin",
    "coins",
    # Contracts
    "SourceEscrow",
    "DestinationEscrow",
    "DutchAuction",
    "PartialFillBook",
    "EscrowFactory",
    "EscrowResolver",
    # Swap
    "Relayer",
    "RelayerConfig",
    "Deployment",
    "deploy_stack",
    "store_codes",
]
