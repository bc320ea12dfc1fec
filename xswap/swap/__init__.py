"""
Swap coordination for xswap.

Factory, resolver and the relayer service that ties two chains together.
"""

from .factory import EscrowFactory
from .resolver import EscrowResolver
from .relayer import Relayer, RelayerConfig
from .deploy import Deployment, deploy_stack, store_codes

__all__ = [
    "EscrowFactory",
    "EscrowResolver",
    "Relayer",
    "RelayerConfig",
    "Deployment",
    "deploy_stack",
    "store_codes",
]
