"""
Deployment of the escrow stack (code upload, factory, resolver).

Works against a LocalChain (codes stored here) or a RemoteChain (codes
already stored by the node, looked up by name).
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

from ..chains.token import Token
from ..htlc import DestinationEscrow, SourceEscrow
from ..reference import DutchAuction, PartialFillBook
from .factory import EscrowFactory
from .msg import FactoryInstantiate, ResolverInstantiate
from .resolver import EscrowResolver

log = logging.getLogger(__name__)

CONTRACTS = (
    SourceEscrow,
    DestinationEscrow,
    EscrowFactory,
    EscrowResolver,
    Token,
    DutchAuction,
    PartialFillBook,
)


@dataclass
class Deployment:
    """Addresses and code ids of a deployed stack."""
    chain_id: str
    source_escrow_code_id: int
    destination_escrow_code_id: int
    factory: str
    resolver: str

    def to_dict(self) -> Dict:
        return asdict(self)


def store_codes(chain) -> Dict[str, int]:
    """Store every xswap contract on a LocalChain. Returns {name: code_id}."""
    return {cls.name: chain.store_code(cls) for cls in CONTRACTS}


def code_ids_by_name(chain) -> Dict[str, int]:
    return {c["name"]: c["code_id"] for c in chain.codes()}


def deploy_stack(chain, owner: str, relayers: List[str],
                 code_ids: Optional[Dict[str, int]] = None,
                 restrict_source_confirmation: bool = False) -> Deployment:
    """
    Instantiate the factory and the resolver.

    Args:
        chain: LocalChain or RemoteChain
        owner: Owner of both contracts, also the deploying account
        relayers: Initial relayer allow-list
        code_ids: {contract name: code_id}; read from the chain when omitted
        restrict_source_confirmation: Destination escrows only accept
            confirmations relayed through the resolver

    Returns:
        Deployment
    """
    code_ids = code_ids or code_ids_by_name(chain)
    source_code = code_ids[SourceEscrow.name]
    destination_code = code_ids[DestinationEscrow.name]

    factory = chain.instantiate(
        owner, code_ids[EscrowFactory.name],
        FactoryInstantiate(owner=owner, source_escrow_code_id=source_code,
                           destination_escrow_code_id=destination_code),
        label="xswap-factory",
    ).contract_address

    resolver = chain.instantiate(
        owner, code_ids[EscrowResolver.name],
        ResolverInstantiate(owner=owner, escrow_factory=factory,
                            authorized_relayers=relayers,
                            restrict_source_confirmation=restrict_source_confirmation),
        label="xswap-resolver",
    ).contract_address

    chain_id = chain.block().chain_id
    log.info(f"Deployed on {chain_id}: factory={factory} resolver={resolver}")
    return Deployment(chain_id, source_code, destination_code, factory, resolver)
