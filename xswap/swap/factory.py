"""
Escrow factory contract.

Spawns source and destination escrows and keeps an append-only registry
keyed by salt. A create call stores the registry row with a placeholder
address and instantiates the escrow as a submessage; the creation callback
patches the row.

Each create allocates a creation id that doubles as the submessage reply id,
so the callback resolves exactly the row its create produced.
"""

import logging
from dataclasses import dataclass
from typing import Any

from ..chains.codec import parse_model
from ..chains.contract import Contract
from ..chains.storage import Item, Map
from ..chains.types import Deps, Env, MessageInfo, Reply, Response, SubMsg, WasmInstantiate
from ..core import EscrowType, PENDING_ADDRESS, page_limit, validate_auction_params
from ..errors import EscrowAlreadyExists, UnknownMessage, UnknownReply
from ..htlc.msg import DestinationInstantiate, SourceInstantiate
from .msg import (
    FACTORY_EXECUTE, FACTORY_QUERY, Config, CreateDestinationEscrow, CreateEscrowResult,
    CreateSourceEscrow, EscrowAddress, EscrowAddressResponse, EscrowEntry, EscrowList,
    EscrowListResponse, FactoryConfigResponse, FactoryInstantiate, PendingCreation,
    PendingCreationsResponse, RegistryEntryResponse, UpdateCodeIds, UpdateOwner,
)
from .policy import AuthPolicy

log = logging.getLogger(__name__)


@dataclass
class FactoryConfig:
    owner: str
    source_escrow_code_id: int
    destination_escrow_code_id: int

    def policy(self) -> AuthPolicy:
        return AuthPolicy(owner=self.owner)


@dataclass
class RegistryEntry:
    address: str            # PENDING_ADDRESS until the callback
    escrow_type: EscrowType
    creator: str
    created_at: int
    salt: str
    creation_id: int


CONFIG = Item("config")
ESCROWS = Map("escrows")                       # salt -> RegistryEntry
PENDING_CREATIONS = Map("pending_creations")   # creation_id -> salt
CREATION_SEQ = Item("creation_seq")


def derive_salt(creator: str, time_ns: int, label: str) -> str:
    return f"{creator}:{time_ns}:{label}"


class EscrowFactory(Contract):
    name = "xswap-escrow-factory"

    def instantiate(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = parse_model(FactoryInstantiate, msg)
        config = FactoryConfig(
            owner=deps.api.addr_validate(msg.owner),
            source_escrow_code_id=msg.source_escrow_code_id,
            destination_escrow_code_id=msg.destination_escrow_code_id,
        )
        CONFIG.save(deps.storage, config)
        CREATION_SEQ.save(deps.storage, 0)

        return (Response()
                .add_attribute("method", "instantiate")
                .add_attribute("owner", config.owner))

    def execute(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = FACTORY_EXECUTE.parse(msg)
        config = CONFIG.load(deps.storage)
        policy = config.policy()

        if isinstance(msg, CreateSourceEscrow):
            validate_auction_params(msg.initial_price, msg.minimum_price)
            init = SourceInstantiate(**msg.model_dump(exclude={"label"}))
            return self._create(deps, env, info, EscrowType.SOURCE,
                                config.source_escrow_code_id, init, msg.label)

        if isinstance(msg, CreateDestinationEscrow):
            init = DestinationInstantiate(**msg.model_dump(exclude={"label"}))
            return self._create(deps, env, info, EscrowType.DESTINATION,
                                config.destination_escrow_code_id, init, msg.label)

        if isinstance(msg, UpdateCodeIds):
            return self._update_code_ids(deps, info, policy, config, msg)
        if isinstance(msg, UpdateOwner):
            return self._update_owner(deps, info, policy, config, msg.new_owner)
        raise UnknownMessage(f"Unknown message: {msg.TAG}")

    # =========================================================================
    # Creation
    # =========================================================================

    def _create(self, deps: Deps, env: Env, info: MessageInfo, escrow_type: EscrowType,
                code_id: int, init, label: str) -> Response:
        salt = derive_salt(info.sender, env.block.time_ns, label)
        if ESCROWS.has(deps.storage, salt):
            raise EscrowAlreadyExists(f"Escrow with salt {salt} already exists")

        creation_id = CREATION_SEQ.load(deps.storage) + 1
        CREATION_SEQ.save(deps.storage, creation_id)

        ESCROWS.save(deps.storage, salt, RegistryEntry(
            address=PENDING_ADDRESS,
            escrow_type=escrow_type,
            creator=info.sender,
            created_at=env.block.seconds,
            salt=salt,
            creation_id=creation_id,
        ))
        PENDING_CREATIONS.save(deps.storage, creation_id, salt)
        log.info(f"Creating {escrow_type.value} escrow #{creation_id} for {info.sender} ({salt})")

        instantiate = WasmInstantiate(code_id=code_id, msg=init, label=label,
                                      admin=env.contract.address)
        result = CreateEscrowResult(creation_id=creation_id, salt=salt,
                                    escrow_type=escrow_type, address=PENDING_ADDRESS)
        return (Response()
                .add_submessage(SubMsg.reply_on_success(instantiate, creation_id))
                .set_data(result)
                .add_attribute("method", f"create_{escrow_type.value}_escrow")
                .add_attribute("creation_id", creation_id)
                .add_attribute("salt", salt))

    def reply(self, deps: Deps, env: Env, reply: Reply) -> Response:
        salt = PENDING_CREATIONS.may_load(deps.storage, reply.id)
        if salt is None:
            log.warning(f"Creation callback for unknown id {reply.id}")
            raise UnknownReply(f"No pending creation with id {reply.id}")

        address = reply.result.contract_address
        entry = ESCROWS.load(deps.storage, salt)
        entry.address = address
        ESCROWS.save(deps.storage, salt, entry)
        PENDING_CREATIONS.remove(deps.storage, reply.id)
        log.info(f"Escrow #{reply.id} resolved to {address}")

        result = CreateEscrowResult(creation_id=reply.id, salt=salt,
                                    escrow_type=entry.escrow_type, address=address)
        return (Response()
                .set_data(result)
                .add_attribute("method", "escrow_created")
                .add_attribute("creation_id", reply.id)
                .add_attribute("escrow_address", address))

    # =========================================================================
    # Admin
    # =========================================================================

    def _update_code_ids(self, deps: Deps, info: MessageInfo, policy: AuthPolicy,
                         config: FactoryConfig, msg: UpdateCodeIds) -> Response:
        policy.require_owner(info.sender)
        if msg.source_escrow_code_id is not None:
            config.source_escrow_code_id = msg.source_escrow_code_id
        if msg.destination_escrow_code_id is not None:
            config.destination_escrow_code_id = msg.destination_escrow_code_id
        CONFIG.save(deps.storage, config)

        return (Response()
                .add_attribute("method", "update_code_ids")
                .add_attribute("source_escrow_code_id", config.source_escrow_code_id)
                .add_attribute("destination_escrow_code_id", config.destination_escrow_code_id))

    def _update_owner(self, deps: Deps, info: MessageInfo, policy: AuthPolicy,
                      config: FactoryConfig, new_owner: str) -> Response:
        policy.require_owner(info.sender)
        config.owner = deps.api.addr_validate(new_owner)
        CONFIG.save(deps.storage, config)
        log.info(f"Factory owner changed to {config.owner}")

        return (Response()
                .add_attribute("method", "update_owner")
                .add_attribute("new_owner", config.owner))

    # =========================================================================
    # Queries
    # =========================================================================

    def query(self, deps: Deps, env: Env, msg: Any) -> Any:
        msg = FACTORY_QUERY.parse(msg)

        if isinstance(msg, Config):
            config = CONFIG.load(deps.storage)
            return FactoryConfigResponse(**vars(config))

        if isinstance(msg, EscrowAddress):
            entry = ESCROWS.load(deps.storage, msg.salt)
            return EscrowAddressResponse(address=entry.address)

        if isinstance(msg, EscrowEntry):
            return RegistryEntryResponse(**vars(ESCROWS.load(deps.storage, msg.salt)))

        if isinstance(msg, EscrowList):
            rows = ESCROWS.range(deps.storage, msg.start_after, page_limit(msg.limit))
            return EscrowListResponse(escrows=[RegistryEntryResponse(**vars(e)) for _, e in rows])

        pending = PENDING_CREATIONS.range(deps.storage)
        return PendingCreationsResponse(
            pending=[PendingCreation(creation_id=cid, salt=salt) for cid, salt in pending]
        )
