"""
Escrow resolver contract.

Entry point for originating swaps. The resolver:
- gates privileged calls through an AuthPolicy (owner + relayer allow-list)
- creates Orders and asks the factory for the matching escrow
- forwards withdraw / partial withdraw / cancel / confirm calls to escrows
- keeps each Order as a read cache of its escrow

Order fields that mirror escrow state (status, fill counters, current price)
are only ever written by _project(), which re-reads the escrow. Every
forwarded call asks for a reply so the projection runs in the same
transaction. sync_order re-runs it on demand.

Lookups by escrow address go through the ORDER_BY_ESCROW index.
"""

import logging
from dataclasses import dataclass, asdict, field
from typing import Any, List, Optional

from ..chains.codec import parse_model
from ..chains.contract import Contract
from ..chains.storage import Item, Map
from ..chains.types import Deps, Env, MessageInfo, Reply, Response, SubMsg, WasmExecute
from ..core import (
    EscrowStatus, EscrowType, OrderStatus, PENDING_ADDRESS, auction_from_fields,
    page_limit, validate_auction_params,
)
from ..errors import EscrowPending, InvalidOrderAction, NotFound, UnknownMessage, UnknownReply
from ..htlc.msg import (
    Cancel, ConfirmSourceEscrow, CurrentPrice, DestinationEscrowResponse, Escrow,
    PriceResponse, SourceEscrowResponse, Withdraw, PartialWithdraw,
)
from .factory import derive_salt
from .msg import (
    RESOLVER_EXECUTE, RESOLVER_QUERY, ActiveOrders, AddRelayer, Config,
    CreateDestinationEscrow, CreateEscrowResult, CreateSourceEscrow, DeployDst,
    DeployResult, DeploySrc, DutchAuctionInfo, EscrowAddress, EscrowAddressResponse,
    EscrowPrice, ForwardCancel, ForwardPartialWithdraw, ForwardWithdraw,
    IsAuthorizedRelayer, OrderByEscrow, OrderListResponse, OrderQuery, OrderResponse,
    Orders, PartialFillInfo, ProcessOrder, RefreshPrice, RelayerResponse, RemoveRelayer,
    ResolverConfigResponse, ResolverInstantiate, SyncOrder, UpdateOwner,
)
from .policy import AuthPolicy

log = logging.getLogger(__name__)

REPLY_CREATE = "create"
REPLY_FORWARD = "forward"


@dataclass
class ResolverConfig:
    owner: str
    escrow_factory: str
    relayers: List[str] = field(default_factory=list)
    restrict_source_confirmation: bool = False

    def policy(self) -> AuthPolicy:
        return AuthPolicy(owner=self.owner, relayers=tuple(self.relayers))


@dataclass
class Order:
    order_id: int
    escrow_type: EscrowType
    salt: str
    maker: str
    taker: Optional[str]
    timelock: int
    created_at: int
    updated_at: int
    status: OrderStatus = OrderStatus.ACTIVE
    escrow_address: str = PENDING_ADDRESS
    dutch_auction: Optional[DutchAuctionInfo] = None
    partial_fill: Optional[PartialFillInfo] = None
    lop_order_data: Optional[str] = None


@dataclass
class PendingReply:
    kind: str       # REPLY_CREATE or REPLY_FORWARD
    order_id: int


CONFIG = Item("config")
ORDERS = Map("orders")                    # order_id -> Order
ORDER_BY_ESCROW = Map("order_by_escrow")  # escrow address -> order_id
ORDER_SEQ = Item("order_seq")
REPLY_SEQ = Item("reply_seq")
PENDING_REPLIES = Map("pending_replies")  # reply id -> PendingReply


def project_status(escrow_status: EscrowStatus, src_confirmed: bool,
                   timelock: int, now: int) -> OrderStatus:
    """Order status implied by the escrow's own state."""
    if escrow_status == EscrowStatus.WITHDRAWN:
        return OrderStatus.COMPLETED
    if escrow_status == EscrowStatus.CANCELLED:
        return OrderStatus.CANCELLED
    if now >= timelock:
        return OrderStatus.EXPIRED
    if src_confirmed:
        return OrderStatus.MATCHED
    return OrderStatus.ACTIVE


class EscrowResolver(Contract):
    name = "xswap-escrow-resolver"

    def instantiate(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = parse_model(ResolverInstantiate, msg)
        relayers: List[str] = []
        for relayer in msg.authorized_relayers:
            relayer = deps.api.addr_validate(relayer)
            if relayer not in relayers:
                relayers.append(relayer)

        config = ResolverConfig(
            owner=deps.api.addr_validate(msg.owner),
            escrow_factory=deps.api.addr_validate(msg.escrow_factory),
            relayers=relayers,
            restrict_source_confirmation=msg.restrict_source_confirmation,
        )
        CONFIG.save(deps.storage, config)
        ORDER_SEQ.save(deps.storage, 0)
        REPLY_SEQ.save(deps.storage, 0)
        log.info(f"Resolver {env.contract.address} owned by {config.owner}, "
                 f"{len(relayers)} relayer(s)")

        return (Response()
                .add_attribute("method", "instantiate")
                .add_attribute("owner", config.owner)
                .add_attribute("escrow_factory", config.escrow_factory))

    def execute(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = RESOLVER_EXECUTE.parse(msg)
        config = CONFIG.load(deps.storage)
        policy = config.policy()

        if isinstance(msg, DeploySrc):
            policy.require_operator(info.sender)
            return self._deploy_src(deps, env, config, msg)
        if isinstance(msg, DeployDst):
            policy.require_operator(info.sender)
            return self._deploy_dst(deps, env, config, msg)

        if isinstance(msg, ForwardWithdraw):
            policy.require_operator(info.sender)
            return self._forward(deps, msg.escrow_address, Withdraw(secret=msg.secret), "withdraw")
        if isinstance(msg, ForwardPartialWithdraw):
            policy.require_operator(info.sender)
            return self._forward(deps, msg.escrow_address,
                                 PartialWithdraw(secret=msg.secret, amount=msg.amount),
                                 "partial_withdraw")
        if isinstance(msg, ForwardCancel):
            policy.require_operator(info.sender)
            return self._forward(deps, msg.escrow_address, Cancel(), "cancel")

        if isinstance(msg, RefreshPrice):
            return self._update_price(deps, env, msg.escrow_address)
        if isinstance(msg, SyncOrder):
            return self._sync_order(deps, env, config, msg.order_id)
        if isinstance(msg, ProcessOrder):
            return self._process_order(deps, info, policy, msg)

        if isinstance(msg, AddRelayer):
            return self._add_relayer(deps, info, policy, config, msg.relayer)
        if isinstance(msg, RemoveRelayer):
            return self._remove_relayer(deps, info, policy, config, msg.relayer)
        if isinstance(msg, UpdateOwner):
            return self._update_owner(deps, info, policy, config, msg.new_owner)
        raise UnknownMessage(f"Unknown message: {msg.TAG}")

    # =========================================================================
    # Deploy
    # =========================================================================

    def _deploy_src(self, deps: Deps, env: Env, config: ResolverConfig, msg: DeploySrc) -> Response:
        maker = deps.api.addr_validate(msg.maker)
        taker = deps.api.addr_validate(msg.taker) if msg.taker else None
        validate_auction_params(msg.initial_price, msg.minimum_price)
        now = env.block.seconds

        dutch_auction = None
        auction = auction_from_fields(msg.initial_price, msg.price_decay_rate,
                                      msg.minimum_price, now)
        if auction:
            dutch_auction = DutchAuctionInfo(**auction.to_dict(), current_price=auction.initial_price)

        partial_fill = None
        if msg.allow_partial_fill:
            partial_fill = PartialFillInfo(
                allow_partial_fill=True,
                minimum_fill_amount=msg.minimum_fill_amount,
                filled_amount=0,
                remaining_amount=msg.dst_amount,
            )

        order = self._new_order(deps, env, EscrowType.SOURCE, msg.label, maker, taker, msg.timelock)
        order.dutch_auction = dutch_auction
        order.partial_fill = partial_fill
        order.lop_order_data = msg.lop_order_data

        fields = msg.model_dump(exclude={"lop_order_data"})
        fields.update(maker=maker, taker=taker)
        create = CreateSourceEscrow(**fields)
        return self._request_escrow(deps, env, config, order, create, "deploy_src")

    def _deploy_dst(self, deps: Deps, env: Env, config: ResolverConfig, msg: DeployDst) -> Response:
        maker = deps.api.addr_validate(msg.maker)
        taker = deps.api.addr_validate(msg.taker)
        order = self._new_order(deps, env, EscrowType.DESTINATION, msg.label, maker, taker,
                                msg.timelock)

        confirmer = env.contract.address if config.restrict_source_confirmation else None
        fields = msg.model_dump()
        fields.update(maker=maker, taker=taker, authorized_confirmer=confirmer)
        create = CreateDestinationEscrow(**fields)
        return self._request_escrow(deps, env, config, order, create, "deploy_dst")

    def _new_order(self, deps: Deps, env: Env, escrow_type: EscrowType, label: str,
                   maker: str, taker: Optional[str], timelock: int) -> Order:
        order_id = ORDER_SEQ.load(deps.storage) + 1
        ORDER_SEQ.save(deps.storage, order_id)
        now = env.block.seconds
        return Order(
            order_id=order_id,
            escrow_type=escrow_type,
            # Same salt the factory derives for this call
            salt=derive_salt(env.contract.address, env.block.time_ns, label),
            maker=maker,
            taker=taker,
            timelock=timelock,
            created_at=now,
            updated_at=now,
        )

    def _request_escrow(self, deps: Deps, env: Env, config: ResolverConfig, order: Order,
                        create, method: str) -> Response:
        ORDERS.save(deps.storage, order.order_id, order)
        reply_id = self._track_reply(deps, REPLY_CREATE, order.order_id)
        log.info(f"Order {order.order_id}: requesting {order.escrow_type.value} escrow ({order.salt})")

        return (Response()
                .add_submessage(SubMsg.reply_on_success(WasmExecute(config.escrow_factory, create),
                                                        reply_id))
                .set_data(DeployResult(order_id=order.order_id, escrow_address=PENDING_ADDRESS,
                                       salt=order.salt))
                .add_attribute("method", method)
                .add_attribute("order_id", order.order_id)
                .add_attribute("salt", order.salt))

    # =========================================================================
    # Replies
    # =========================================================================

    def _track_reply(self, deps: Deps, kind: str, order_id: int) -> int:
        reply_id = REPLY_SEQ.load(deps.storage) + 1
        REPLY_SEQ.save(deps.storage, reply_id)
        PENDING_REPLIES.save(deps.storage, reply_id, PendingReply(kind, order_id))
        return reply_id

    def reply(self, deps: Deps, env: Env, reply: Reply) -> Response:
        pending = PENDING_REPLIES.may_load(deps.storage, reply.id)
        if pending is None:
            log.warning(f"Resolver reply for unknown id {reply.id}")
            raise UnknownReply(f"No pending reply with id {reply.id}")
        PENDING_REPLIES.remove(deps.storage, reply.id)

        if pending.kind == REPLY_CREATE:
            return self._on_escrow_created(deps, env, pending.order_id, reply)

        order = ORDERS.load(deps.storage, pending.order_id)
        self._project(deps, env, order)
        ORDERS.save(deps.storage, order.order_id, order)
        return (Response()
                .add_attribute("method", "order_synced")
                .add_attribute("order_id", order.order_id)
                .add_attribute("status", order.status))

    def _on_escrow_created(self, deps: Deps, env: Env, order_id: int, reply: Reply) -> Response:
        result = parse_model(CreateEscrowResult, reply.result.data)
        order = ORDERS.load(deps.storage, order_id)
        if result.salt != order.salt:
            log.warning(f"Order {order_id}: factory salt {result.salt} differs from {order.salt}")

        order.escrow_address = result.address
        order.salt = result.salt
        order.updated_at = env.block.seconds
        ORDERS.save(deps.storage, order_id, order)
        ORDER_BY_ESCROW.save(deps.storage, result.address, order_id)
        log.info(f"Order {order_id} bound to escrow {result.address}")

        return (Response()
                .set_data(DeployResult(order_id=order_id, escrow_address=result.address,
                                       salt=result.salt))
                .add_attribute("method", "escrow_resolved")
                .add_attribute("order_id", order_id)
                .add_attribute("escrow_address", result.address))

    # =========================================================================
    # Projection
    # =========================================================================

    def _project(self, deps: Deps, env: Env, order: Order):
        """Recompute every escrow-derived field of the order from the escrow."""
        now = env.block.seconds
        querier = deps.querier

        if order.escrow_type == EscrowType.SOURCE:
            escrow = parse_model(SourceEscrowResponse,
                                 querier.query_wasm_smart(order.escrow_address, Escrow()))
            if order.partial_fill and escrow.funded:
                order.partial_fill.filled_amount = escrow.filled_amount
                order.partial_fill.remaining_amount = escrow.remaining_amount
            if order.dutch_auction:
                price = parse_model(PriceResponse,
                                    querier.query_wasm_smart(order.escrow_address, CurrentPrice()))
                order.dutch_auction.current_price = price.current_price
            src_confirmed = False
        else:
            escrow = parse_model(DestinationEscrowResponse,
                                 querier.query_wasm_smart(order.escrow_address, Escrow()))
            src_confirmed = escrow.src_confirmed

        order.status = project_status(escrow.status, src_confirmed, escrow.timelock, now)
        order.updated_at = now

    # =========================================================================
    # Forwarding
    # =========================================================================

    def _forward(self, deps: Deps, escrow_address: str, escrow_msg, method: str) -> Response:
        address = deps.api.addr_validate(escrow_address)
        order_id = ORDER_BY_ESCROW.may_load(deps.storage, address)
        execute = WasmExecute(address, escrow_msg)

        response = Response()
        if order_id is None:
            log.info(f"Forwarding {method} to untracked escrow {address}")
            response.add_message(execute)
        else:
            reply_id = self._track_reply(deps, REPLY_FORWARD, order_id)
            response.add_submessage(SubMsg.reply_on_success(execute, reply_id))
            response.add_attribute("order_id", order_id)

        return (response
                .add_attribute("method", method)
                .add_attribute("escrow_address", address))

    def _update_price(self, deps: Deps, env: Env, escrow_address: str) -> Response:
        address = deps.api.addr_validate(escrow_address)
        order_id = ORDER_BY_ESCROW.may_load(deps.storage, address)
        if order_id is None:
            raise NotFound(f"No order for escrow {address}")
        order = ORDERS.load(deps.storage, order_id)
        if order.escrow_type != EscrowType.SOURCE:
            raise InvalidOrderAction("Destination escrows are not priced")

        price = parse_model(PriceResponse,
                            deps.querier.query_wasm_smart(address, CurrentPrice()))
        if order.dutch_auction:
            order.dutch_auction.current_price = price.current_price
        order.updated_at = env.block.seconds
        ORDERS.save(deps.storage, order_id, order)

        return (Response()
                .add_attribute("method", "update_price")
                .add_attribute("order_id", order_id)
                .add_attribute("new_price", price.current_price))

    def _sync_order(self, deps: Deps, env: Env, config: ResolverConfig, order_id: int) -> Response:
        order = ORDERS.load(deps.storage, order_id)

        if order.escrow_address == PENDING_ADDRESS:
            entry = parse_model(EscrowAddressResponse, deps.querier.query_wasm_smart(
                config.escrow_factory, EscrowAddress(salt=order.salt)))
            if entry.address == PENDING_ADDRESS:
                raise EscrowPending(f"Order {order_id} escrow not created yet")
            order.escrow_address = entry.address
            ORDER_BY_ESCROW.save(deps.storage, entry.address, order_id)
            log.info(f"Order {order_id} reconciled to escrow {entry.address}")

        previous = order.status
        self._project(deps, env, order)
        ORDERS.save(deps.storage, order_id, order)
        if order.status != previous:
            log.info(f"Order {order_id}: {previous.value} -> {order.status.value}")

        return (Response()
                .add_attribute("method", "sync_order")
                .add_attribute("order_id", order_id)
                .add_attribute("status", order.status))

    # =========================================================================
    # Relayer actions
    # =========================================================================

    def _process_order(self, deps: Deps, info: MessageInfo, policy: AuthPolicy,
                       msg: ProcessOrder) -> Response:
        policy.require_relayer(info.sender)
        order = ORDERS.load(deps.storage, msg.order_id)
        if order.escrow_address == PENDING_ADDRESS:
            raise EscrowPending(f"Order {order.order_id} escrow not created yet")

        action = msg.action
        if action.confirm_source is not None:
            if order.escrow_type != EscrowType.DESTINATION:
                raise InvalidOrderAction("Only destination orders take a source confirmation")
            escrow_msg = ConfirmSourceEscrow(src_tx_hash=action.confirm_source.src_tx_hash,
                                             block_height=action.confirm_source.block_height)
        elif action.execute_swap is not None:
            escrow_msg = Withdraw(secret=action.execute_swap.secret)
        else:
            escrow_msg = Cancel()

        # proof is carried for a future verifier and not checked
        reply_id = self._track_reply(deps, REPLY_FORWARD, order.order_id)
        log.info(f"Relayer {info.sender} processing order {order.order_id}: {action.kind}")

        return (Response()
                .add_submessage(SubMsg.reply_on_success(
                    WasmExecute(order.escrow_address, escrow_msg), reply_id))
                .add_attribute("method", "process_order")
                .add_attribute("order_id", order.order_id)
                .add_attribute("action", action.kind)
                .add_attribute("relayer", info.sender)
                .add_attribute("proof_provided", msg.proof is not None))

    # =========================================================================
    # Admin
    # =========================================================================

    def _add_relayer(self, deps: Deps, info: MessageInfo, policy: AuthPolicy,
                     config: ResolverConfig, relayer: str) -> Response:
        policy.require_owner(info.sender)
        relayer = deps.api.addr_validate(relayer)
        added = relayer not in config.relayers
        if added:
            config.relayers.append(relayer)
            CONFIG.save(deps.storage, config)
            log.info(f"Relayer {relayer} authorized")

        return (Response()
                .add_attribute("method", "add_relayer")
                .add_attribute("relayer", relayer)
                .add_attribute("changed", added))

    def _remove_relayer(self, deps: Deps, info: MessageInfo, policy: AuthPolicy,
                        config: ResolverConfig, relayer: str) -> Response:
        policy.require_owner(info.sender)
        relayer = deps.api.addr_validate(relayer)
        removed = relayer in config.relayers
        if removed:
            config.relayers.remove(relayer)
            CONFIG.save(deps.storage, config)
            log.info(f"Relayer {relayer} revoked")

        return (Response()
                .add_attribute("method", "remove_relayer")
                .add_attribute("relayer", relayer)
                .add_attribute("changed", removed))

    def _update_owner(self, deps: Deps, info: MessageInfo, policy: AuthPolicy,
                      config: ResolverConfig, new_owner: str) -> Response:
        policy.require_owner(info.sender)
        config.owner = deps.api.addr_validate(new_owner)
        CONFIG.save(deps.storage, config)
        log.info(f"Resolver owner changed to {config.owner}")

        return (Response()
                .add_attribute("method", "update_owner")
                .add_attribute("new_owner", config.owner))

    # =========================================================================
    # Queries
    # =========================================================================

    def query(self, deps: Deps, env: Env, msg: Any) -> Any:
        msg = RESOLVER_QUERY.parse(msg)

        if isinstance(msg, Config):
            config = CONFIG.load(deps.storage)
            return ResolverConfigResponse(
                owner=config.owner,
                escrow_factory=config.escrow_factory,
                authorized_relayers=list(config.relayers),
                restrict_source_confirmation=config.restrict_source_confirmation,
            )

        if isinstance(msg, OrderQuery):
            return OrderResponse(**asdict(ORDERS.load(deps.storage, msg.order_id)))

        if isinstance(msg, OrderByEscrow):
            address = deps.api.addr_validate(msg.escrow_address)
            order_id = ORDER_BY_ESCROW.may_load(deps.storage, address)
            if order_id is None:
                raise NotFound(f"No order for escrow {address}")
            return OrderResponse(**asdict(ORDERS.load(deps.storage, order_id)))

        if isinstance(msg, ActiveOrders):
            limit = page_limit(msg.limit)
            orders = []
            for _, order in ORDERS.range(deps.storage, msg.start_after):
                if order.status in (OrderStatus.ACTIVE, OrderStatus.MATCHED):
                    orders.append(OrderResponse(**asdict(order)))
                    if len(orders) >= limit:
                        break
            return OrderListResponse(orders=orders)

        if isinstance(msg, Orders):
            rows = ORDERS.range(deps.storage, msg.start_after, page_limit(msg.limit))
            return OrderListResponse(orders=[OrderResponse(**asdict(o)) for _, o in rows])

        if isinstance(msg, EscrowPrice):
            return parse_model(PriceResponse,
                               deps.querier.query_wasm_smart(msg.escrow_address, CurrentPrice()))

        config = CONFIG.load(deps.storage)
        return RelayerResponse(is_authorized=msg.relayer in config.relayers)
