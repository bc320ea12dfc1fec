"""
Factory and resolver messages and query responses.
"""

from typing import List, Optional

from pydantic import BaseModel, model_validator

from ..chains.codec import Msg, MessageSet, Timestamp, Uint128
from ..core import EscrowType, OrderStatus


# =============================================================================
# Factory
# =============================================================================

class FactoryInstantiate(BaseModel):
    owner: str
    source_escrow_code_id: int
    destination_escrow_code_id: int


class CreateSourceEscrow(Msg):
    TAG = "create_source_escrow"
    maker: str
    taker: Optional[str] = None
    secret_hash: str
    timelock: Timestamp
    dst_chain_id: str
    dst_asset: str
    dst_amount: Uint128
    initial_price: Optional[Uint128] = None
    price_decay_rate: Optional[Uint128] = None
    minimum_price: Optional[Uint128] = None
    allow_partial_fill: bool = False
    minimum_fill_amount: Optional[Uint128] = None
    label: str


class CreateDestinationEscrow(Msg):
    TAG = "create_destination_escrow"
    taker: str
    maker: str
    secret_hash: str
    timelock: Timestamp
    src_chain_id: str
    src_escrow_address: str
    expected_amount: Uint128
    authorized_confirmer: Optional[str] = None
    label: str


class UpdateCodeIds(Msg):
    TAG = "update_code_ids"
    source_escrow_code_id: Optional[int] = None
    destination_escrow_code_id: Optional[int] = None


class UpdateOwner(Msg):
    TAG = "update_owner"
    new_owner: str


class Config(Msg):
    TAG = "config"


class EscrowAddress(Msg):
    TAG = "escrow_address"
    salt: str


class EscrowEntry(Msg):
    TAG = "escrow"
    salt: str


class EscrowList(Msg):
    TAG = "escrow_list"
    start_after: Optional[str] = None
    limit: Optional[int] = None


class PendingCreations(Msg):
    TAG = "pending_creations"


FACTORY_EXECUTE = MessageSet(CreateSourceEscrow, CreateDestinationEscrow, UpdateCodeIds, UpdateOwner)
FACTORY_QUERY = MessageSet(Config, EscrowAddress, EscrowEntry, EscrowList, PendingCreations)


class FactoryConfigResponse(BaseModel):
    owner: str
    source_escrow_code_id: int
    destination_escrow_code_id: int


class EscrowAddressResponse(BaseModel):
    address: str


class RegistryEntryResponse(BaseModel):
    address: str
    escrow_type: EscrowType
    creator: str
    created_at: int
    salt: str
    creation_id: int


class EscrowListResponse(BaseModel):
    escrows: List[RegistryEntryResponse]


class PendingCreation(BaseModel):
    creation_id: int
    salt: str


class PendingCreationsResponse(BaseModel):
    pending: List[PendingCreation]


class CreateEscrowResult(BaseModel):
    """Response data of a create call, completed by the creation callback."""
    creation_id: int
    salt: str
    escrow_type: EscrowType
    address: str


# =============================================================================
# Resolver
# =============================================================================

class ResolverInstantiate(BaseModel):
    owner: str
    escrow_factory: str
    authorized_relayers: List[str] = []
    restrict_source_confirmation: bool = False


class DeploySrc(Msg):
    TAG = "deploy_src"
    maker: str
    taker: Optional[str] = None
    secret_hash: str
    timelock: Timestamp
    dst_chain_id: str
    dst_asset: str
    dst_amount: Uint128
    initial_price: Optional[Uint128] = None
    price_decay_rate: Optional[Uint128] = None
    minimum_price: Optional[Uint128] = None
    allow_partial_fill: bool = False
    minimum_fill_amount: Optional[Uint128] = None
    lop_order_data: Optional[str] = None
    label: str


class DeployDst(Msg):
    TAG = "deploy_dst"
    taker: str
    maker: str
    secret_hash: str
    timelock: Timestamp
    src_chain_id: str
    src_escrow_address: str
    expected_amount: Uint128
    label: str


class ForwardWithdraw(Msg):
    TAG = "withdraw"
    escrow_address: str
    secret: str


class ForwardPartialWithdraw(Msg):
    TAG = "partial_withdraw"
    escrow_address: str
    secret: str
    amount: Uint128


class ForwardCancel(Msg):
    TAG = "cancel"
    escrow_address: str


class RefreshPrice(Msg):
    TAG = "update_price"
    escrow_address: str


class SyncOrder(Msg):
    TAG = "sync_order"
    order_id: int


class ConfirmSourceAction(BaseModel):
    src_tx_hash: str
    block_height: int


class ExecuteSwapAction(BaseModel):
    secret: str


class CancelOrderAction(BaseModel):
    pass


class OrderAction(BaseModel):
    """Exactly one of the variants is set."""
    confirm_source: Optional[ConfirmSourceAction] = None
    execute_swap: Optional[ExecuteSwapAction] = None
    cancel_order: Optional[CancelOrderAction] = None

    @model_validator(mode="before")
    @classmethod
    def _unit_variant(cls, data):
        if isinstance(data, str):
            return {data: {}}
        return data

    @model_validator(mode="after")
    def _one_variant(self):
        chosen = [v for v in (self.confirm_source, self.execute_swap, self.cancel_order)
                  if v is not None]
        if len(chosen) != 1:
            raise ValueError("OrderAction needs exactly one variant")
        return self

    @property
    def kind(self) -> str:
        if self.confirm_source is not None:
            return "confirm_source"
        if self.execute_swap is not None:
            return "execute_swap"
        return "cancel_order"


class ProcessOrder(Msg):
    TAG = "process_order"
    order_id: int
    action: OrderAction
    proof: Optional[str] = None


class AddRelayer(Msg):
    TAG = "add_relayer"
    relayer: str


class RemoveRelayer(Msg):
    TAG = "remove_relayer"
    relayer: str


RESOLVER_EXECUTE = MessageSet(
    DeploySrc, DeployDst, ForwardWithdraw, ForwardPartialWithdraw, ForwardCancel,
    RefreshPrice, SyncOrder, ProcessOrder, AddRelayer, RemoveRelayer, UpdateOwner,
)


class OrderQuery(Msg):
    TAG = "order"
    order_id: int


class OrderByEscrow(Msg):
    TAG = "order_by_escrow"
    escrow_address: str


class ActiveOrders(Msg):
    TAG = "active_orders"
    start_after: Optional[int] = None
    limit: Optional[int] = None


class Orders(Msg):
    TAG = "orders"
    start_after: Optional[int] = None
    limit: Optional[int] = None


class EscrowPrice(Msg):
    TAG = "current_price"
    escrow_address: str


class IsAuthorizedRelayer(Msg):
    TAG = "is_authorized_relayer"
    relayer: str


RESOLVER_QUERY = MessageSet(Config, OrderQuery, OrderByEscrow, ActiveOrders, Orders,
                            EscrowPrice, IsAuthorizedRelayer)


class ResolverConfigResponse(BaseModel):
    owner: str
    escrow_factory: str
    authorized_relayers: List[str]
    restrict_source_confirmation: bool


class DutchAuctionInfo(BaseModel):
    initial_price: int
    minimum_price: int
    price_decay_rate: int
    start_time: int
    current_price: int


class PartialFillInfo(BaseModel):
    allow_partial_fill: bool
    minimum_fill_amount: Optional[int] = None
    filled_amount: int
    remaining_amount: int


class OrderResponse(BaseModel):
    order_id: int
    escrow_type: EscrowType
    escrow_address: str
    salt: str
    maker: str
    taker: Optional[str] = None
    status: OrderStatus
    timelock: int
    created_at: int
    updated_at: int
    dutch_auction: Optional[DutchAuctionInfo] = None
    partial_fill: Optional[PartialFillInfo] = None
    lop_order_data: Optional[str] = None


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]


class RelayerResponse(BaseModel):
    is_authorized: bool


class DeployResult(BaseModel):
    """Response data of deploy_src / deploy_dst."""
    order_id: int
    escrow_address: str
    salt: str

