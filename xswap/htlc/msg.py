"""
Escrow messages and query responses.

Source and destination escrows share the funding/withdraw/cancel verbs; each
contract's MessageSet lists the subset it accepts.
"""

from typing import Optional

from pydantic import BaseModel

from ..chains.codec import Msg, MessageSet, Timestamp, Uint128
from ..chains.token import Receive
from ..core import EscrowStatus


# =============================================================================
# Instantiate
# =============================================================================

class SourceInstantiate(BaseModel):
    maker: str
    taker: Optional[str] = None
    secret_hash: str
    timelock: Timestamp
    dst_chain_id: str
    dst_asset: str
    dst_amount: Uint128
    # Dutch auction
    initial_price: Optional[Uint128] = None
    price_decay_rate: Optional[Uint128] = None   # per second
    minimum_price: Optional[Uint128] = None
    # Partial fill
    allow_partial_fill: bool = False
    minimum_fill_amount: Optional[Uint128] = None


class DestinationInstantiate(BaseModel):
    taker: str
    maker: str
    secret_hash: str
    timelock: Timestamp
    src_chain_id: str
    src_escrow_address: str
    expected_amount: Uint128
    # None keeps confirmation open to any caller
    authorized_confirmer: Optional[str] = None


# =============================================================================
# Execute
# =============================================================================

class Deposit(Msg):
    TAG = "deposit"


class Withdraw(Msg):
    TAG = "withdraw"
    secret: str


class PartialWithdraw(Msg):
    TAG = "partial_withdraw"
    secret: str
    amount: Uint128


class Cancel(Msg):
    TAG = "cancel"


class UpdatePrice(Msg):
    TAG = "update_price"


class ConfirmSourceEscrow(Msg):
    TAG = "confirm_source_escrow"
    src_tx_hash: str
    block_height: int


# Body of Receive.msg for token deposits
RECEIVE = MessageSet(Deposit)

SOURCE_EXECUTE = MessageSet(Deposit, Receive, Withdraw, PartialWithdraw, Cancel, UpdatePrice)
DESTINATION_EXECUTE = MessageSet(Deposit, Receive, Withdraw, Cancel, ConfirmSourceEscrow)


# =============================================================================
# Query
# =============================================================================

class Escrow(Msg):
    TAG = "escrow"


class CurrentPrice(Msg):
    TAG = "current_price"


class FillStatus(Msg):
    TAG = "fill_status"


SOURCE_QUERY = MessageSet(Escrow, CurrentPrice, FillStatus)
DESTINATION_QUERY = MessageSet(Escrow)


class SourceEscrowResponse(BaseModel):
    maker: str
    taker: Optional[str] = None
    secret_hash: str
    timelock: int
    dst_chain_id: str
    dst_asset: str
    dst_amount: int
    deposited_amount: int
    deposited_denom: Optional[str] = None
    token_contract: Optional[str] = None
    status: EscrowStatus
    created_at: int
    initial_price: Optional[int] = None
    price_decay_rate: Optional[int] = None
    minimum_price: Optional[int] = None
    allow_partial_fill: bool
    minimum_fill_amount: Optional[int] = None
    filled_amount: int
    remaining_amount: int
    funded: bool
    funded_height: Optional[int] = None
    funded_tx_hash: Optional[str] = None


class DestinationEscrowResponse(BaseModel):
    taker: str
    maker: str
    secret_hash: str
    timelock: int
    src_chain_id: str
    src_escrow_address: str
    expected_amount: int
    deposited_amount: int
    deposited_denom: Optional[str] = None
    token_contract: Optional[str] = None
    status: EscrowStatus
    created_at: int
    src_confirmed: bool
    src_tx_hash: Optional[str] = None
    src_block_height: Optional[int] = None
    authorized_confirmer: Optional[str] = None
    funded: bool


class PriceResponse(BaseModel):
    current_price: int
    initial_price: Optional[int] = None
    minimum_price: Optional[int] = None
    price_decay_rate: Optional[int] = None
    time_elapsed: int


class FillStatusResponse(BaseModel):
    total_amount: int
    filled_amount: int
    remaining_amount: int
    is_fully_filled: bool
    allow_partial_fill: bool
    fill_percentage: int
