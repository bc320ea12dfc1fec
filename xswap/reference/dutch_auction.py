"""
Reference Dutch auction contract.

Sellers lock a lot and its price decays linearly from initial_price toward
minimum_price over the auction's duration. Any bid at or above the current
price (and above the standing bid) takes the lead; the previous bidder is
refunded. Once the end time is reached anyone can settle: the seller gets
the winning bid and the winner gets the lot.

Pricing goes through core.linear_decay_price, the same function the source
escrow uses.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, List, Optional

from pydantic import BaseModel

from ..chains.codec import Msg, MessageSet, Timestamp, Uint128, parse_model
from ..chains.contract import Contract
from ..chains.storage import Item, Map
from ..chains.types import BankSend, Coin, Deps, Env, MessageInfo, Response
from ..core import DutchAuctionParams, page_limit, validate_auction_params
from ..errors import (
    AuctionAlreadyExists, AuctionEnded, AuctionNotActive, AuctionNotEnded,
    BidTooLow, InvalidFunds, InvalidState, Unauthorized,
)

log = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_ENDED = "ended"
STATUS_CANCELLED = "cancelled"


# =============================================================================
# Messages
# =============================================================================

class AuctionInstantiate(BaseModel):
    owner: str
    denom: str = "ustake"   # bidding currency


class CreateAuction(Msg):
    TAG = "create_auction"
    auction_id: str
    asset: str
    amount: Uint128
    initial_price: Uint128
    minimum_price: Uint128
    price_decay_rate: Uint128
    duration: Timestamp
    escrow_address: Optional[str] = None


class PlaceBid(Msg):
    TAG = "place_bid"
    auction_id: str


class UpdateAuctionPrice(Msg):
    TAG = "update_price"
    auction_id: str


class EndAuction(Msg):
    TAG = "end_auction"
    auction_id: str


class CancelAuction(Msg):
    TAG = "cancel_auction"
    auction_id: str


class UpdateOwner(Msg):
    TAG = "update_owner"
    new_owner: str


class AuctionQuery(Msg):
    TAG = "auction"
    auction_id: str


class ActiveAuctions(Msg):
    TAG = "active_auctions"
    start_after: Optional[str] = None
    limit: Optional[int] = None


class AuctionPrice(Msg):
    TAG = "current_price"
    auction_id: str


class AuctionHistory(Msg):
    TAG = "auction_history"
    auction_id: str
    start_after: Optional[int] = None
    limit: Optional[int] = None


EXECUTE = MessageSet(CreateAuction, PlaceBid, UpdateAuctionPrice, EndAuction, CancelAuction,
                     UpdateOwner)
QUERY = MessageSet(AuctionQuery, ActiveAuctions, AuctionPrice, AuctionHistory)


class AuctionResponse(BaseModel):
    auction_id: str
    seller: str
    asset: str
    amount: int
    initial_price: int
    minimum_price: int
    current_price: int
    price_decay_rate: int
    start_time: int
    end_time: int
    duration: int
    status: str
    winner: Optional[str] = None
    winning_bid: Optional[int] = None
    escrow_address: Optional[str] = None
    bid_count: int = 0


class AuctionListResponse(BaseModel):
    auctions: List[AuctionResponse]


class AuctionPriceResponse(BaseModel):
    current_price: int
    time_remaining: int
    price_at_end: int


class BidInfo(BaseModel):
    bidder: str
    amount: int
    timestamp: int
    price_at_bid: int


class AuctionHistoryResponse(BaseModel):
    bids: List[BidInfo]


# =============================================================================
# State
# =============================================================================

@dataclass
class AuctionConfig:
    owner: str
    denom: str


@dataclass
class Auction:
    auction_id: str
    seller: str
    asset: str
    amount: int
    initial_price: int
    minimum_price: int
    current_price: int
    price_decay_rate: int
    start_time: int
    end_time: int
    duration: int
    status: str = STATUS_ACTIVE
    winner: Optional[str] = None
    winning_bid: Optional[int] = None
    escrow_address: Optional[str] = None
    bid_count: int = 0

    @property
    def pricing(self) -> DutchAuctionParams:
        return DutchAuctionParams(self.initial_price, self.minimum_price,
                                  self.price_decay_rate, self.start_time)

    def price_at(self, now: int) -> int:
        return self.pricing.price_at(min(now, self.end_time))


CONFIG = Item("config")
AUCTIONS = Map("auctions")     # auction_id -> Auction
BIDS = Map("bids")             # (auction_id, seq) -> BidInfo


class DutchAuction(Contract):
    name = "xswap-dutch-auction"

    def instantiate(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = parse_model(AuctionInstantiate, msg)
        config = AuctionConfig(owner=deps.api.addr_validate(msg.owner), denom=msg.denom)
        CONFIG.save(deps.storage, config)
        return (Response()
                .add_attribute("method", "instantiate")
                .add_attribute("owner", config.owner)
                .add_attribute("denom", config.denom))

    def execute(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = EXECUTE.parse(msg)
        config = CONFIG.load(deps.storage)

        if isinstance(msg, CreateAuction):
            return self._create(deps, env, info, msg)
        if isinstance(msg, PlaceBid):
            return self._bid(deps, env, info, config, msg.auction_id)
        if isinstance(msg, UpdateAuctionPrice):
            auction = AUCTIONS.load(deps.storage, msg.auction_id)
            auction.current_price = auction.price_at(env.block.seconds)
            AUCTIONS.save(deps.storage, auction.auction_id, auction)
            return (Response()
                    .add_attribute("method", "update_price")
                    .add_attribute("current_price", auction.current_price))
        if isinstance(msg, EndAuction):
            return self._end(deps, env, config, msg.auction_id)
        if isinstance(msg, CancelAuction):
            return self._cancel(deps, info, msg.auction_id)

        if info.sender != config.owner:
            raise Unauthorized("Only the owner can do this")
        config.owner = deps.api.addr_validate(msg.new_owner)
        CONFIG.save(deps.storage, config)
        return Response().add_attribute("method", "update_owner").add_attribute("owner", config.owner)

    def _create(self, deps: Deps, env: Env, info: MessageInfo, msg: CreateAuction) -> Response:
        if AUCTIONS.has(deps.storage, msg.auction_id):
            raise AuctionAlreadyExists(f"Auction {msg.auction_id} already exists")
        validate_auction_params(msg.initial_price, msg.minimum_price)
        if len(info.funds) != 1 or info.funds[0].denom != msg.asset \
                or info.funds[0].amount != msg.amount or msg.amount == 0:
            raise InvalidFunds(f"Attach exactly {msg.amount}{msg.asset}")

        now = env.block.seconds
        auction = Auction(
            auction_id=msg.auction_id,
            seller=info.sender,
            asset=msg.asset,
            amount=msg.amount,
            initial_price=msg.initial_price,
            minimum_price=msg.minimum_price,
            current_price=msg.initial_price,
            price_decay_rate=msg.price_decay_rate,
            start_time=now,
            end_time=now + msg.duration,
            duration=msg.duration,
            escrow_address=(deps.api.addr_validate(msg.escrow_address)
                            if msg.escrow_address else None),
        )
        AUCTIONS.save(deps.storage, auction.auction_id, auction)
        log.info(f"Auction {auction.auction_id} opened by {info.sender} until {auction.end_time}")

        return (Response()
                .add_attribute("method", "create_auction")
                .add_attribute("auction_id", auction.auction_id)
                .add_attribute("seller", info.sender)
                .add_attribute("end_time", auction.end_time))

    def _bid(self, deps: Deps, env: Env, info: MessageInfo, config: AuctionConfig,
             auction_id: str) -> Response:
        auction = AUCTIONS.load(deps.storage, auction_id)
        if auction.status != STATUS_ACTIVE:
            raise AuctionNotActive()
        now = env.block.seconds
        if now > auction.end_time:
            raise AuctionEnded()

        price = auction.price_at(now)
        if any(c.denom != config.denom for c in info.funds):
            raise InvalidFunds(f"Bids are paid in {config.denom}")
        bid = sum(c.amount for c in info.funds if c.denom == config.denom)
        if bid < price:
            raise BidTooLow(f"Bid {bid} below current price {price}")
        if auction.winning_bid is not None and bid <= auction.winning_bid:
            raise BidTooLow(f"Bid {bid} does not beat {auction.winning_bid}")

        response = Response()
        if auction.winner is not None:
            response.add_message(BankSend(auction.winner, [Coin(config.denom, auction.winning_bid)]))

        auction.winner = info.sender
        auction.winning_bid = bid
        auction.current_price = price
        BIDS.save(deps.storage, (auction_id, auction.bid_count),
                  BidInfo(bidder=info.sender, amount=bid, timestamp=now, price_at_bid=price))
        auction.bid_count += 1
        AUCTIONS.save(deps.storage, auction_id, auction)

        return (response
                .add_attribute("method", "place_bid")
                .add_attribute("auction_id", auction_id)
                .add_attribute("bidder", info.sender)
                .add_attribute("amount", bid))

    def _end(self, deps: Deps, env: Env, config: AuctionConfig, auction_id: str) -> Response:
        auction = AUCTIONS.load(deps.storage, auction_id)
        if auction.status != STATUS_ACTIVE:
            raise AuctionNotActive()
        if env.block.seconds < auction.end_time:
            raise AuctionNotEnded()

        auction.status = STATUS_ENDED
        AUCTIONS.save(deps.storage, auction_id, auction)

        response = Response()
        lot = [Coin(auction.asset, auction.amount)]
        if auction.winner is not None:
            response.add_message(BankSend(auction.seller, [Coin(config.denom, auction.winning_bid)]))
            response.add_message(BankSend(auction.winner, lot))
        else:
            response.add_message(BankSend(auction.seller, lot))
        log.info(f"Auction {auction_id} ended, winner {auction.winner}")

        return (response
                .add_attribute("method", "end_auction")
                .add_attribute("winner", auction.winner or "")
                .add_attribute("winning_bid", auction.winning_bid or 0))

    def _cancel(self, deps: Deps, info: MessageInfo, auction_id: str) -> Response:
        auction = AUCTIONS.load(deps.storage, auction_id)
        if info.sender != auction.seller:
            raise Unauthorized("Only the seller can cancel")
        if auction.status != STATUS_ACTIVE:
            raise AuctionNotActive()
        if auction.winner is not None:
            raise InvalidState("Auction already has bids")

        auction.status = STATUS_CANCELLED
        AUCTIONS.save(deps.storage, auction_id, auction)
        return (Response()
                .add_message(BankSend(auction.seller, [Coin(auction.asset, auction.amount)]))
                .add_attribute("method", "cancel_auction")
                .add_attribute("auction_id", auction_id))

    def query(self, deps: Deps, env: Env, msg: Any) -> Any:
        msg = QUERY.parse(msg)
        now = env.block.seconds

        if isinstance(msg, AuctionQuery):
            return AuctionResponse(**asdict(AUCTIONS.load(deps.storage, msg.auction_id)))

        if isinstance(msg, ActiveAuctions):
            limit = page_limit(msg.limit)
            auctions = []
            for _, auction in AUCTIONS.range(deps.storage, msg.start_after):
                if auction.status == STATUS_ACTIVE:
                    auctions.append(AuctionResponse(**asdict(auction)))
                    if len(auctions) >= limit:
                        break
            return AuctionListResponse(auctions=auctions)

        if isinstance(msg, AuctionPrice):
            auction = AUCTIONS.load(deps.storage, msg.auction_id)
            return AuctionPriceResponse(
                current_price=auction.price_at(now),
                time_remaining=max(0, auction.end_time - now),
                price_at_end=auction.price_at(auction.end_time),
            )

        AUCTIONS.load(deps.storage, msg.auction_id)
        limit = page_limit(msg.limit)
        bids = []
        for (auction_id, seq), bid in BIDS.range(deps.storage):
            if auction_id != msg.auction_id:
                continue
            if msg.start_after is not None and seq <= msg.start_after:
                continue
            bids.append(bid)
            if len(bids) >= limit:
                break
        return AuctionHistoryResponse(bids=bids)
