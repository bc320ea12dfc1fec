"""
Reference partial-fill order book.

A maker posts an order for total_amount units at a fixed unit price. Takers
fill any part of what remains by paying fill_amount * price in the book's
denom; the maker is paid immediately and overpayment goes back to the taker.
Fill accounting is core.FillLedger, shared with the source escrow.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel

from ..chains.codec import Msg, MessageSet, Uint128, parse_model
from ..chains.contract import Contract
from ..chains.storage import Item, Map
from ..chains.types import BankSend, Coin, Deps, Env, MessageInfo, Response
from ..core import FillLedger
from ..errors import (
    InsufficientFunds, InvalidFunds, OrderAlreadyExists, OrderNotActive, Unauthorized,
)

log = logging.getLogger(__name__)


class BookInstantiate(BaseModel):
    denom: str = "ustake"   # payment currency


class CreateOrder(Msg):
    TAG = "create_order"
    order_id: str
    total_amount: Uint128
    price: Uint128


class PartialFill(Msg):
    TAG = "partial_fill"
    order_id: str
    fill_amount: Uint128


class CancelOrder(Msg):
    TAG = "cancel_order"
    order_id: str


class OrderQuery(Msg):
    TAG = "order"
    order_id: str


class OrderStatusQuery(Msg):
    TAG = "order_status"
    order_id: str


EXECUTE = MessageSet(CreateOrder, PartialFill, CancelOrder)
QUERY = MessageSet(OrderQuery, OrderStatusQuery)


class BookOrderResponse(BaseModel):
    order_id: str
    maker: str
    taker: Optional[str] = None
    total_amount: int
    filled_amount: int
    price: int
    is_active: bool


class BookOrderStatusResponse(BaseModel):
    is_active: bool
    is_fully_filled: bool
    fill_percentage: int
    remaining_amount: int


@dataclass
class BookOrder:
    order_id: str
    maker: str
    total_amount: int
    price: int
    filled_amount: int = 0
    taker: Optional[str] = None   # first taker
    is_active: bool = True

    def ledger(self) -> FillLedger:
        return FillLedger(self.total_amount, self.filled_amount)


DENOM = Item("denom")
ORDERS = Map("orders")


class PartialFillBook(Contract):
    name = "xswap-partial-fill"

    def instantiate(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = parse_model(BookInstantiate, msg or {})
        DENOM.save(deps.storage, msg.denom)
        return (Response()
                .add_attribute("method", "instantiate")
                .add_attribute("owner", info.sender)
                .add_attribute("denom", msg.denom))

    def execute(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = EXECUTE.parse(msg)

        if isinstance(msg, CreateOrder):
            if ORDERS.has(deps.storage, msg.order_id):
                raise OrderAlreadyExists(f"Order {msg.order_id} already exists")
            order = BookOrder(msg.order_id, info.sender, msg.total_amount, msg.price)
            ORDERS.save(deps.storage, order.order_id, order)
            return (Response()
                    .add_attribute("method", "create_order")
                    .add_attribute("order_id", order.order_id)
                    .add_attribute("maker", order.maker)
                    .add_attribute("total_amount", order.total_amount)
                    .add_attribute("price", order.price))

        order = ORDERS.load(deps.storage, msg.order_id)

        if isinstance(msg, CancelOrder):
            if info.sender != order.maker:
                raise Unauthorized("Only the maker can cancel")
            if not order.is_active:
                raise OrderNotActive()
            order.is_active = False
            ORDERS.save(deps.storage, order.order_id, order)
            return (Response()
                    .add_attribute("method", "cancel_order")
                    .add_attribute("order_id", order.order_id)
                    .add_attribute("maker", order.maker))

        return self._fill(deps, info, order, msg.fill_amount)

    def _fill(self, deps: Deps, info: MessageInfo, order: BookOrder, amount: int) -> Response:
        if not order.is_active:
            raise OrderNotActive()

        ledger = order.ledger()
        ledger.check(amount)

        denom = DENOM.load(deps.storage)
        if any(c.denom != denom for c in info.funds):
            raise InvalidFunds(f"Only {denom} is accepted")
        required = amount * order.price
        received = sum(c.amount for c in info.funds if c.denom == denom)
        if received < required:
            raise InsufficientFunds(f"Fill requires {required}{denom}, got {received}")

        ledger.apply(amount)
        order.filled_amount = ledger.filled
        if order.taker is None:
            order.taker = info.sender
        if ledger.is_complete:
            order.is_active = False
        ORDERS.save(deps.storage, order.order_id, order)
        log.debug(f"Order {order.order_id} filled {ledger.filled}/{ledger.total}")

        response = Response()
        if required:
            response.add_message(BankSend(order.maker, [Coin(denom, required)]))
        if received > required:
            response.add_message(BankSend(info.sender, [Coin(denom, received - required)]))

        return (response
                .add_attribute("method", "partial_fill")
                .add_attribute("order_id", order.order_id)
                .add_attribute("taker", info.sender)
                .add_attribute("fill_amount", amount)
                .add_attribute("filled_amount", order.filled_amount)
                .add_attribute("is_fully_filled", ledger.is_complete))

    def query(self, deps: Deps, env: Env, msg: Any) -> Any:
        msg = QUERY.parse(msg)
        order = ORDERS.load(deps.storage, msg.order_id)

        if isinstance(msg, OrderQuery):
            return BookOrderResponse(
                order_id=order.order_id, maker=order.maker, taker=order.taker,
                total_amount=order.total_amount, filled_amount=order.filled_amount,
                price=order.price, is_active=order.is_active,
            )

        ledger = order.ledger()
        return BookOrderStatusResponse(
            is_active=order.is_active,
            is_fully_filled=ledger.is_complete,
            fill_percentage=ledger.fill_percentage(),
            remaining_amount=ledger.remaining,
        )
