"""
Delegated-asset token contract.

A minimal fungible token with balances held in contract storage. Send moves
tokens to a contract and then calls its receive hook with a Receive message,
which is how escrows accept token deposits.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .codec import Msg, MessageSet, Uint128, parse_model
from .contract import Contract
from .storage import Item, Map
from .types import Deps, Env, MessageInfo, Response, WasmExecute
from ..errors import InsufficientBalance, InvalidAmount, Unauthorized

log = logging.getLogger(__name__)


# =============================================================================
# Messages
# =============================================================================

class InitialBalance(BaseModel):
    address: str
    amount: Uint128


class TokenInstantiate(BaseModel):
    name: str
    symbol: str
    decimals: int = 6
    initial_balances: List[InitialBalance] = []
    minter: Optional[str] = None


class Transfer(Msg):
    TAG = "transfer"
    recipient: str
    amount: Uint128


class Send(Msg):
    TAG = "send"
    contract: str
    amount: Uint128
    msg: Dict[str, Any]


class Mint(Msg):
    TAG = "mint"
    recipient: str
    amount: Uint128


class Balance(Msg):
    TAG = "balance"
    address: str


class TokenInfo(Msg):
    TAG = "token_info"


class Receive(Msg):
    """Hook delivered to the receiving contract of a Send."""
    TAG = "receive"
    sender: str
    amount: Uint128
    msg: Dict[str, Any]


class BalanceResponse(BaseModel):
    balance: int


class TokenInfoResponse(BaseModel):
    name: str
    symbol: str
    decimals: int
    total_supply: int


EXECUTE = MessageSet(Transfer, Send, Mint)
QUERY = MessageSet(Balance, TokenInfo)

TOKEN_INFO = Item("token_info")
MINTER = Item("minter")
BALANCES = Map("balances")


class Token(Contract):
    name = "xswap-token"

    def instantiate(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = parse_model(TokenInstantiate, msg)
        supply = 0
        for entry in msg.initial_balances:
            address = deps.api.addr_validate(entry.address)
            BALANCES.save(deps.storage, address,
                          (BALANCES.may_load(deps.storage, address) or 0) + entry.amount)
            supply += entry.amount

        TOKEN_INFO.save(deps.storage, TokenInfoResponse(
            name=msg.name, symbol=msg.symbol, decimals=msg.decimals, total_supply=supply,
        ))
        if msg.minter:
            MINTER.save(deps.storage, deps.api.addr_validate(msg.minter))

        return (Response()
                .add_attribute("method", "instantiate")
                .add_attribute("symbol", msg.symbol)
                .add_attribute("total_supply", supply))

    def execute(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = EXECUTE.parse(msg)
        if isinstance(msg, Transfer):
            recipient = deps.api.addr_validate(msg.recipient)
            self._move(deps, info.sender, recipient, msg.amount)
            return (Response()
                    .add_attribute("action", "transfer")
                    .add_attribute("from", info.sender)
                    .add_attribute("to", recipient)
                    .add_attribute("amount", msg.amount))

        if isinstance(msg, Send):
            contract = deps.api.addr_validate(msg.contract)
            self._move(deps, info.sender, contract, msg.amount)
            hook = Receive(sender=info.sender, amount=msg.amount, msg=msg.msg)
            return (Response()
                    .add_message(WasmExecute(contract, hook))
                    .add_attribute("action", "send")
                    .add_attribute("from", info.sender)
                    .add_attribute("to", contract)
                    .add_attribute("amount", msg.amount))

        # Mint
        minter = MINTER.may_load(deps.storage)
        if minter is None or info.sender != minter:
            raise Unauthorized("Only the minter can mint")
        recipient = deps.api.addr_validate(msg.recipient)
        BALANCES.save(deps.storage, recipient,
                      (BALANCES.may_load(deps.storage, recipient) or 0) + msg.amount)
        token = TOKEN_INFO.load(deps.storage)
        token.total_supply += msg.amount
        TOKEN_INFO.save(deps.storage, token)
        return (Response()
                .add_attribute("action", "mint")
                .add_attribute("to", recipient)
                .add_attribute("amount", msg.amount))

    def query(self, deps: Deps, env: Env, msg: Any) -> Any:
        msg = QUERY.parse(msg)
        if isinstance(msg, Balance):
            return BalanceResponse(balance=BALANCES.may_load(deps.storage, msg.address) or 0)
        return TOKEN_INFO.load(deps.storage)

    def _move(self, deps: Deps, sender: str, recipient: str, amount: int):
        if amount == 0:
            raise InvalidAmount("Transfer amount must be positive")
        have = BALANCES.may_load(deps.storage, sender) or 0
        if have < amount:
            raise InsufficientBalance(f"{sender} holds {have}, needs {amount}")
        BALANCES.save(deps.storage, sender, have - amount)
        BALANCES.save(deps.storage, recipient,
                      (BALANCES.may_load(deps.storage, recipient) or 0) + amount)
        log.debug(f"Token transfer {sender} -> {recipient}: {amount}")
