"""
In-process chain runtime for xswap contracts.

Provides what the contracts need from a host:
- per-contract storage
- a bank for native value transfers
- instantiate / execute / query entry points
- submessages with success replies, dispatched depth-first
- atomic transactions: any failure restores every contract and balance

Used directly by tests and examples, and served over HTTP by server.py.
"""

import copy
import hashlib
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from .api import Api
from .codec import to_wire
from .contract import Contract
from .storage import MemoryStorage
from .types import (
    BankSend, BlockInfo, Coin, ContractInfo, Deps, Env, Event, MessageInfo,
    Reply, ReplyOn, Response, SubMsgResult, TransactionInfo, WasmExecute,
    WasmInstantiate, NANOS_PER_SECOND,
)
from ..errors import InsufficientBalance, InvalidAmount, NotFound

log = logging.getLogger(__name__)


@dataclass
class LocalChainConfig:
    """Local chain configuration."""
    chain_id: str = "xswap-local-1"
    start_time: int = 1_700_000_000   # unix seconds
    start_height: int = 1
    block_time: int = 6               # seconds per block
    auto_advance: bool = False        # new block after every transaction


@dataclass
class ExecutionResult:
    """Outcome of a committed transaction."""
    tx_hash: str
    height: int
    events: List[Event] = field(default_factory=list)
    data: Any = None
    contract_address: Optional[str] = None

    def attribute(self, key: str, event_type: str = "wasm") -> Optional[str]:
        """First value of `key` across events of the given type."""
        for event in self.events:
            if event.type == event_type:
                value = event.get(key)
                if value is not None:
                    return value
        return None

    def attributes(self, key: str, event_type: str = "wasm") -> List[str]:
        return [
            v for e in self.events if e.type == event_type
            for k, v in e.attributes if k == key
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "height": self.height,
            "events": [e.to_dict() for e in self.events],
            "data": self.data,
            "contract_address": self.contract_address,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionResult":
        return cls(
            tx_hash=data["tx_hash"],
            height=data["height"],
            events=[Event.from_dict(e) for e in data.get("events", [])],
            data=data.get("data"),
            contract_address=data.get("contract_address"),
        )


@dataclass
class ContractInstance:
    address: str
    code_id: int
    label: str
    creator: str
    admin: Optional[str] = None
    storage: MemoryStorage = field(default_factory=MemoryStorage)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "code_id": self.code_id,
            "label": self.label,
            "creator": self.creator,
            "admin": self.admin,
        }


class Querier:
    """Read access to other contracts and balances from inside a handler."""

    def __init__(self, chain: "LocalChain"):
        self._chain = chain

    def query_wasm_smart(self, contract_addr: str, msg: Any) -> Any:
        return self._chain._query(contract_addr, msg)

    def query_balance(self, address: str, denom: str) -> int:
        return self._chain._balances.get(address, {}).get(denom, 0)


class LocalChain:
    """
    Single-process chain.

    All entry points are serialized with a lock. Time only moves through
    advance_blocks()/advance_time() (or auto_advance).
    """

    def __init__(self, config: LocalChainConfig = None):
        self.config = config or LocalChainConfig()
        self.api = Api()

        self.height = self.config.start_height
        self.time_ns = self.config.start_time * NANOS_PER_SECOND

        self._codes: Dict[int, Contract] = {}
        self._contracts: Dict[str, ContractInstance] = {}
        self._balances: Dict[str, Dict[str, int]] = {}
        self._next_code_id = 0
        self._next_contract = 0
        self._tx_count = 0

        self._querier = Querier(self)
        self._lock = threading.RLock()

    @property
    def chain_id(self) -> str:
        return self.config.chain_id

    # -------------------------------------------------------------------------
    # Block clock
    # -------------------------------------------------------------------------

    def block(self) -> BlockInfo:
        return BlockInfo(height=self.height, time_ns=self.time_ns, chain_id=self.chain_id)

    def advance_blocks(self, blocks: int = 1) -> BlockInfo:
        with self._lock:
            self.height += blocks
            self.time_ns += blocks * self.config.block_time * NANOS_PER_SECOND
            return self.block()

    def advance_time(self, seconds: int, blocks: int = 1) -> BlockInfo:
        with self._lock:
            self.height += blocks
            self.time_ns += seconds * NANOS_PER_SECOND
            return self.block()

    # -------------------------------------------------------------------------
    # Bank
    # -------------------------------------------------------------------------

    def mint(self, address: str, funds: List[Coin]):
        """Create native funds out of thin air (genesis / faucet)."""
        address = self.api.addr_validate(address)
        with self._lock:
            for coin in funds:
                if coin.amount < 0:
                    raise InvalidAmount("Cannot mint a negative amount")
                account = self._balances.setdefault(address, {})
                account[coin.denom] = account.get(coin.denom, 0) + coin.amount

    def balance(self, address: str, denom: str) -> int:
        with self._lock:
            return self._balances.get(address, {}).get(denom, 0)

    def balances(self, address: str) -> List[Coin]:
        with self._lock:
            account = self._balances.get(address, {})
            return [Coin(d, a) for d, a in sorted(account.items()) if a]

    def _transfer(self, sender: str, recipient: str, funds: List[Coin]):
        for coin in funds:
            if coin.amount < 0:
                raise InvalidAmount("Negative transfer amount")
            have = self._balances.get(sender, {}).get(coin.denom, 0)
            if have < coin.amount:
                raise InsufficientBalance(
                    f"{sender} has {have}{coin.denom}, needs {coin.amount}{coin.denom}"
                )
        for coin in funds:
            src = self._balances.setdefault(sender, {})
            dst = self._balances.setdefault(recipient, {})
            src[coin.denom] = src.get(coin.denom, 0) - coin.amount
            dst[coin.denom] = dst.get(coin.denom, 0) + coin.amount

    # -------------------------------------------------------------------------
    # Codes and contracts
    # -------------------------------------------------------------------------

    def store_code(self, contract_cls: Type[Contract]) -> int:
        with self._lock:
            self._next_code_id += 1
            self._codes[self._next_code_id] = contract_cls()
            log.info(f"Stored code {self._next_code_id}: {contract_cls.name}")
            return self._next_code_id

    def codes(self) -> List[Dict[str, Any]]:
        return [
            {"code_id": code_id, "name": handler.name, "version": handler.version}
            for code_id, handler in sorted(self._codes.items())
        ]

    def contract_info(self, address: str) -> Dict[str, Any]:
        with self._lock:
            return self._instance(address).to_dict()

    def contracts(self, code_id: Optional[int] = None) -> List[str]:
        with self._lock:
            return [
                addr for addr, inst in self._contracts.items()
                if code_id is None or inst.code_id == code_id
            ]

    def _instance(self, address: str) -> ContractInstance:
        instance = self._contracts.get(address)
        if instance is None:
            raise NotFound(f"No contract at {address}")
        return instance

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def instantiate(self, sender: str, code_id: int, msg: Any,
                    funds: List[Coin] = None, label: str = "",
                    admin: Optional[str] = None) -> ExecutionResult:
        sender = self.api.addr_validate(sender)

        def run(tx: TransactionInfo) -> ExecutionResult:
            address, data, events = self._instantiate_contract(
                sender, code_id, msg, list(funds or []), label, admin, tx
            )
            return ExecutionResult(tx.hash, self.height, events, data, address)

        result = self._transact(run)
        log.info(f"Instantiated code {code_id} at {result.contract_address} ({label})")
        return result

    def execute(self, sender: str, contract: str, msg: Any,
                funds: List[Coin] = None) -> ExecutionResult:
        sender = self.api.addr_validate(sender)

        def run(tx: TransactionInfo) -> ExecutionResult:
            data, events = self._execute_contract(sender, contract, msg, list(funds or []), tx)
            return ExecutionResult(tx.hash, self.height, events, data)

        return self._transact(run)

    def query(self, contract: str, msg: Any) -> Any:
        with self._lock:
            return self._query(contract, msg)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _transact(self, run):
        with self._lock:
            snapshot = (copy.deepcopy(self._contracts), copy.deepcopy(self._balances),
                        self._next_contract)
            self._tx_count += 1
            tx = TransactionInfo(index=self._tx_count, hash=self._tx_hash())
            try:
                result = run(tx)
            except Exception:
                self._contracts, self._balances, self._next_contract = snapshot
                raise
            if self.config.auto_advance:
                self.advance_blocks(1)
            return result

    def _tx_hash(self) -> str:
        seed = f"{self.chain_id}:{self.height}:{self._tx_count}"
        return hashlib.sha256(seed.encode()).hexdigest().upper()

    def _env(self, address: str, tx: Optional[TransactionInfo]) -> Env:
        return Env(block=self.block(), contract=ContractInfo(address), transaction=tx)

    def _deps(self, instance: ContractInstance) -> Deps:
        return Deps(storage=instance.storage, api=self.api, querier=self._querier)

    def _query(self, contract: str, msg: Any) -> Any:
        instance = self._instance(contract)
        handler = self._codes[instance.code_id]
        result = handler.query(self._deps(instance), self._env(contract, None), to_wire(msg))
        if isinstance(result, BaseModel):
            return result.model_dump(mode="json")
        return copy.deepcopy(result)

    def _instantiate_contract(self, sender: str, code_id: int, msg: Any, funds: List[Coin],
                              label: str, admin: Optional[str],
                              tx: TransactionInfo) -> Tuple[str, Any, List[Event]]:
        handler = self._codes.get(code_id)
        if handler is None:
            raise NotFound(f"No code with id {code_id}")

        self._next_contract += 1
        address = f"contract{self._next_contract}"
        instance = ContractInstance(address, code_id, label, sender, admin)
        self._contracts[address] = instance
        self._transfer(sender, address, funds)

        response = handler.instantiate(
            self._deps(instance), self._env(address, tx),
            MessageInfo(sender, copy.deepcopy(funds)), to_wire(msg),
        )
        events = [Event("instantiate", [("_contract_address", address), ("code_id", str(code_id))])]
        data, more = self._handle_response(instance, handler, response, tx)
        return address, data, events + more

    def _execute_contract(self, sender: str, contract: str, msg: Any, funds: List[Coin],
                          tx: TransactionInfo) -> Tuple[Any, List[Event]]:
        instance = self._instance(contract)
        handler = self._codes[instance.code_id]
        self._transfer(sender, contract, funds)

        response = handler.execute(
            self._deps(instance), self._env(contract, tx),
            MessageInfo(sender, copy.deepcopy(funds)), to_wire(msg),
        )
        events = [Event("execute", [("_contract_address", contract)])]
        data, more = self._handle_response(instance, handler, response, tx)
        return data, events + more

    def _dispatch(self, sender: str, msg: Any,
                  tx: TransactionInfo) -> Tuple[Any, List[Event], Optional[str]]:
        if isinstance(msg, BankSend):
            self._transfer(sender, msg.to_address, msg.amount)
            amount = ",".join(f"{c.amount}{c.denom}" for c in msg.amount)
            event = Event("transfer", [("sender", sender), ("recipient", msg.to_address),
                                       ("amount", amount)])
            return None, [event], None
        if isinstance(msg, WasmExecute):
            data, events = self._execute_contract(sender, msg.contract_addr, msg.msg,
                                                  list(msg.funds), tx)
            return data, events, None
        if isinstance(msg, WasmInstantiate):
            address, data, events = self._instantiate_contract(
                sender, msg.code_id, msg.msg, list(msg.funds), msg.label, msg.admin, tx
            )
            return data, events, address
        raise TypeError(f"Unsupported message type: {type(msg).__name__}")

    def _handle_response(self, instance: ContractInstance, handler: Contract,
                         response: Response, tx: TransactionInfo) -> Tuple[Any, List[Event]]:
        events: List[Event] = []
        if response.attributes:
            events.append(Event("wasm", [("_contract_address", instance.address)]
                                + list(response.attributes)))
        data = response.data

        for sub in response.messages:
            sub_data, sub_events, sub_address = self._dispatch(instance.address, sub.msg, tx)
            events.extend(sub_events)
            if sub.reply_on != ReplyOn.SUCCESS:
                continue

            reply = Reply(id=sub.id, result=SubMsgResult(
                contract_address=sub_address, data=sub_data, events=sub_events,
            ))
            reply_response = handler.reply(self._deps(instance),
                                           self._env(instance.address, tx), reply)
            reply_data, reply_events = self._handle_response(instance, handler,
                                                             reply_response, tx)
            events.extend(reply_events)
            if reply_data is not None:
                data = reply_data

        return data, events
