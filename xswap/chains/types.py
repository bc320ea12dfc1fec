"""
Host types shared by contracts and chain runtimes.

Env/MessageInfo describe an inbound call, BankSend/WasmExecute/WasmInstantiate
are outbound effects, and Response collects what a handler returns.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel

NANOS_PER_SECOND = 1_000_000_000


@dataclass
class Coin:
    denom: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {"denom": self.denom, "amount": self.amount}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Coin":
        return cls(denom=data["denom"], amount=int(data["amount"]))


def coins(amount: int, denom: str) -> List[Coin]:
    return [Coin(denom, amount)]


@dataclass
class BlockInfo:
    height: int
    time_ns: int
    chain_id: str

    @property
    def seconds(self) -> int:
        return self.time_ns // NANOS_PER_SECOND

    def to_dict(self) -> Dict[str, Any]:
        return {
            "height": self.height,
            "time_ns": self.time_ns,
            "seconds": self.seconds,
            "chain_id": self.chain_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlockInfo":
        return cls(height=data["height"], time_ns=data["time_ns"], chain_id=data["chain_id"])


@dataclass
class TransactionInfo:
    index: int
    hash: str


@dataclass
class ContractInfo:
    address: str


@dataclass
class Env:
    block: BlockInfo
    contract: ContractInfo
    transaction: Optional[TransactionInfo] = None


@dataclass
class MessageInfo:
    sender: str
    funds: List[Coin] = field(default_factory=list)


# =============================================================================
# Outbound messages
# =============================================================================

@dataclass
class BankSend:
    to_address: str
    amount: List[Coin]


@dataclass
class WasmExecute:
    contract_addr: str
    msg: Union[BaseModel, Dict[str, Any]]
    funds: List[Coin] = field(default_factory=list)


@dataclass
class WasmInstantiate:
    code_id: int
    msg: Union[BaseModel, Dict[str, Any]]
    label: str
    funds: List[Coin] = field(default_factory=list)
    admin: Optional[str] = None


CosmosMsg = Union[BankSend, WasmExecute, WasmInstantiate]


class ReplyOn(Enum):
    NEVER = "never"
    SUCCESS = "success"


@dataclass
class SubMsg:
    msg: CosmosMsg
    id: int = 0
    reply_on: ReplyOn = ReplyOn.NEVER

    @classmethod
    def reply_on_success(cls, msg: CosmosMsg, reply_id: int) -> "SubMsg":
        return cls(msg=msg, id=reply_id, reply_on=ReplyOn.SUCCESS)


@dataclass
class Event:
    type: str
    attributes: List[Tuple[str, str]] = field(default_factory=list)

    def get(self, key: str) -> Optional[str]:
        for k, v in self.attributes:
            if k == key:
                return v
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "attributes": [[k, v] for k, v in self.attributes]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        return cls(type=data["type"], attributes=[(k, v) for k, v in data["attributes"]])


@dataclass
class SubMsgResult:
    contract_address: Optional[str] = None
    data: Any = None
    events: List[Event] = field(default_factory=list)


@dataclass
class Reply:
    id: int
    result: SubMsgResult


class Response:
    """Handler result: outbound messages, attributes and optional data."""

    def __init__(self):
        self.messages: List[SubMsg] = []
        self.attributes: List[Tuple[str, str]] = []
        self.data: Any = None

    def add_message(self, msg: CosmosMsg) -> "Response":
        self.messages.append(SubMsg(msg))
        return self

    def add_submessage(self, sub: SubMsg) -> "Response":
        self.messages.append(sub)
        return self

    def add_attribute(self, key: str, value: Any) -> "Response":
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, bool):
            value = "true" if value else "false"
        self.attributes.append((key, "" if value is None else str(value)))
        return self

    def set_data(self, data: Any) -> "Response":
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")
        self.data = data
        return self

    def attribute(self, key: str) -> Optional[str]:
        for k, v in self.attributes:
            if k == key:
                return v
        return None


@dataclass
class Deps:
    storage: Any   # MemoryStorage
    api: Any       # Api
    querier: Any   # Querier
