"""
Host runtime: storage, message types, the local chain and its HTTP client.
"""

from .api import Api
from .codec import Msg, MessageSet, Uint128, Timestamp, parse_model, to_wire
from .contract import Contract
from .local import LocalChain, LocalChainConfig, ExecutionResult
from .remote import RemoteChain, RemoteChainConfig
from .storage import Item, Map, MemoryStorage
from .types import (
    BankSend, BlockInfo, Coin, Deps, Env, Event, MessageInfo, Reply, ReplyOn,
    Response, SubMsg, SubMsgResult, WasmExecute, WasmInstantiate, coins,
)
