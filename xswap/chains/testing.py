"""
Helpers for calling contract handlers directly in unit tests.
"""

from typing import Any, Callable, Dict, List, Optional

from .api import Api
from .storage import MemoryStorage
from .types import (
    BlockInfo, Coin, ContractInfo, Deps, Env, MessageInfo, TransactionInfo,
    NANOS_PER_SECOND,
)

MOCK_CONTRACT_ADDR = "cosmos2contract"
MOCK_CHAIN_ID = "xswap-testing"
MOCK_START_TIME = 1_700_000_000


class MockQuerier:
    """Answers wasm queries from a handler table: {contract_addr: fn(msg) -> result}."""

    def __init__(self, handlers: Optional[Dict[str, Callable[[Any], Any]]] = None):
        self.handlers = handlers or {}
        self.balances: Dict[str, Dict[str, int]] = {}

    def query_wasm_smart(self, contract_addr: str, msg: Any) -> Any:
        handler = self.handlers.get(contract_addr)
        if handler is None:
            raise KeyError(f"No mock handler for {contract_addr}")
        return handler(msg)

    def query_balance(self, address: str, denom: str) -> int:
        return self.balances.get(address, {}).get(denom, 0)


def mock_dependencies(querier: Optional[MockQuerier] = None) -> Deps:
    return Deps(storage=MemoryStorage(), api=Api(), querier=querier or MockQuerier())


def mock_env(time: int = MOCK_START_TIME, height: int = 12345,
             contract: str = MOCK_CONTRACT_ADDR, tx_hash: str = "MOCKTX") -> Env:
    return Env(
        block=BlockInfo(height=height, time_ns=time * NANOS_PER_SECOND, chain_id=MOCK_CHAIN_ID),
        contract=ContractInfo(contract),
        transaction=TransactionInfo(index=0, hash=tx_hash),
    )


def mock_info(sender: str, funds: List[Coin] = None) -> MessageInfo:
    return MessageInfo(sender=sender, funds=list(funds or []))
