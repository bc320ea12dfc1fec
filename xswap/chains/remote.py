"""
HTTP client for an xswap node (server.py).

Mirrors the LocalChain surface so the relayer and scripts can drive either.
Contract errors come back as typed ContractError subclasses.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .codec import to_wire
from .local import ExecutionResult
from .types import BlockInfo, Coin
from ..errors import ContractError, NotFound, error_from_dict

log = logging.getLogger(__name__)


@dataclass
class RemoteChainConfig:
    """Remote node configuration."""
    base_url: str = "http://127.0.0.1:8080"
    timeout: float = 10.0


class RemoteChain:
    """Chain client over the node's JSON API."""

    def __init__(self, config: RemoteChainConfig = None, client: Optional[httpx.Client] = None):
        self.config = config or RemoteChainConfig()
        self.client = client or httpx.Client(base_url=self.config.base_url,
                                             timeout=self.config.timeout)

    def close(self):
        self.client.close()

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        response = self.client.request(method, path, json=payload)
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = None
            if isinstance(detail, dict) and "error" in detail:
                raise error_from_dict(detail)
            if response.status_code == 404:
                raise NotFound(str(detail or path))
            log.error(f"Node error {response.status_code} on {method} {path}: {detail}")
            raise ContractError(f"HTTP {response.status_code}: {detail}")
        return response.json()

    # -------------------------------------------------------------------------
    # Node
    # -------------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        return self._request("GET", "/api/status")

    def block(self) -> BlockInfo:
        return BlockInfo.from_dict(self._request("GET", "/api/block"))

    def advance_time(self, seconds: int, blocks: int = 1) -> BlockInfo:
        data = self._request("POST", "/api/block/advance", {"seconds": seconds, "blocks": blocks})
        return BlockInfo.from_dict(data)

    def codes(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/codes")["codes"]

    # -------------------------------------------------------------------------
    # Bank
    # -------------------------------------------------------------------------

    def mint(self, address: str, funds: List[Coin]):
        for coin in funds:
            self._request("POST", f"/api/bank/{address}/mint", coin.to_dict())

    def balance(self, address: str, denom: str) -> int:
        data = self._request("GET", f"/api/bank/{address}")
        for coin in data["balances"]:
            if coin["denom"] == denom:
                return int(coin["amount"])
        return 0

    # -------------------------------------------------------------------------
    # Contracts
    # -------------------------------------------------------------------------

    def instantiate(self, sender: str, code_id: int, msg: Any, funds: List[Coin] = None,
                    label: str = "", admin: Optional[str] = None) -> ExecutionResult:
        data = self._request("POST", "/api/contracts/instantiate", {
            "sender": sender,
            "code_id": code_id,
            "msg": to_wire(msg),
            "funds": [c.to_dict() for c in funds or []],
            "label": label,
            "admin": admin,
        })
        return ExecutionResult.from_dict(data)

    def execute(self, sender: str, contract: str, msg: Any,
                funds: List[Coin] = None) -> ExecutionResult:
        data = self._request("POST", f"/api/contracts/{contract}/execute", {
            "sender": sender,
            "msg": to_wire(msg),
            "funds": [c.to_dict() for c in funds or []],
        })
        return ExecutionResult.from_dict(data)

    def query(self, contract: str, msg: Any) -> Any:
        data = self._request("POST", f"/api/contracts/{contract}/query", {"msg": to_wire(msg)})
        return data["result"]
