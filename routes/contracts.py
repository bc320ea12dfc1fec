"""
Chain and contract endpoints.

Serves a LocalChain over JSON for scripts, relayers and RemoteChain.
Extracted from server.py for modularity.
"""

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from xswap.chains import Coin, LocalChain
from xswap.errors import ContractError, NotFound

log = logging.getLogger(__name__)

router = APIRouter()

# ---------------------------------------------------------------------------
# Chain set by server.py at init
# ---------------------------------------------------------------------------

_chain: Optional[LocalChain] = None


def configure(chain: LocalChain):
    """Configure contracts module. Called once at startup by server.py."""
    global _chain
    _chain = chain


def _get_chain() -> LocalChain:
    if _chain is None:
        raise HTTPException(503, "Chain not configured")
    return _chain


def _call(fn, *args, **kwargs):
    """Run a chain call, mapping contract errors to HTTP errors."""
    try:
        return fn(*args, **kwargs)
    except NotFound as e:
        raise HTTPException(404, e.to_dict())
    except ContractError as e:
        log.info(f"Contract error: {e.code}: {e}")
        raise HTTPException(400, e.to_dict())


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class CoinModel(BaseModel):
    denom: str
    amount: int = Field(..., ge=0)

    def to_coin(self) -> Coin:
        return Coin(self.denom, self.amount)


class AdvanceRequest(BaseModel):
    seconds: int = Field(0, ge=0)
    blocks: int = Field(1, ge=0)


class InstantiateRequest(BaseModel):
    sender: str
    code_id: int
    msg: Any = None
    funds: List[CoinModel] = []
    label: str = ""
    admin: Optional[str] = None


class ExecuteRequest(BaseModel):
    sender: str
    msg: Any
    funds: List[CoinModel] = []


class QueryRequest(BaseModel):
    msg: Any


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("/api/block")
async def get_block():
    """Current block height and time."""
    return _get_chain().block().to_dict()


@router.post("/api/block/advance")
async def advance_block(req: AdvanceRequest):
    """Move the clock forward."""
    chain = _get_chain()
    if req.seconds:
        block = chain.advance_time(req.seconds, req.blocks)
    else:
        block = chain.advance_blocks(req.blocks)
    log.info(f"Advanced to height {block.height} (t={block.seconds})")
    return block.to_dict()


@router.post("/api/bank/{address}/mint")
async def mint(address: str, coin: CoinModel):
    """Faucet: credit native funds to an account."""
    chain = _get_chain()
    _call(chain.mint, address, [coin.to_coin()])
    return {"address": address, "balances": [c.to_dict() for c in chain.balances(address)]}


@router.get("/api/bank/{address}")
async def get_balances(address: str):
    """Native balances of an account."""
    return {"address": address, "balances": [c.to_dict() for c in _get_chain().balances(address)]}


@router.get("/api/codes")
async def get_codes():
    """Stored contract codes."""
    return {"codes": _get_chain().codes()}


@router.get("/api/contracts/{address}")
async def get_contract(address: str):
    """Contract metadata."""
    return _call(_get_chain().contract_info, address)


@router.post("/api/contracts/instantiate")
async def instantiate(req: InstantiateRequest):
    """Instantiate a stored code."""
    result = _call(
        _get_chain().instantiate, req.sender, req.code_id, req.msg,
        [c.to_coin() for c in req.funds], req.label, req.admin,
    )
    return result.to_dict()


@router.post("/api/contracts/{address}/execute")
async def execute(address: str, req: ExecuteRequest):
    """Execute a message against a contract."""
    result = _call(_get_chain().execute, req.sender, address, req.msg,
                   [c.to_coin() for c in req.funds])
    return result.to_dict()


@router.post("/api/contracts/{address}/query")
async def query(address: str, req: QueryRequest):
    """Run a read-only query."""
    return {"result": _call(_get_chain().query, address, req.msg)}
