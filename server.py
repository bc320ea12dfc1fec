#!/usr/bin/env python3
"""
xswap Node
In-process chain running the xswap escrow contracts, served over HTTP.

Used for development, scripts and relayer integration. Contract errors are
returned as HTTP 400 with {"error", "category", "message"}.

Endpoints:
  GET  /api/status                       - Health check, deployed stack
  GET  /api/block                        - Current block
  POST /api/block/advance                - Advance clock
  POST /api/bank/{address}/mint          - Faucet
  GET  /api/bank/{address}               - Balances
  GET  /api/codes                        - Stored codes
  GET  /api/contracts/{address}          - Contract metadata
  POST /api/contracts/instantiate        - Instantiate a code
  POST /api/contracts/{address}/execute  - Execute a message
  POST /api/contracts/{address}/query    - Query a contract

Environment:
  XSWAP_CHAIN_ID      chain id (default xswap-local-1)
  XSWAP_OWNER         owner of the factory and resolver (default owner)
  XSWAP_RELAYERS      comma-separated relayer allow-list (default relayer)
  XSWAP_BLOCK_TIME    seconds per block (default 6)
  XSWAP_AUTO_ADVANCE  new block after every transaction (default 0)
  XSWAP_RESTRICT_CONFIRM  only the resolver may confirm source escrows (default 0)
  PORT                listen port (default 8080)
"""

import os
import time
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from xswap import __version__
from xswap.chains import LocalChain, LocalChainConfig
from xswap.swap.deploy import Deployment, deploy_stack, store_codes

from routes import contracts as contract_routes

# =============================================================================
# LOGGING
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

CHAIN_ID = os.environ.get("XSWAP_CHAIN_ID", "xswap-local-1")
OWNER = os.environ.get("XSWAP_OWNER", "owner")
RELAYERS = [r.strip() for r in os.environ.get("XSWAP_RELAYERS", "relayer").split(",") if r.strip()]
BLOCK_TIME = int(os.environ.get("XSWAP_BLOCK_TIME", 6))
AUTO_ADVANCE = os.environ.get("XSWAP_AUTO_ADVANCE", "0") == "1"
RESTRICT_CONFIRM = os.environ.get("XSWAP_RESTRICT_CONFIRM", "0") == "1"

# =============================================================================
# CHAIN
# =============================================================================

chain = LocalChain(LocalChainConfig(
    chain_id=CHAIN_ID,
    start_time=int(time.time()),
    block_time=BLOCK_TIME,
    auto_advance=AUTO_ADVANCE,
))
CODE_IDS = store_codes(chain)
deployment: Optional[Deployment] = None

contract_routes.configure(chain)

# =============================================================================
# APP SETUP
# =============================================================================

app = FastAPI(
    title="xswap",
    description="Cross-chain HTLC atomic swap node",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(contract_routes.router)

# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/api/status")
async def get_status():
    """Health check."""
    block = chain.block()
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": int(time.time()),
        "chain_id": block.chain_id,
        "height": block.height,
        "block_time": block.seconds,
        "codes": CODE_IDS,
        "deployment": deployment.to_dict() if deployment else None,
    }


@app.on_event("startup")
async def startup_event():
    """Deploy the factory and resolver once."""
    global deployment
    if deployment is None:
        deployment = deploy_stack(chain, OWNER, RELAYERS, CODE_IDS,
                                  restrict_source_confirmation=RESTRICT_CONFIRM)
        log.info(f"Factory {deployment.factory}, resolver {deployment.resolver}")


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8080))
    log.info(f"Starting xswap node {CHAIN_ID} on port {port}")
    log.info(f"Docs: http://0.0.0.0:{port}/docs")
    uvicorn.run(app, host="0.0.0.0", port=port)
