#!/usr/bin/env python3
"""
Deploy the escrow factory and resolver to a running xswap node.

Codes are already stored by the node; they are looked up by name.

Usage:
    python scripts/deploy_stack.py --url http://127.0.0.1:8080 \\
        --owner owner --relayer relayer --output deployment.json
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from xswap.chains import RemoteChain, RemoteChainConfig
from xswap.errors import ContractError
from xswap.swap.deploy import deploy_stack

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="xswap deployment: instantiate factory and resolver on a node"
    )
    parser.add_argument(
        "--url", type=str, default=os.environ.get("XSWAP_NODE_URL", "http://127.0.0.1:8080"),
        help="Node base URL (env XSWAP_NODE_URL)"
    )
    parser.add_argument(
        "--owner", type=str, required=True,
        help="Owner and deploying account"
    )
    parser.add_argument(
        "--relayer", type=str, action="append", default=[],
        help="Authorized relayer (repeatable)"
    )
    parser.add_argument(
        "--restrict-confirmation", action="store_true",
        help="Destination escrows only accept confirmations through the resolver"
    )
    parser.add_argument(
        "--output", type=str,
        help="Write the deployment as JSON to this file"
    )
    args = parser.parse_args()

    chain = RemoteChain(RemoteChainConfig(base_url=args.url))
    try:
        status = chain.status()
        log.info(f"Connected to {status['chain_id']} at height {status['height']}")

        deployment = deploy_stack(chain, args.owner, args.relayer,
                                  restrict_source_confirmation=args.restrict_confirmation)
    except ContractError as e:
        log.error(f"Deployment failed: {e.code}: {e}")
        sys.exit(1)
    finally:
        chain.close()

    print(json.dumps(deployment.to_dict(), indent=2))
    if args.output:
        Path(args.output).write_text(json.dumps(deployment.to_dict(), indent=2))
        log.info(f"Saved deployment to {args.output}")


if __name__ == "__main__":
    main()
