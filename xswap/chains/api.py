"""
Identity validation.

Two address families are accepted:
- host identities: lowercase, start with a letter, 3-64 of [a-z0-9_]
- EVM addresses: 0x-prefixed, normalized to checksum form
"""

import re

from web3 import Web3

from ..errors import InvalidAddress

HOST_ADDRESS_RE = re.compile(r"^[a-z][a-z0-9_]{2,63}$")


class Api:
    """Address validation and normalization."""

    def addr_validate(self, address: str) -> str:
        if not isinstance(address, str) or not address:
            raise InvalidAddress("Empty address")

        if address.startswith("0x"):
            if not Web3.is_address(address):
                raise InvalidAddress(f"Invalid EVM address: {address}")
            return Web3.to_checksum_address(address)

        if not HOST_ADDRESS_RE.match(address):
            raise InvalidAddress(f"Invalid address: {address}")
        return address
