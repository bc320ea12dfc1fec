"""
Authorization policy for factory and resolver handlers.

Loaded from contract config once per call and passed into each handler.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

from ..errors import InvalidRelayer, Unauthorized

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthPolicy:
    owner: str
    relayers: Tuple[str, ...] = ()

    def is_owner(self, caller: str) -> bool:
        return caller == self.owner

    def is_relayer(self, caller: str) -> bool:
        return caller in self.relayers

    def require_owner(self, caller: str):
        if not self.is_owner(caller):
            log.warning(f"Rejected owner-only call from {caller}")
            raise Unauthorized("Only the owner can do this")

    def require_operator(self, caller: str):
        """Owner or any authorized relayer."""
        if not (self.is_owner(caller) or self.is_relayer(caller)):
            log.warning(f"Rejected operator call from {caller}")
            raise Unauthorized("Caller is neither owner nor relayer")

    def require_relayer(self, caller: str):
        """Relayers only. The owner is not implicitly a relayer."""
        if not self.is_relayer(caller):
            log.warning(f"Rejected relayer call from {caller}")
            raise InvalidRelayer()
