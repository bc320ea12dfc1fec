"""
Core types and shared algorithms for the xswap SDK.

Both the escrow contracts and the reference contracts price and account
through the functions here, so there is exactly one decay formula and one
fill ledger in the codebase.
"""

import hashlib
import hmac
import re
import secrets
from enum import Enum
from dataclasses import dataclass
from typing import Optional, Dict, Any

from .errors import (
    InvalidDutchAuctionParams,
    InvalidPartialFillAmount,
    InsufficientFunds,
    InvalidSecretHash,
)


class EscrowStatus(str, Enum):
    """Escrow lifecycle states."""
    ACTIVE = "active"                      # Created, possibly funded
    PARTIALLY_FILLED = "partially_filled"  # Source only, some value released
    WITHDRAWN = "withdrawn"                # Released with the secret
    CANCELLED = "cancelled"                # Refunded after timelock

    @property
    def is_terminal(self) -> bool:
        return self in (EscrowStatus.WITHDRAWN, EscrowStatus.CANCELLED)


class EscrowType(str, Enum):
    """Which side of the swap an escrow sits on."""
    SOURCE = "source"            # Funded by maker
    DESTINATION = "destination"  # Funded by taker


class OrderStatus(str, Enum):
    """Resolver order states. Always a projection of escrow state."""
    ACTIVE = "active"
    MATCHED = "matched"      # Destination saw a confirmed source
    COMPLETED = "completed"  # Escrow withdrawn
    CANCELLED = "cancelled"  # Escrow cancelled
    EXPIRED = "expired"      # Timelock passed, escrow still open

    @property
    def is_final(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


# =============================================================================
# Secrets
# =============================================================================

SECRET_HASH_RE = re.compile(r"^[0-9a-f]{64}$")


def hash_secret(secret: str) -> str:
    """SHA256 of the secret's UTF-8 bytes, as lowercase hex."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def generate_secret() -> tuple[str, str]:
    """
    Generate a random secret and its hashlock.

    Returns:
        (secret, secret_hash)
    """
    secret = secrets.token_hex(32)
    return secret, hash_secret(secret)


def verify_secret(secret: str, secret_hash: str) -> bool:
    """Exact comparison of hash_secret(secret) against a stored hash."""
    return hmac.compare_digest(
        hash_secret(secret).encode("utf-8"),
        secret_hash.encode("utf-8"),
    )


def validate_secret_hash(secret_hash: str) -> str:
    if not SECRET_HASH_RE.match(secret_hash or ""):
        raise InvalidSecretHash()
    return secret_hash


# =============================================================================
# Linear price decay
# =============================================================================

UINT128_MAX = 2 ** 128 - 1


def linear_decay_price(initial_price: int, minimum_price: int,
                       decay_rate: int, elapsed: int) -> int:
    """
    Price of a linearly decaying auction after `elapsed` seconds.

    price = max(minimum, initial - decay_rate * elapsed)

    Negative elapsed counts as zero. A decrease that reaches the initial
    price, or that does not fit in 128 bits, yields the minimum.
    """
    elapsed = max(0, elapsed)
    decrease = decay_rate * elapsed
    if decrease > UINT128_MAX or decrease >= initial_price:
        return minimum_price
    return max(initial_price - decrease, minimum_price)


@dataclass
class DutchAuctionParams:
    """Decay parameters of an escrow or order."""
    initial_price: int
    minimum_price: int
    price_decay_rate: int   # per second
    start_time: int         # seconds

    def price_at(self, now: int) -> int:
        return linear_decay_price(
            self.initial_price, self.minimum_price,
            self.price_decay_rate, now - self.start_time,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initial_price": self.initial_price,
            "minimum_price": self.minimum_price,
            "price_decay_rate": self.price_decay_rate,
            "start_time": self.start_time,
        }


def validate_auction_params(initial_price: Optional[int],
                            minimum_price: Optional[int]) -> None:
    """Reject an inverted price range (initial must exceed minimum)."""
    if initial_price is not None and minimum_price is not None:
        if initial_price <= minimum_price:
            raise InvalidDutchAuctionParams(
                f"initial_price {initial_price} must exceed minimum_price {minimum_price}"
            )


def auction_from_fields(initial_price: Optional[int], price_decay_rate: Optional[int],
                        minimum_price: Optional[int],
                        start_time: int) -> Optional[DutchAuctionParams]:
    """Auction params when all three fields are present, else None."""
    if initial_price is None or price_decay_rate is None or minimum_price is None:
        return None
    return DutchAuctionParams(initial_price, minimum_price, price_decay_rate, start_time)


def current_price(initial_price: Optional[int], price_decay_rate: Optional[int],
                  minimum_price: Optional[int], start_time: int, now: int) -> int:
    """Decayed price, or the fixed initial price (zero if unset) without an auction."""
    auction = auction_from_fields(initial_price, price_decay_rate, minimum_price, start_time)
    if auction is None:
        return initial_price or 0
    return auction.price_at(now)


# =============================================================================
# Cumulative fill accounting
# =============================================================================

@dataclass
class FillLedger:
    """Running fill totals. filled + remaining == total at all times."""
    total: int
    filled: int = 0

    @property
    def remaining(self) -> int:
        return self.total - self.filled

    @property
    def is_complete(self) -> bool:
        return self.filled >= self.total

    def fill_percentage(self) -> int:
        if self.total == 0:
            return 0
        return self.filled * 100 // self.total

    def check(self, amount: int, minimum: Optional[int] = None) -> None:
        """Validate a fill without applying it."""
        if amount <= 0:
            raise InvalidPartialFillAmount("Fill amount must be positive")
        if amount > self.remaining:
            raise InsufficientFunds(
                f"Fill of {amount} exceeds remaining {self.remaining}"
            )
        if minimum is not None and amount < minimum:
            raise InvalidPartialFillAmount(
                f"Fill of {amount} below minimum {minimum}"
            )

    def apply(self, amount: int, minimum: Optional[int] = None) -> int:
        """Apply a fill. Returns the new remaining amount."""
        self.check(amount, minimum)
        self.filled += amount
        return self.remaining


# =============================================================================
# Constants
# =============================================================================

# Registry placeholder until the creation callback resolves an address
PENDING_ADDRESS = "pending"

# Pagination
DEFAULT_PAGE_LIMIT = 30
MAX_PAGE_LIMIT = 100


def page_limit(limit: Optional[int]) -> int:
    return min(limit or DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT)
