"""
Error taxonomy for xswap contracts and the host runtime.

Every contract failure is a ContractError. The category tells callers which
class of failure happened:

    unauthorized     caller outside the required role or allow-list
    invalid_state    operation against the wrong status
    invalid_input    malformed or inconsistent request data
    timing           operation attempted too early

A failing call aborts the whole transaction; no state or messages survive.
"""

from typing import Any, Dict, Optional, Type


class ContractError(Exception):
    """Base class for all contract errors."""
    category = "contract_error"
    message = "Contract error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "category": self.category,
            "message": str(self),
        }


# =============================================================================
# Categories
# =============================================================================

class Unauthorized(ContractError):
    category = "unauthorized"
    message = "Unauthorized"


class InvalidState(ContractError):
    category = "invalid_state"
    message = "Invalid state"


class InvalidInput(ContractError):
    category = "invalid_input"
    message = "Invalid input"


class TimingViolation(ContractError):
    category = "timing"
    message = "Timing violation"


# =============================================================================
# Unauthorized
# =============================================================================

class InvalidRelayer(Unauthorized):
    message = "Caller is not an authorized relayer"


# =============================================================================
# Invalid state
# =============================================================================

class AlreadyWithdrawn(InvalidState):
    message = "Escrow already withdrawn"


class AlreadyCancelled(InvalidState):
    message = "Escrow already cancelled"


class AlreadyDeposited(InvalidState):
    message = "Escrow already funded"


class NotFunded(InvalidState):
    message = "Escrow has not been funded"


class EscrowPending(InvalidState):
    message = "Escrow address not resolved yet"


class InsufficientBalance(InvalidState):
    message = "Insufficient balance"


class AuctionNotActive(InvalidState):
    message = "Auction is not active"


class OrderNotActive(InvalidState):
    message = "Order is not active"


# =============================================================================
# Invalid input
# =============================================================================

class InvalidSecret(InvalidInput):
    message = "Invalid secret"


class InvalidSecretHash(InvalidInput):
    message = "Secret hash must be 64 lowercase hex characters"


class InvalidFunds(InvalidInput):
    message = "Exactly one coin with a non-zero amount is required"


class InvalidAmount(InvalidInput):
    message = "Invalid amount"


class InsufficientFunds(InvalidInput):
    message = "Insufficient funds"


class InvalidPartialFillAmount(InvalidInput):
    message = "Invalid partial fill amount"


class PartialFillNotAllowed(InvalidInput):
    message = "Partial fill not allowed"


class InvalidDutchAuctionParams(InvalidInput):
    message = "Invalid Dutch auction parameters"


class EscrowAlreadyExists(InvalidInput):
    message = "Escrow already exists"


class InvalidAddress(InvalidInput):
    message = "Invalid address"


class InvalidOrderAction(InvalidInput):
    message = "Action not valid for this order"


class InvalidMessage(InvalidInput):
    message = "Malformed message"


class UnknownMessage(InvalidInput):
    message = "Unknown message"


class UnknownReply(InvalidInput):
    message = "Unknown reply id"


class NotFound(InvalidInput):
    message = "Not found"


class BidTooLow(InvalidInput):
    message = "Bid below current price"


class OrderAlreadyExists(InvalidInput):
    message = "Order already exists"


class AuctionAlreadyExists(InvalidInput):
    message = "Auction already exists"


# =============================================================================
# Timing
# =============================================================================

class TimelockNotExpired(TimingViolation):
    message = "Timelock has not expired"


class SourceEscrowNotConfirmed(TimingViolation):
    message = "Source escrow not confirmed"


class AuctionEnded(TimingViolation):
    message = "Auction has ended"


class AuctionNotEnded(TimingViolation):
    message = "Auction has not ended"


# =============================================================================
# Wire helpers
# =============================================================================

def _error_classes(base: Type[ContractError]) -> Dict[str, Type[ContractError]]:
    found = {base.__name__: base}
    for sub in base.__subclasses__():
        found.update(_error_classes(sub))
    return found


def error_from_dict(payload: Dict[str, Any]) -> ContractError:
    """Rebuild a typed error from its to_dict() form."""
    classes = _error_classes(ContractError)
    cls = classes.get(payload.get("error", ""), ContractError)
    return cls(payload.get("message"))
