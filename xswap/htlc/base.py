"""
Escrow engine helpers shared by the source and destination escrows.

Both escrow kinds hold value in one of two channels, a native denom or a
token contract, and pay out through the same channel they were funded with.
"""

import logging
from typing import List, Optional, Tuple

from ..chains.token import Receive, Transfer
from ..chains.types import BankSend, Coin, CosmosMsg, Deps, MessageInfo, WasmExecute
from ..core import EscrowStatus, verify_secret
from ..errors import (
    AlreadyCancelled, AlreadyDeposited, AlreadyWithdrawn, InvalidFunds,
    InvalidSecret, NotFunded, TimelockNotExpired,
)
from .msg import RECEIVE

log = logging.getLogger(__name__)


def ensure_open(status: EscrowStatus):
    """Reject any transition out of a terminal state."""
    if status == EscrowStatus.WITHDRAWN:
        raise AlreadyWithdrawn()
    if status == EscrowStatus.CANCELLED:
        raise AlreadyCancelled()


def ensure_funded(escrow):
    if not escrow.funded:
        raise NotFunded()


def ensure_secret(secret: str, secret_hash: str):
    if not verify_secret(secret, secret_hash):
        raise InvalidSecret()


def ensure_timelock_expired(now: int, timelock: int):
    # now == timelock is already expired
    if now < timelock:
        raise TimelockNotExpired(f"Timelock expires at {timelock}, now {now}")


def native_deposit(funds: List[Coin]) -> Coin:
    """The single non-zero coin attached to a deposit."""
    if len(funds) != 1 or funds[0].amount == 0:
        raise InvalidFunds()
    return funds[0]


def token_deposit(deps: Deps, info: MessageInfo, hook: Receive) -> Tuple[str, int]:
    """Validate a token Receive hook. Returns (depositor, amount)."""
    RECEIVE.parse(hook.msg)
    if hook.amount == 0:
        raise InvalidFunds("Token deposit amount must be positive")
    return deps.api.addr_validate(hook.sender), hook.amount


def prepare_deposit(escrow):
    """Checks common to every deposit path."""
    ensure_open(escrow.status)
    if escrow.funded:
        raise AlreadyDeposited()


def record_deposit(escrow, amount: int, denom: Optional[str] = None,
                   token_contract: Optional[str] = None):
    escrow.deposited_amount = amount
    escrow.deposited_denom = denom
    escrow.token_contract = token_contract
    escrow.funded = True


def payout(escrow, recipient: str, amount: int) -> Optional[CosmosMsg]:
    """Transfer out through the funding channel. None when nothing to send."""
    if amount == 0:
        return None
    if escrow.token_contract:
        return WasmExecute(escrow.token_contract, Transfer(recipient=recipient, amount=amount))
    if escrow.deposited_denom:
        return BankSend(to_address=recipient, amount=[Coin(escrow.deposited_denom, amount)])
    return None
