"""
Source escrow contract.

The maker locks value here against a secret hash. Anyone holding the secret
can release it (to the taker when one is set, otherwise to themselves), in
one withdraw or in several partial fills. After the timelock the maker can
cancel and take back whatever remains.

States:
    ACTIVE -> PARTIALLY_FILLED -> ... -> WITHDRAWN
    ACTIVE -> WITHDRAWN
    ACTIVE | PARTIALLY_FILLED -> CANCELLED
"""

import logging
from typing import Any

from ..chains.codec import parse_model
from ..chains.contract import Contract
from ..chains.token import Receive
from ..chains.types import Deps, Env, MessageInfo, Response
from ..core import EscrowStatus, validate_auction_params, validate_secret_hash
from ..errors import PartialFillNotAllowed, Unauthorized, UnknownMessage
from . import base
from .msg import (
    SOURCE_EXECUTE, SOURCE_QUERY, Cancel, CurrentPrice, Deposit, Escrow,
    FillStatusResponse, PartialWithdraw, PriceResponse, SourceEscrowResponse,
    SourceInstantiate, UpdatePrice, Withdraw,
)
from .state import SOURCE_ESCROW, SourceEscrowInfo

log = logging.getLogger(__name__)


class SourceEscrow(Contract):
    name = "xswap-source-escrow"

    def instantiate(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = parse_model(SourceInstantiate, msg)
        maker = deps.api.addr_validate(msg.maker)
        taker = deps.api.addr_validate(msg.taker) if msg.taker else None
        validate_secret_hash(msg.secret_hash)
        validate_auction_params(msg.initial_price, msg.minimum_price)

        escrow = SourceEscrowInfo(
            maker=maker,
            taker=taker,
            secret_hash=msg.secret_hash,
            timelock=msg.timelock,
            dst_chain_id=msg.dst_chain_id,
            dst_asset=msg.dst_asset,
            dst_amount=msg.dst_amount,
            created_at=env.block.seconds,
            initial_price=msg.initial_price,
            price_decay_rate=msg.price_decay_rate,
            minimum_price=msg.minimum_price,
            allow_partial_fill=msg.allow_partial_fill,
            minimum_fill_amount=msg.minimum_fill_amount,
        )
        SOURCE_ESCROW.save(deps.storage, escrow)
        log.info(f"Source escrow {env.contract.address} created by {maker}, timelock {msg.timelock}")

        return (Response()
                .add_attribute("method", "instantiate")
                .add_attribute("maker", maker)
                .add_attribute("timelock", msg.timelock))

    def execute(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = SOURCE_EXECUTE.parse(msg)
        if isinstance(msg, Deposit):
            return self._deposit(deps, env, info)
        if isinstance(msg, Receive):
            return self._receive(deps, env, info, msg)
        if isinstance(msg, Withdraw):
            return self._withdraw(deps, env, info, msg.secret)
        if isinstance(msg, PartialWithdraw):
            return self._partial_withdraw(deps, env, info, msg.secret, msg.amount)
        if isinstance(msg, Cancel):
            return self._cancel(deps, env, info)
        if isinstance(msg, UpdatePrice):
            return self._update_price(deps, env)
        raise UnknownMessage(f"Unknown message: {msg.TAG}")

    # =========================================================================
    # Funding
    # =========================================================================

    def _deposit(self, deps: Deps, env: Env, info: MessageInfo) -> Response:
        escrow = SOURCE_ESCROW.load(deps.storage)
        base.prepare_deposit(escrow)
        if info.sender != escrow.maker:
            raise Unauthorized("Only the maker can fund a source escrow")

        coin = base.native_deposit(info.funds)
        self._fund(escrow, env, coin.amount, denom=coin.denom)
        SOURCE_ESCROW.save(deps.storage, escrow)
        log.info(f"Source escrow {env.contract.address} funded: {coin.amount}{coin.denom}")

        return (Response()
                .add_attribute("method", "deposit")
                .add_attribute("amount", coin.amount)
                .add_attribute("denom", coin.denom))

    def _receive(self, deps: Deps, env: Env, info: MessageInfo, hook: Receive) -> Response:
        escrow = SOURCE_ESCROW.load(deps.storage)
        base.prepare_deposit(escrow)
        sender, amount = base.token_deposit(deps, info, hook)
        if sender != escrow.maker:
            raise Unauthorized("Only the maker can fund a source escrow")

        self._fund(escrow, env, amount, token_contract=info.sender)
        SOURCE_ESCROW.save(deps.storage, escrow)
        log.info(f"Source escrow {env.contract.address} funded: {amount} of token {info.sender}")

        return (Response()
                .add_attribute("method", "receive_deposit")
                .add_attribute("amount", amount)
                .add_attribute("from", sender))

    def _fund(self, escrow: SourceEscrowInfo, env: Env, amount: int, denom=None, token_contract=None):
        base.record_deposit(escrow, amount, denom=denom, token_contract=token_contract)
        escrow.filled_amount = 0
        escrow.remaining_amount = amount
        escrow.funded_height = env.block.height
        escrow.funded_tx_hash = env.transaction.hash if env.transaction else None

    # =========================================================================
    # Release
    # =========================================================================

    def _withdraw(self, deps: Deps, env: Env, info: MessageInfo, secret: str) -> Response:
        escrow = SOURCE_ESCROW.load(deps.storage)
        base.ensure_open(escrow.status)
        base.ensure_funded(escrow)
        base.ensure_secret(secret, escrow.secret_hash)

        amount = escrow.remaining_amount if escrow.allow_partial_fill else escrow.deposited_amount
        recipient = escrow.taker or info.sender

        escrow.filled_amount = escrow.deposited_amount
        escrow.remaining_amount = 0
        escrow.status = EscrowStatus.WITHDRAWN
        SOURCE_ESCROW.save(deps.storage, escrow)
        log.info(f"Source escrow {env.contract.address} withdrawn: {amount} to {recipient}")

        response = Response()
        transfer = base.payout(escrow, recipient, amount)
        if transfer:
            response.add_message(transfer)
        return (response
                .add_attribute("method", "withdraw")
                .add_attribute("recipient", recipient)
                .add_attribute("amount", amount))

    def _partial_withdraw(self, deps: Deps, env: Env, info: MessageInfo,
                          secret: str, amount: int) -> Response:
        escrow = SOURCE_ESCROW.load(deps.storage)
        if not escrow.allow_partial_fill:
            raise PartialFillNotAllowed()
        base.ensure_open(escrow.status)
        base.ensure_funded(escrow)

        ledger = escrow.ledger()
        ledger.check(amount, escrow.minimum_fill_amount)
        base.ensure_secret(secret, escrow.secret_hash)

        ledger.apply(amount, escrow.minimum_fill_amount)
        escrow.sync_ledger(ledger)
        escrow.status = EscrowStatus.WITHDRAWN if ledger.is_complete else EscrowStatus.PARTIALLY_FILLED
        SOURCE_ESCROW.save(deps.storage, escrow)

        recipient = escrow.taker or info.sender
        log.info(f"Source escrow {env.contract.address} partial fill: {amount} to {recipient}, "
                 f"remaining {escrow.remaining_amount}")

        response = Response()
        transfer = base.payout(escrow, recipient, amount)
        if transfer:
            response.add_message(transfer)
        return (response
                .add_attribute("method", "partial_withdraw")
                .add_attribute("recipient", recipient)
                .add_attribute("amount", amount)
                .add_attribute("remaining", escrow.remaining_amount))

    def _cancel(self, deps: Deps, env: Env, info: MessageInfo) -> Response:
        escrow = SOURCE_ESCROW.load(deps.storage)
        base.ensure_open(escrow.status)
        if info.sender != escrow.maker:
            raise Unauthorized("Only the maker can cancel a source escrow")
        base.ensure_timelock_expired(env.block.seconds, escrow.timelock)

        amount = escrow.remaining_amount
        escrow.status = EscrowStatus.CANCELLED
        SOURCE_ESCROW.save(deps.storage, escrow)
        log.info(f"Source escrow {env.contract.address} cancelled, returning {amount}")

        response = Response()
        refund = base.payout(escrow, escrow.maker, amount)
        if refund:
            response.add_message(refund)
        return (response
                .add_attribute("method", "cancel")
                .add_attribute("amount", amount))

    def _update_price(self, deps: Deps, env: Env) -> Response:
        escrow = SOURCE_ESCROW.load(deps.storage)
        return (Response()
                .add_attribute("method", "update_price")
                .add_attribute("current_price", escrow.price_at(env.block.seconds)))

    # =========================================================================
    # Queries
    # =========================================================================

    def query(self, deps: Deps, env: Env, msg: Any) -> Any:
        msg = SOURCE_QUERY.parse(msg)
        escrow = SOURCE_ESCROW.load(deps.storage)

        if isinstance(msg, Escrow):
            return SourceEscrowResponse(**escrow.to_dict())

        if isinstance(msg, CurrentPrice):
            now = env.block.seconds
            return PriceResponse(
                current_price=escrow.price_at(now),
                initial_price=escrow.initial_price,
                minimum_price=escrow.minimum_price,
                price_decay_rate=escrow.price_decay_rate,
                time_elapsed=max(0, now - escrow.created_at),
            )

        ledger = escrow.ledger()
        return FillStatusResponse(
            total_amount=escrow.deposited_amount,
            filled_amount=escrow.filled_amount,
            remaining_amount=escrow.remaining_amount,
            is_fully_filled=escrow.funded and ledger.is_complete,
            allow_partial_fill=escrow.allow_partial_fill,
            fill_percentage=ledger.fill_percentage(),
        )
