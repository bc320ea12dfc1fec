"""
Destination escrow contract.

The taker locks the counter-asset here. The maker can claim it with the
secret, but only after a relayer has attested that the source escrow exists
(confirm_source_escrow). After the timelock the taker can cancel.

Confirmation is open to any caller unless the escrow was created with an
authorized_confirmer.
"""

import logging
from typing import Any

from ..chains.codec import parse_model
from ..chains.contract import Contract
from ..chains.token import Receive
from ..chains.types import Deps, Env, MessageInfo, Response
from ..core import EscrowStatus, validate_secret_hash
from ..errors import InvalidAmount, SourceEscrowNotConfirmed, Unauthorized, UnknownMessage
from . import base
from .msg import (
    DESTINATION_EXECUTE, DESTINATION_QUERY, Cancel, ConfirmSourceEscrow, Deposit,
    DestinationEscrowResponse, DestinationInstantiate, Withdraw,
)
from .state import DESTINATION_ESCROW, DestinationEscrowInfo

log = logging.getLogger(__name__)


class DestinationEscrow(Contract):
    name = "xswap-destination-escrow"

    def instantiate(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = parse_model(DestinationInstantiate, msg)
        taker = deps.api.addr_validate(msg.taker)
        maker = deps.api.addr_validate(msg.maker)
        confirmer = (deps.api.addr_validate(msg.authorized_confirmer)
                     if msg.authorized_confirmer else None)
        validate_secret_hash(msg.secret_hash)

        escrow = DestinationEscrowInfo(
            taker=taker,
            maker=maker,
            secret_hash=msg.secret_hash,
            timelock=msg.timelock,
            src_chain_id=msg.src_chain_id,
            src_escrow_address=msg.src_escrow_address,
            expected_amount=msg.expected_amount,
            created_at=env.block.seconds,
            authorized_confirmer=confirmer,
        )
        DESTINATION_ESCROW.save(deps.storage, escrow)
        log.info(f"Destination escrow {env.contract.address} created for maker {maker}")

        return (Response()
                .add_attribute("method", "instantiate")
                .add_attribute("taker", taker)
                .add_attribute("maker", maker)
                .add_attribute("timelock", msg.timelock))

    def execute(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        msg = DESTINATION_EXECUTE.parse(msg)
        if isinstance(msg, Deposit):
            return self._deposit(deps, env, info)
        if isinstance(msg, Receive):
            return self._receive(deps, env, info, msg)
        if isinstance(msg, Withdraw):
            return self._withdraw(deps, env, info, msg.secret)
        if isinstance(msg, Cancel):
            return self._cancel(deps, env, info)
        if isinstance(msg, ConfirmSourceEscrow):
            return self._confirm_source(deps, env, info, msg.src_tx_hash, msg.block_height)
        raise UnknownMessage(f"Unknown message: {msg.TAG}")

    def _deposit(self, deps: Deps, env: Env, info: MessageInfo) -> Response:
        escrow = DESTINATION_ESCROW.load(deps.storage)
        base.prepare_deposit(escrow)
        if info.sender != escrow.taker:
            raise Unauthorized("Only the taker can fund a destination escrow")

        coin = base.native_deposit(info.funds)
        if coin.amount != escrow.expected_amount:
            raise InvalidAmount(f"Expected {escrow.expected_amount}, got {coin.amount}")

        base.record_deposit(escrow, coin.amount, denom=coin.denom)
        DESTINATION_ESCROW.save(deps.storage, escrow)
        log.info(f"Destination escrow {env.contract.address} funded: {coin.amount}{coin.denom}")

        return (Response()
                .add_attribute("method", "deposit")
                .add_attribute("amount", coin.amount)
                .add_attribute("denom", coin.denom))

    def _receive(self, deps: Deps, env: Env, info: MessageInfo, hook: Receive) -> Response:
        escrow = DESTINATION_ESCROW.load(deps.storage)
        base.prepare_deposit(escrow)
        sender, amount = base.token_deposit(deps, info, hook)
        if sender != escrow.taker:
            raise Unauthorized("Only the taker can fund a destination escrow")
        if amount != escrow.expected_amount:
            raise InvalidAmount(f"Expected {escrow.expected_amount}, got {amount}")

        base.record_deposit(escrow, amount, token_contract=info.sender)
        DESTINATION_ESCROW.save(deps.storage, escrow)
        log.info(f"Destination escrow {env.contract.address} funded: {amount} of token {info.sender}")

        return (Response()
                .add_attribute("method", "receive_deposit")
                .add_attribute("amount", amount)
                .add_attribute("from", sender))

    def _withdraw(self, deps: Deps, env: Env, info: MessageInfo, secret: str) -> Response:
        escrow = DESTINATION_ESCROW.load(deps.storage)
        base.ensure_open(escrow.status)
        if info.sender != escrow.maker:
            raise Unauthorized("Only the maker can withdraw a destination escrow")
        if not escrow.src_confirmed:
            raise SourceEscrowNotConfirmed()
        base.ensure_funded(escrow)
        base.ensure_secret(secret, escrow.secret_hash)

        escrow.status = EscrowStatus.WITHDRAWN
        DESTINATION_ESCROW.save(deps.storage, escrow)
        log.info(f"Destination escrow {env.contract.address} withdrawn by maker")

        response = Response()
        transfer = base.payout(escrow, escrow.maker, escrow.deposited_amount)
        if transfer:
            response.add_message(transfer)
        return (response
                .add_attribute("method", "withdraw")
                .add_attribute("recipient", escrow.maker)
                .add_attribute("amount", escrow.deposited_amount))

    def _cancel(self, deps: Deps, env: Env, info: MessageInfo) -> Response:
        escrow = DESTINATION_ESCROW.load(deps.storage)
        base.ensure_open(escrow.status)
        if info.sender != escrow.taker:
            raise Unauthorized("Only the taker can cancel a destination escrow")
        base.ensure_timelock_expired(env.block.seconds, escrow.timelock)

        escrow.status = EscrowStatus.CANCELLED
        DESTINATION_ESCROW.save(deps.storage, escrow)
        log.info(f"Destination escrow {env.contract.address} cancelled")

        response = Response()
        refund = base.payout(escrow, escrow.taker, escrow.deposited_amount)
        if refund:
            response.add_message(refund)
        return (response
                .add_attribute("method", "cancel")
                .add_attribute("amount", escrow.deposited_amount))

    def _confirm_source(self, deps: Deps, env: Env, info: MessageInfo,
                        src_tx_hash: str, block_height: int) -> Response:
        escrow = DESTINATION_ESCROW.load(deps.storage)
        base.ensure_open(escrow.status)
        if escrow.authorized_confirmer and info.sender != escrow.authorized_confirmer:
            raise Unauthorized("Caller may not confirm the source escrow")

        # Overwrites an earlier attestation
        escrow.src_confirmed = True
        escrow.src_tx_hash = src_tx_hash
        escrow.src_block_height = block_height
        DESTINATION_ESCROW.save(deps.storage, escrow)
        log.info(f"Destination escrow {env.contract.address} source confirmed by {info.sender}: "
                 f"{src_tx_hash} @ {block_height}")

        return (Response()
                .add_attribute("method", "confirm_source_escrow")
                .add_attribute("src_tx_hash", src_tx_hash)
                .add_attribute("block_height", block_height))

    def query(self, deps: Deps, env: Env, msg: Any) -> Any:
        DESTINATION_QUERY.parse(msg)
        escrow = DESTINATION_ESCROW.load(deps.storage)
        return DestinationEscrowResponse(**escrow.to_dict())
