"""
Relayer service for xswap.

Watches a source chain and a destination chain through their resolvers:
- Source escrow funding, attested to the linked destination order
  (process_order confirm_source)
- Orders past their timelock, re-projected so they show as expired
- Orders still waiting on their escrow address, reconciled from the factory

Runs as a background service, or one pass at a time with poll_once().
Works with LocalChain and RemoteChain alike.
"""

import time
import logging
import threading
from typing import Callable, Dict, List, Optional
from dataclasses import dataclass

from ..chains.codec import parse_model
from ..core import OrderStatus, PENDING_ADDRESS
from ..errors import ContractError, EscrowPending
from ..htlc.msg import DestinationEscrowResponse, Escrow, SourceEscrowResponse
from .msg import (
    ActiveOrders, ConfirmSourceAction, OrderAction, OrderListResponse, OrderQuery,
    OrderResponse, ProcessOrder, SyncOrder,
)

log = logging.getLogger(__name__)


@dataclass
class RelayerConfig:
    """Relayer configuration."""
    poll_interval: int = 5       # seconds
    auto_confirm: bool = True    # Attest funded source escrows
    auto_sync: bool = True       # Re-project expired and pending orders
    page_limit: int = 30
    max_retries: int = 3         # Failed confirmations before giving up on a link


@dataclass
class SwapLink:
    """A source order and the destination order that settles it."""
    src_order_id: int
    dst_order_id: int
    confirmed: bool = False
    attempts: int = 0
    failed: bool = False
    src_tx_hash: Optional[str] = None


class Relayer:
    """
    Background service that attests and reconciles swaps.

    Events:
    - on_source_confirmed: destination order accepted the source attestation
    - on_order_expired: an order projected to expired
    - on_link_failed: confirmation gave up after max_retries
    """

    def __init__(self, relayer_address: str, src_chain, src_resolver: str,
                 dst_chain, dst_resolver: str, config: RelayerConfig = None):
        self.relayer_address = relayer_address
        self.src_chain = src_chain
        self.src_resolver = src_resolver
        self.dst_chain = dst_chain
        self.dst_resolver = dst_resolver
        self.config = config or RelayerConfig()

        # Callbacks
        self.on_source_confirmed: Optional[Callable[[SwapLink], None]] = None
        self.on_order_expired: Optional[Callable[[OrderResponse], None]] = None
        self.on_link_failed: Optional[Callable[[SwapLink, ContractError], None]] = None

        # State
        self._links: Dict[int, SwapLink] = {}
        self._lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def link(self, src_order_id: int, dst_order_id: int) -> SwapLink:
        """Pair a source order with its destination order."""
        with self._lock:
            link = SwapLink(src_order_id, dst_order_id)
            self._links[src_order_id] = link
        log.info(f"Linked source order {src_order_id} -> destination order {dst_order_id}")
        return link

    def links(self) -> List[SwapLink]:
        with self._lock:
            return list(self._links.values())

    def start(self):
        """Start relayer in background thread."""
        if self._running:
            return

        self._running = True
        self._thread = threading.Thread(target=self._watch_loop, daemon=True)
        self._thread.start()
        log.info("Relayer started")

    def stop(self):
        """Stop relayer."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=5)
        log.info("Relayer stopped")

    def _watch_loop(self):
        """Main watch loop."""
        last_poll = 0.0

        while self._running:
            now = time.time()

            try:
                if now - last_poll >= self.config.poll_interval:
                    self.poll_once()
                    last_poll = now
            except Exception as e:
                log.error(f"Relayer error: {e}")

            time.sleep(1)

    def poll_once(self) -> Dict[str, int]:
        """
        Run one pass over both chains.

        Returns:
            Counts of confirmations sent and orders synced
        """
        confirmed = 0
        synced = 0

        if self.config.auto_sync:
            synced += self._check_expirations(self.src_chain, self.src_resolver)
            synced += self._check_expirations(self.dst_chain, self.dst_resolver)
        # Sync before confirming; expired destinations are skipped
        if self.config.auto_confirm:
            confirmed = self._check_source_funding()

        return {"confirmed": confirmed, "synced": synced}

    # -------------------------------------------------------------------------
    # Source funding
    # -------------------------------------------------------------------------

    def _check_source_funding(self) -> int:
        """Attest funded source escrows to their destination orders."""
        sent = 0
        for link in self.links():
            if link.confirmed or link.failed:
                continue
            try:
                if self._confirm_link(link):
                    sent += 1
            except ContractError as e:
                link.attempts += 1
                log.warning(f"Confirmation of order {link.dst_order_id} failed "
                            f"({link.attempts}/{self.config.max_retries}): {e}")
                if link.attempts >= self.config.max_retries:
                    link.failed = True
                    log.error(f"Giving up on link {link.src_order_id} -> {link.dst_order_id}")
                    if self.on_link_failed:
                        self.on_link_failed(link, e)
        return sent

    def _confirm_link(self, link: SwapLink) -> bool:
        src_order = self._order(self.src_chain, self.src_resolver, link.src_order_id)
        if src_order.escrow_address == PENDING_ADDRESS:
            return False

        src_escrow = parse_model(SourceEscrowResponse,
                                 self.src_chain.query(src_order.escrow_address, Escrow()))
        if not src_escrow.funded:
            return False

        dst_order = self._order(self.dst_chain, self.dst_resolver, link.dst_order_id)
        if dst_order.escrow_address == PENDING_ADDRESS:
            return False
        if dst_order.status.is_final or dst_order.status == OrderStatus.EXPIRED:
            link.failed = True
            log.warning(f"Destination order {dst_order.order_id} is {dst_order.status.value}")
            return False

        dst_escrow = parse_model(DestinationEscrowResponse,
                                 self.dst_chain.query(dst_order.escrow_address, Escrow()))
        if dst_escrow.src_confirmed:
            link.confirmed = True
            link.src_tx_hash = dst_escrow.src_tx_hash
            return False

        action = OrderAction(confirm_source=ConfirmSourceAction(
            src_tx_hash=src_escrow.funded_tx_hash or "",
            block_height=src_escrow.funded_height or 0,
        ))
        self.dst_chain.execute(self.relayer_address, self.dst_resolver,
                               ProcessOrder(order_id=link.dst_order_id, action=action))

        link.confirmed = True
        link.src_tx_hash = src_escrow.funded_tx_hash
        log.info(f"Confirmed source escrow {src_order.escrow_address} "
                 f"(tx {src_escrow.funded_tx_hash}) on destination order {link.dst_order_id}")

        if self.on_source_confirmed:
            self.on_source_confirmed(link)
        return True

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def _check_expirations(self, chain, resolver: str) -> int:
        """Sync active orders that are past their timelock or still pending."""
        now = chain.block().seconds
        synced = 0

        for order in self._active_orders(chain, resolver):
            pending = order.escrow_address == PENDING_ADDRESS
            if not pending and order.timelock > now:
                continue
            try:
                chain.execute(self.relayer_address, resolver, SyncOrder(order_id=order.order_id))
            except EscrowPending:
                log.debug(f"Order {order.order_id} escrow still pending")
                continue
            except ContractError as e:
                log.warning(f"Sync of order {order.order_id} failed: {e}")
                continue

            synced += 1
            updated = self._order(chain, resolver, order.order_id)
            if updated.status == OrderStatus.EXPIRED:
                log.info(f"Order {order.order_id} expired")
                if self.on_order_expired:
                    self.on_order_expired(updated)

        return synced

    def _active_orders(self, chain, resolver: str) -> List[OrderResponse]:
        orders: List[OrderResponse] = []
        start_after = None
        while True:
            page = parse_model(OrderListResponse, chain.query(
                resolver, ActiveOrders(start_after=start_after, limit=self.config.page_limit)))
            orders.extend(page.orders)
            if len(page.orders) < self.config.page_limit:
                return orders
            start_after = page.orders[-1].order_id

    def _order(self, chain, resolver: str, order_id: int) -> OrderResponse:
        return parse_model(OrderResponse, chain.query(resolver, OrderQuery(order_id=order_id)))
