"""
Escrow state records.
"""

from dataclasses import dataclass, asdict
from typing import Optional

from ..chains.storage import Item
from ..core import EscrowStatus, FillLedger, current_price


@dataclass
class SourceEscrowInfo:
    """Maker-funded escrow, released to the taker (or caller) with the secret."""
    maker: str
    taker: Optional[str]
    secret_hash: str
    timelock: int           # unix seconds
    dst_chain_id: str
    dst_asset: str
    dst_amount: int
    created_at: int
    status: EscrowStatus = EscrowStatus.ACTIVE

    # Funding: native denom XOR token contract
    deposited_amount: int = 0
    deposited_denom: Optional[str] = None
    token_contract: Optional[str] = None
    funded: bool = False
    funded_height: Optional[int] = None
    funded_tx_hash: Optional[str] = None

    # Dutch auction
    initial_price: Optional[int] = None
    price_decay_rate: Optional[int] = None
    minimum_price: Optional[int] = None

    # Partial fill
    allow_partial_fill: bool = False
    minimum_fill_amount: Optional[int] = None
    filled_amount: int = 0
    remaining_amount: int = 0

    def price_at(self, now: int) -> int:
        return current_price(self.initial_price, self.price_decay_rate,
                             self.minimum_price, self.created_at, now)

    def ledger(self) -> FillLedger:
        return FillLedger(total=self.deposited_amount, filled=self.filled_amount)

    def sync_ledger(self, ledger: FillLedger):
        self.filled_amount = ledger.filled
        self.remaining_amount = ledger.remaining

    def to_dict(self):
        return asdict(self)


@dataclass
class DestinationEscrowInfo:
    """Taker-funded escrow, released to the maker once the source is confirmed."""
    taker: str
    maker: str
    secret_hash: str
    timelock: int
    src_chain_id: str
    src_escrow_address: str
    expected_amount: int
    created_at: int
    status: EscrowStatus = EscrowStatus.ACTIVE
    authorized_confirmer: Optional[str] = None

    deposited_amount: int = 0
    deposited_denom: Optional[str] = None
    token_contract: Optional[str] = None
    funded: bool = False

    # Relayer attestation, overwritable and not verified
    src_confirmed: bool = False
    src_tx_hash: Optional[str] = None
    src_block_height: Optional[int] = None

    def to_dict(self):
        return asdict(self)


SOURCE_ESCROW: Item = Item("source_escrow")
DESTINATION_ESCROW: Item = Item("destination_escrow")
