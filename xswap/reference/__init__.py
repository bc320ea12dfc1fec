"""Reference Dutch auction and partial-fill contracts."""

from .dutch_auction import DutchAuction
from .partial_fill import PartialFillBook

__all__ = ["DutchAuction", "PartialFillBook"]
