"""
Hash-time-locked escrow contracts.
"""

from .source import SourceEscrow
from .destination import DestinationEscrow
from .state import SourceEscrowInfo, DestinationEscrowInfo
