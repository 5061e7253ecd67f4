__version__ = "0.1.0"

from alignment_vault.core import BaseAdapter, Chain, TokenLedger
from alignment_vault.vault import AlignmentVault, RewardOutcome

__all__ = [
    "__version__",
    "AlignmentVault",
    "BaseAdapter",
    "Chain",
    "RewardOutcome",
    "TokenLedger",
]
