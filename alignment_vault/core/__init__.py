from alignment_vault.core.adapters.BaseAdapter import BaseAdapter
from alignment_vault.core.chain import Chain
from alignment_vault.core.ledger import TokenLedger

__all__ = [
    "BaseAdapter",
    "Chain",
    "TokenLedger",
]
