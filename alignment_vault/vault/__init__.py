from alignment_vault.vault.events import RewardOutcome, VaultEvent
from alignment_vault.vault.state import Contributor, VaultState
from alignment_vault.vault.vault import AlignmentVault

__all__ = [
    "AlignmentVault",
    "Contributor",
    "RewardOutcome",
    "VaultEvent",
    "VaultState",
]
