from __future__ import annotations

from pydantic import BaseModel, Field

from alignment_vault.core.adapters.models import PoolKey
from alignment_vault.core.config import VaultSettings
from alignment_vault.core.constants.base import DEFAULT_TOKEN_DECIMALS


class Contributor(BaseModel):
    address: str
    # Display-only lifetime total; never used for accounting.
    total_contributed: int = 0
    pending: int = 0
    shares: int = 0
    # Fee value already paid out, in base-currency units.
    claimed_checkpoint: int = 0
    last_claim_at: int | None = None


class VaultState(BaseModel):
    """The global ledger. Owned by one vault and passed explicitly to each component."""

    owner: str
    settings: VaultSettings = Field(default_factory=VaultSettings)

    total_shares: int = 0
    total_pending: int = 0
    total_received: int = 0
    accumulated_fees: int = 0
    total_lp_units: int = 0
    accumulated_dust: int = 0
    # Target-asset fees a harvest could not convert yet; retried next harvest.
    unconverted_target_fees: int = 0
    last_harvest_at: int | None = None

    tick_lower: int | None = None
    tick_upper: int | None = None

    target_asset: str | None = None
    target_decimals: int = DEFAULT_TOKEN_DECIMALS
    venue: PoolKey | None = None

    contributors: dict[str, Contributor] = Field(default_factory=dict)
    # Insertion-ordered, unique; cleared at the end of every conversion round.
    active_contributors: list[str] = Field(default_factory=list)
    authorized_routers: set[str] = Field(default_factory=set)

    def contributor(self, address: str) -> Contributor:
        """Existing record or a blank one (not stored)."""
        return self.contributors.get(address) or Contributor(address=address)

    @property
    def has_position(self) -> bool:
        return self.total_lp_units > 0
