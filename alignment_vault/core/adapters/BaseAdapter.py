from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

from alignment_vault.core.adapters.models import VenueQuote, VenueType


class BaseAdapter(ABC):
    """A liquidity venue the vault can price against and, optionally, swap through."""

    venue_type: VenueType
    supports_swaps: bool = True

    def __init__(self, name: str, config: dict[str, Any] | None = None):
        self.name = name
        self.config = config or {}
        self.logger = logger.bind(adapter=self.__class__.__name__)

    @abstractmethod
    async def quote(self) -> VenueQuote:
        """Raw target-asset price per 1e18 base units, plus depth.

        Raise ``VenueUnavailableError`` when the venue cannot be priced.
        """

    async def swap_exact_in(
        self,
        payer: str,
        token_in: str,
        amount_in: int,
        min_amount_out: int,
        recipient: str,
    ) -> int:
        raise NotImplementedError(f"{self.name} is a read-only venue")
