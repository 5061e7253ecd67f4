"""Cross-venue price validation.

Each configured venue is asked for a quote; anything that cannot be priced is
skipped. Surviving quotes are normalised to 18 decimals with the target
asset's cached precision and compared pairwise. A spread wider than the
configured tolerance aborts the conversion: the venues disagree, which is
what a sandwich or pool manipulation looks like from here.
"""

from __future__ import annotations

from itertools import combinations

from loguru import logger
from pydantic import BaseModel

from alignment_vault.core.adapters.BaseAdapter import BaseAdapter
from alignment_vault.core.adapters.decorators import status_tuple
from alignment_vault.core.adapters.models import VenueQuote, VenueType
from alignment_vault.core.config import VaultSettings
from alignment_vault.core.constants.base import BPS_DENOMINATOR
from alignment_vault.core.errors import InsufficientDepthError, PriceDeviationError
from alignment_vault.core.utils.uniswap_v2_math import get_amount_out
from alignment_vault.core.utils.units import normalize_to_18


class NormalizedQuote(BaseModel):
    quote: VenueQuote
    adapter_name: str
    # Target units (18 decimals) per 1e18 base units.
    price: int


class PriceCheck(BaseModel):
    quotes: list[NormalizedQuote]
    skipped: bool = False
    max_deviation_bps: int = 0

    def for_adapter(self, name: str) -> NormalizedQuote | None:
        return next((q for q in self.quotes if q.adapter_name == name), None)


def deviation_bps(price_a: int, price_b: int) -> int:
    """Spread relative to the lower of the two prices, in basis points."""
    low = min(price_a, price_b)
    if low <= 0:
        return BPS_DENOMINATOR
    return abs(price_a - price_b) * BPS_DENOMINATOR // low


class PriceAggregator:
    def __init__(self) -> None:
        self.logger = logger.bind(component=self.__class__.__name__)

    @status_tuple
    async def _quote(self, venue: BaseAdapter) -> VenueQuote:
        return await venue.quote()

    async def collect(
        self, venues: list[BaseAdapter], target_decimals: int
    ) -> list[NormalizedQuote]:
        quotes: list[NormalizedQuote] = []
        for venue in venues:
            ok, result = await self._quote(venue)
            if not ok:
                self.logger.debug(f"Skipping {venue.name}: {result}")
                continue
            price = normalize_to_18(result.raw_price, target_decimals)
            if price <= 0:
                self.logger.warning(f"{venue.name} quoted a zero price; skipping")
                continue
            quotes.append(
                NormalizedQuote(quote=result, adapter_name=venue.name, price=price)
            )
        return quotes

    async def validate(
        self,
        venues: list[BaseAdapter],
        *,
        target_decimals: int,
        swap_amount: int,
        settings: VaultSettings,
    ) -> PriceCheck:
        quotes = await self.collect(venues, target_decimals)
        if not quotes:
            self.logger.warning("No venue available; skipping price validation")
            return PriceCheck(quotes=[], skipped=True)

        worst = 0
        for a, b in combinations(quotes, 2):
            dev = deviation_bps(a.price, b.price)
            worst = max(worst, dev)
            if dev > settings.max_price_deviation_bps:
                raise PriceDeviationError(
                    a.adapter_name, b.adapter_name, dev, settings.max_price_deviation_bps
                )

        if len(quotes) == 1 and quotes[0].quote.venue_type == VenueType.CONSTANT_PRODUCT:
            self._check_constant_product_only(quotes[0], swap_amount, settings)

        self.logger.info(
            f"Price check passed across {len(quotes)} venue(s), max spread {worst} bps"
        )
        return PriceCheck(quotes=quotes, max_deviation_bps=worst)

    def _check_constant_product_only(
        self, nq: NormalizedQuote, swap_amount: int, settings: VaultSettings
    ) -> None:
        # A lone x*y=k pool has nothing to be cross-checked against, so it has
        # to be deep enough that the swap cannot move it much.
        reserve_base = nq.quote.depth
        if reserve_base < settings.min_constant_product_depth:
            raise InsufficientDepthError(
                f"{nq.adapter_name} depth {reserve_base} below minimum "
                f"{settings.min_constant_product_depth}"
            )
        max_swap = reserve_base * settings.max_constant_product_swap_bps // BPS_DENOMINATOR
        if swap_amount > max_swap:
            raise InsufficientDepthError(
                f"swap of {swap_amount} exceeds {settings.max_constant_product_swap_bps} bps "
                f"of {nq.adapter_name} depth {reserve_base}"
            )
        if swap_amount > 0:
            reserve_target = nq.quote.raw_price * reserve_base // 10**18
            if get_amount_out(swap_amount, reserve_base, reserve_target) <= 0:
                raise InsufficientDepthError(
                    f"{nq.adapter_name} would return nothing for {swap_amount}"
                )
