from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address

from alignment_vault.core.adapters.BaseAdapter import BaseAdapter
from alignment_vault.core.adapters.models import PoolKey, VenueQuote, VenueType
from alignment_vault.core.constants.base import NATIVE_CURRENCY
from alignment_vault.core.errors import InvalidInputError, VenueUnavailableError
from alignment_vault.core.utils.uniswap_v3_math import price_wad_from_sqrt_price
from alignment_vault.simulation.pool_manager import PoolManager, PoolSwapper


class HookedPoolAdapter(BaseAdapter):
    """A pool inside the singleton manager, identified by its ``PoolKey``.

    Swaps go through a ``PoolSwapper`` router so they never hold the manager's
    unlock across the vault's own settlement session.
    """

    venue_type = VenueType.HOOKED_POOL

    def __init__(
        self,
        manager: PoolManager,
        key: PoolKey,
        router: PoolSwapper,
        config: dict[str, Any] | None = None,
    ) -> None:
        super().__init__("hooked_pool_adapter", config)
        self.manager = manager
        self.key = key
        self.router = router

    @property
    def pool_id(self) -> str:
        return self.key.pool_id

    async def quote(self) -> VenueQuote:
        try:
            sqrt_price_x96, _tick, _protocol_fee, _lp_fee = self.manager.get_slot0(self.pool_id)
        except InvalidInputError as exc:
            raise VenueUnavailableError(str(exc)) from exc
        liquidity = self.manager.get_liquidity(self.pool_id)
        if sqrt_price_x96 == 0 or liquidity == 0:
            raise VenueUnavailableError(f"pool {self.pool_id[:10]}… has no liquidity")
        return VenueQuote(
            venue=self.name,
            venue_type=self.venue_type,
            raw_price=price_wad_from_sqrt_price(
                sqrt_price_x96, base_is_token0=self.key.currency0 == NATIVE_CURRENCY
            ),
            depth=liquidity,
        )

    async def swap_exact_in(
        self,
        payer: str,
        token_in: str,
        amount_in: int,
        min_amount_out: int,
        recipient: str,
    ) -> int:
        tin = to_checksum_address(token_in)
        if tin not in (self.key.currency0, self.key.currency1):
            raise InvalidInputError(f"{token_in} is not in pool {self.pool_id[:10]}…")
        zero_for_one = tin == self.key.currency0
        out = await self.router.swap_exact_in(
            payer,
            self.key,
            zero_for_one=zero_for_one,
            amount_in=amount_in,
            min_amount_out=min_amount_out,
            recipient=recipient,
        )
        self.logger.info(f"Swapped {amount_in} {tin} -> {out} via hooked pool")
        return out
