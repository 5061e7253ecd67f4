from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address

from alignment_vault.core.adapters.BaseAdapter import BaseAdapter
from alignment_vault.core.adapters.models import VenueQuote, VenueType
from alignment_vault.core.constants.base import NATIVE_CURRENCY
from alignment_vault.core.errors import InvalidInputError, VenueUnavailableError
from alignment_vault.core.utils.uniswap_v3_math import price_wad_from_sqrt_price
from alignment_vault.simulation.concentrated_pool import ConcentratedPool


class ConcentratedAdapter(BaseAdapter):
    venue_type = VenueType.CONCENTRATED

    def __init__(
        self,
        pool: ConcentratedPool,
        target_token: str,
        config: dict[str, Any] | None = None,
    ) -> None:
        super().__init__("concentrated_adapter", config)
        self.pool = pool
        self.ledger = pool.chain.ledger
        self.base_token = self.ledger.wrapped_native
        self.target_token = to_checksum_address(target_token)
        if {self.base_token, self.target_token} != {pool.token0, pool.token1}:
            raise InvalidInputError(
                f"pool {pool.address} does not hold {self.base_token}/{self.target_token}"
            )

    async def quote(self) -> VenueQuote:
        slot0 = self.pool.slot0()
        if not slot0.unlocked:
            raise VenueUnavailableError(f"pool {self.pool.address} is locked")
        liquidity = self.pool.liquidity()
        if slot0.sqrt_price_x96 == 0 or liquidity == 0:
            raise VenueUnavailableError(f"pool {self.pool.address} has no liquidity")
        return VenueQuote(
            venue=self.name,
            venue_type=self.venue_type,
            raw_price=price_wad_from_sqrt_price(
                slot0.sqrt_price_x96, base_is_token0=self.pool.token0 == self.base_token
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
        if tin == NATIVE_CURRENCY:
            await self.ledger.wrap(payer, amount_in)
            out = await self.pool.swap_exact_in(
                payer, self.base_token, amount_in, min_amount_out, recipient
            )
            self.logger.info(f"Swapped {amount_in} native -> {out} target via pool")
            return out

        if tin != self.target_token:
            raise InvalidInputError(f"unsupported input token {token_in}")
        out = await self.pool.swap_exact_in(
            payer, self.target_token, amount_in, min_amount_out, recipient
        )
        await self.ledger.unwrap(recipient, out)
        self.logger.info(f"Swapped {amount_in} target -> {out} native via pool")
        return out
