from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address

from alignment_vault.core.adapters.BaseAdapter import BaseAdapter
from alignment_vault.core.adapters.models import VenueQuote, VenueType
from alignment_vault.core.constants.base import NATIVE_CURRENCY, WAD
from alignment_vault.core.errors import InvalidInputError, VenueUnavailableError
from alignment_vault.simulation.constant_product import ConstantProductPair


class ConstantProductAdapter(BaseAdapter):
    """Wrapped-native/target x*y=k pair. Native in is wrapped, native out is unwrapped."""

    venue_type = VenueType.CONSTANT_PRODUCT

    def __init__(
        self,
        pair: ConstantProductPair,
        target_token: str,
        config: dict[str, Any] | None = None,
    ) -> None:
        super().__init__("constant_product_adapter", config)
        self.pair = pair
        self.ledger = pair.chain.ledger
        self.base_token = self.ledger.wrapped_native
        self.target_token = to_checksum_address(target_token)
        if {self.base_token, self.target_token} != {pair.token0, pair.token1}:
            raise InvalidInputError(
                f"pair {pair.address} does not hold {self.base_token}/{self.target_token}"
            )

    async def quote(self) -> VenueQuote:
        reserve_base, reserve_target = self.pair.reserves_for(self.base_token)
        if reserve_base == 0 or reserve_target == 0:
            raise VenueUnavailableError(f"pair {self.pair.address} has no reserves")
        return VenueQuote(
            venue=self.name,
            venue_type=self.venue_type,
            raw_price=reserve_target * WAD // reserve_base,
            depth=reserve_base,
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
            out = await self.pair.swap_exact_in(
                payer, self.base_token, amount_in, min_amount_out, recipient
            )
            self.logger.info(f"Swapped {amount_in} native -> {out} target via pair")
            return out

        if tin != self.target_token:
            raise InvalidInputError(f"unsupported input token {token_in}")
        out = await self.pair.swap_exact_in(
            payer, self.target_token, amount_in, min_amount_out, recipient
        )
        await self.ledger.unwrap(recipient, out)
        self.logger.info(f"Swapped {amount_in} target -> {out} native via pair")
        return out
