"""Read-only venue quotes from live pools.

These plug into the price aggregator next to (or instead of) the simulated
venues, so market conditions can be checked against real pools. They never
execute swaps.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Literal

from eth_utils import to_checksum_address
from loguru import logger

from alignment_vault.core.adapters.BaseAdapter import BaseAdapter
from alignment_vault.core.adapters.models import VenueQuote, VenueType
from alignment_vault.core.constants.base import WAD
from alignment_vault.core.constants.uniswap_abi import (
    ERC20_DECIMALS_ABI,
    STATE_VIEW_ABI,
    UNISWAP_V2_PAIR_ABI,
    UNISWAP_V3_POOL_ABI,
)
from alignment_vault.core.errors import InvalidInputError, VenueUnavailableError
from alignment_vault.core.utils.uniswap_v3_math import price_wad_from_sqrt_price
from alignment_vault.core.utils.web3 import web3_from_rpc


class _OnchainQuoteAdapter(BaseAdapter):
    supports_swaps = False

    def __init__(
        self,
        name: str,
        *,
        pool_address: str,
        base_token: str,
        rpc_url: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(name, config)
        self.pool_address = to_checksum_address(pool_address)
        self.base_token = to_checksum_address(base_token)
        self.rpc_url = rpc_url

    async def quote(self) -> VenueQuote:
        try:
            return await self._read_quote()
        except VenueUnavailableError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise VenueUnavailableError(f"{self.name}: {exc}") from exc

    @abstractmethod
    async def _read_quote(self) -> VenueQuote: ...


class OnchainConstantProductAdapter(_OnchainQuoteAdapter):
    venue_type = VenueType.CONSTANT_PRODUCT

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("onchain_constant_product_adapter", **kwargs)

    async def _read_quote(self) -> VenueQuote:
        async with web3_from_rpc(self.rpc_url) as w3:
            pair = w3.eth.contract(address=self.pool_address, abi=UNISWAP_V2_PAIR_ABI)
            reserve0, reserve1, _ts = await pair.functions.getReserves().call()
            token0 = await pair.functions.token0().call()
        if to_checksum_address(token0) == self.base_token:
            reserve_base, reserve_target = int(reserve0), int(reserve1)
        else:
            reserve_base, reserve_target = int(reserve1), int(reserve0)
        if reserve_base == 0 or reserve_target == 0:
            raise VenueUnavailableError(f"pair {self.pool_address} has no reserves")
        return VenueQuote(
            venue=self.name,
            venue_type=self.venue_type,
            raw_price=reserve_target * WAD // reserve_base,
            depth=reserve_base,
        )


class OnchainConcentratedAdapter(_OnchainQuoteAdapter):
    venue_type = VenueType.CONCENTRATED

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("onchain_concentrated_adapter", **kwargs)

    async def _read_quote(self) -> VenueQuote:
        async with web3_from_rpc(self.rpc_url) as w3:
            pool = w3.eth.contract(address=self.pool_address, abi=UNISWAP_V3_POOL_ABI)
            slot0 = await pool.functions.slot0().call()
            liquidity = await pool.functions.liquidity().call()
            token0 = await pool.functions.token0().call()
        sqrt_price_x96, unlocked = int(slot0[0]), bool(slot0[6])
        if not unlocked:
            raise VenueUnavailableError(f"pool {self.pool_address} is locked")
        if sqrt_price_x96 == 0 or int(liquidity) == 0:
            raise VenueUnavailableError(f"pool {self.pool_address} has no liquidity")
        return VenueQuote(
            venue=self.name,
            venue_type=self.venue_type,
            raw_price=price_wad_from_sqrt_price(
                sqrt_price_x96,
                base_is_token0=to_checksum_address(token0) == self.base_token,
            ),
            depth=int(liquidity),
        )


class OnchainHookedPoolAdapter(_OnchainQuoteAdapter):
    """Reads a singleton-manager pool through its StateView lens.

    ``pool_address`` is the StateView contract; the pool is ``pool_id``. The
    base currency is assumed to be ``currency0`` (native sorts first).
    """

    venue_type = VenueType.HOOKED_POOL

    def __init__(self, *, pool_id: str, **kwargs: Any) -> None:
        super().__init__("onchain_hooked_pool_adapter", **kwargs)
        self.pool_id = pool_id

    async def _read_quote(self) -> VenueQuote:
        pid = bytes.fromhex(self.pool_id.removeprefix("0x"))
        async with web3_from_rpc(self.rpc_url) as w3:
            view = w3.eth.contract(address=self.pool_address, abi=STATE_VIEW_ABI)
            slot0 = await view.functions.getSlot0(pid).call()
            liquidity = await view.functions.getLiquidity(pid).call()
        sqrt_price_x96 = int(slot0[0])
        if sqrt_price_x96 == 0 or int(liquidity) == 0:
            raise VenueUnavailableError(f"pool {self.pool_id[:10]}… has no liquidity")
        return VenueQuote(
            venue=self.name,
            venue_type=self.venue_type,
            raw_price=price_wad_from_sqrt_price(sqrt_price_x96, base_is_token0=True),
            depth=int(liquidity),
        )


class OnchainTokenMetadata:
    """``decimals()`` source for ``probe_decimals`` backed by ERC20 calls."""

    def __init__(self, rpc_url: str | None = None) -> None:
        self.rpc_url = rpc_url

    async def decimals(self, token: str) -> int:
        async with web3_from_rpc(self.rpc_url) as w3:
            contract = w3.eth.contract(
                address=to_checksum_address(token), abi=ERC20_DECIMALS_ABI
            )
            value = await contract.functions.decimals().call()
        logger.debug(f"decimals({token}) = {value}")
        return int(value)


OnchainVenueKind = Literal["constant_product", "concentrated", "hooked_pool"]


def build_onchain_adapter(
    kind: OnchainVenueKind,
    *,
    pool_address: str,
    base_token: str,
    pool_id: str | None = None,
    rpc_url: str | None = None,
) -> _OnchainQuoteAdapter:
    """Quote adapter for a live pool; ``pool_address`` is the StateView for hooked pools."""
    common = {"pool_address": pool_address, "base_token": base_token, "rpc_url": rpc_url}
    if kind == "constant_product":
        return OnchainConstantProductAdapter(**common)
    if kind == "concentrated":
        return OnchainConcentratedAdapter(**common)
    if kind == "hooked_pool":
        if not pool_id:
            raise InvalidInputError("hooked pool quote venue needs a pool_id")
        return OnchainHookedPoolAdapter(pool_id=pool_id, **common)
    raise InvalidInputError(f"unknown quote venue kind {kind!r}")
