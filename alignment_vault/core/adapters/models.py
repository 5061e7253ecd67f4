from enum import StrEnum
from typing import NamedTuple

from eth_abi import encode as abi_encode
from eth_utils import keccak, to_checksum_address
from pydantic import BaseModel, ConfigDict, field_validator


class VenueType(StrEnum):
    CONSTANT_PRODUCT = "constant_product"
    CONCENTRATED = "concentrated"
    HOOKED_POOL = "hooked_pool"


class VenueQuote(BaseModel):
    model_config = ConfigDict(frozen=True)

    venue: str
    venue_type: VenueType
    # Raw target-asset units per 1e18 base-currency units (not decimal-normalised).
    raw_price: int
    # Base reserve for constant-product pools, active liquidity otherwise.
    depth: int


class PoolKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    currency0: str
    currency1: str
    fee: int
    tick_spacing: int
    hooks: str

    @field_validator("currency0", "currency1", "hooks")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return to_checksum_address(value)

    def to_tuple(self) -> tuple[str, str, int, int, str]:
        return (self.currency0, self.currency1, self.fee, self.tick_spacing, self.hooks)

    @property
    def pool_id(self) -> str:
        encoded = abi_encode(
            ["address", "address", "uint24", "int24", "address"],
            list(self.to_tuple()),
        )
        return "0x" + keccak(encoded).hex()


class BalanceDelta(NamedTuple):
    """Signed amounts from the caller's view: negative is owed to the pool."""

    amount0: int
    amount1: int

    def __add__(self, other: "BalanceDelta") -> "BalanceDelta":  # type: ignore[override]
        return BalanceDelta(self.amount0 + other.amount0, self.amount1 + other.amount1)

    def __sub__(self, other: "BalanceDelta") -> "BalanceDelta":
        return BalanceDelta(self.amount0 - other.amount0, self.amount1 - other.amount1)


ZERO_DELTA = BalanceDelta(0, 0)


class ModifyLiquidityParams(BaseModel):
    tick_lower: int
    tick_upper: int
    liquidity_delta: int
    salt: bytes = b"\x00" * 32


class SwapParams(BaseModel):
    zero_for_one: bool
    # Negative for exact input, as in v4.
    amount_specified: int
    sqrt_price_limit_x96: int
