from alignment_vault.core.constants.base import (
    DEFAULT_TOKEN_DECIMALS,
    NATIVE_CURRENCY,
    WAD,
    WRAPPED_NATIVE,
    ZERO_ADDRESS,
)

__all__ = [
    "DEFAULT_TOKEN_DECIMALS",
    "NATIVE_CURRENCY",
    "WAD",
    "WRAPPED_NATIVE",
    "ZERO_ADDRESS",
]
