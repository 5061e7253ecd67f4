from __future__ import annotations

from alignment_vault.core.constants.base import (
    CONSTANT_PRODUCT_FEE_DENOMINATOR,
    CONSTANT_PRODUCT_FEE_NUMERATOR,
)


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """x*y=k output for an exact input, after the 0.3% pool fee."""
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    amount_in_with_fee = amount_in * CONSTANT_PRODUCT_FEE_NUMERATOR
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * CONSTANT_PRODUCT_FEE_DENOMINATOR + amount_in_with_fee
    return numerator // denominator
