"""Concentrated-liquidity math helpers shared by the simulated venues and the vault.

Integer fixed-point (Q64.96 sqrt prices, Q128 fee growth) so the ledger never
drifts by float rounding. Swaps are single-range: active liquidity is treated
as constant across the step, which is exact for full-range positions.
"""

from __future__ import annotations

import math

from alignment_vault.core.constants.base import FEE_PIPS_DENOMINATOR, WAD

Q96 = 1 << 96
Q128 = 1 << 128
Q192 = 1 << 192
Q32 = 1 << 32
TICK_BASE = 1.0001
MAX_UINT128 = 2**128 - 1

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_PRICE = 4295128739
MAX_SQRT_PRICE = 1461446703485210103287273052203988822378723970342


def encode_sqrt_price_x96(amount1: int, amount0: int) -> int:
    """sqrt(amount1 / amount0) in Q64.96, exact for integer reserves."""
    if amount0 <= 0 or amount1 <= 0:
        raise ValueError("amounts must be positive")
    return math.isqrt((amount1 << 192) // amount0)


def price_wad_from_sqrt_price(sqrt_price_x96: int, *, base_is_token0: bool) -> int:
    """Raw units of the quote token per 1e18 raw units of the base token."""
    if sqrt_price_x96 <= 0:
        return 0
    squared = sqrt_price_x96 * sqrt_price_x96
    if base_is_token0:
        return squared * WAD // Q192
    return Q192 * WAD // squared


def full_range_ticks(spacing: int) -> tuple[int, int]:
    """Widest usable (lower, upper) ticks for a pool's tick spacing."""
    if spacing <= 0:
        raise ValueError(f"tick spacing must be positive, got {spacing}")
    # Truncate toward zero on both sides so the bounds stay inside [MIN_TICK, MAX_TICK].
    tick_lower = -((-MIN_TICK) // spacing) * spacing
    tick_upper = (MAX_TICK // spacing) * spacing
    return tick_lower, tick_upper


def sqrt_price_x96_from_tick(
    tick: int, *, min_tick: int = MIN_TICK, max_tick: int = MAX_TICK
) -> int:
    if tick < min_tick or tick > max_tick:
        raise ValueError(f"tick {tick} out of range [{min_tick}, {max_tick}]")

    abs_tick = tick if tick >= 0 else -tick
    ratio = 0x100000000000000000000000000000000

    if abs_tick & 0x1:
        ratio = (ratio * 0xFFFCB933BD6FAD37AA2D162D1A594001) >> 128
    if abs_tick & 0x2:
        ratio = (ratio * 0xFFF97272373D413259A46990580E213A) >> 128
    if abs_tick & 0x4:
        ratio = (ratio * 0xFFF2E50F5F656932EF12357CF3C7FDCC) >> 128
    if abs_tick & 0x8:
        ratio = (ratio * 0xFFE5CACA7E10E4E61C3624EAA0941CD0) >> 128
    if abs_tick & 0x10:
        ratio = (ratio * 0xFFCB9843D60F6159C9DB58835C926644) >> 128
    if abs_tick & 0x20:
        ratio = (ratio * 0xFF973B41FA98C081472E6896DFB254C0) >> 128
    if abs_tick & 0x40:
        ratio = (ratio * 0xFF2EA16466C96A3843EC78B326B52861) >> 128
    if abs_tick & 0x80:
        ratio = (ratio * 0xFE5DEE046A99A2A811C461F1969C3053) >> 128
    if abs_tick & 0x100:
        ratio = (ratio * 0xFCBE86C7900A88AEDCFFC83B479AA3A4) >> 128
    if abs_tick & 0x200:
        ratio = (ratio * 0xF987A7253AC413176F2B074CF7815E54) >> 128
    if abs_tick & 0x400:
        ratio = (ratio * 0xF3392B0822B70005940C7A398E4B70F3) >> 128
    if abs_tick & 0x800:
        ratio = (ratio * 0xE7159475A2C29B7443B29C7FA6E889D9) >> 128
    if abs_tick & 0x1000:
        ratio = (ratio * 0xD097F3BDFD2022B8845AD8F792AA5825) >> 128
    if abs_tick & 0x2000:
        ratio = (ratio * 0xA9F746462D870FDF8A65DC1F90E061E5) >> 128
    if abs_tick & 0x4000:
        ratio = (ratio * 0x70D869A156D2A1B890BB3DF62BAF32F7) >> 128
    if abs_tick & 0x8000:
        ratio = (ratio * 0x31BE135F97D08FD981231505542FCFA6) >> 128
    if abs_tick & 0x10000:
        ratio = (ratio * 0x9AA508B5B7A84E1C677DE54F3E99BC9) >> 128
    if abs_tick & 0x20000:
        ratio = (ratio * 0x5D6AF8DEDB81196699C329225EE604) >> 128
    if abs_tick & 0x40000:
        ratio = (ratio * 0x2216E584F5FA1EA926041BEDFE98) >> 128
    if abs_tick & 0x80000:
        ratio = (ratio * 0x48A170391F7DC42444E8FA2) >> 128

    if tick > 0:
        ratio = (1 << 256) // ratio

    sqrt_price_x96 = ratio >> 32
    if ratio & (Q32 - 1):
        sqrt_price_x96 += 1
    return int(sqrt_price_x96)


def tick_from_sqrt_price_x96(sqrt_price_x96: int) -> int:
    """Greatest tick whose sqrt price is <= ``sqrt_price_x96``."""
    if sqrt_price_x96 < MIN_SQRT_PRICE or sqrt_price_x96 > MAX_SQRT_PRICE:
        raise ValueError(f"sqrt price {sqrt_price_x96} out of range")
    ratio = sqrt_price_x96 / Q96
    tick = math.floor(math.log(ratio * ratio) / math.log(TICK_BASE))
    tick = max(MIN_TICK, min(MAX_TICK, tick))
    # Float log can be off by one near boundaries; settle on the exact tick.
    while tick > MIN_TICK and sqrt_price_x96_from_tick(tick) > sqrt_price_x96:
        tick -= 1
    while tick < MAX_TICK and sqrt_price_x96_from_tick(tick + 1) <= sqrt_price_x96:
        tick += 1
    return tick


def _sorted_bounds(sqrt_a: int, sqrt_b: int) -> tuple[int, int]:
    a, b = sorted((int(sqrt_a), int(sqrt_b)))
    return a, b


def amt0_for_liq(sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool = False) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if a == 0:
        return 0
    numerator = int(liquidity) * Q96 * (b - a)
    denominator = a * b
    if round_up:
        return -(-numerator // denominator)
    return numerator // denominator


def amt1_for_liq(sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool = False) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    numerator = int(liquidity) * (b - a)
    if round_up:
        return -(-numerator // Q96)
    return numerator // Q96


def liq_for_amt0(sqrt_a: int, sqrt_b: int, amount0: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if b == a:
        return 0
    return (int(amount0) * a * b) // (Q96 * (b - a))


def liq_for_amt1(sqrt_a: int, sqrt_b: int, amount1: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if b == a:
        return 0
    return (int(amount1) * Q96) // (b - a)


def liq_for_amounts(
    sqrt_p: int, sqrt_a: int, sqrt_b: int, amount0: int, amount1: int
) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    p = int(sqrt_p)
    if p <= a:
        return liq_for_amt0(a, b, amount0)
    if p >= b:
        return liq_for_amt1(a, b, amount1)
    L0 = liq_for_amt0(p, b, amount0)
    L1 = liq_for_amt1(a, p, amount1)
    return min(L0, L1)


def amounts_for_liq_inrange(
    sqrt_p: int, sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool = False
) -> tuple[int, int]:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    p = int(sqrt_p)
    if p <= a:
        amount0 = amt0_for_liq(a, b, liquidity, round_up=round_up)
        amount1 = 0
    elif p < b:
        amount0 = amt0_for_liq(p, b, liquidity, round_up=round_up)
        amount1 = amt1_for_liq(a, p, liquidity, round_up=round_up)
    else:
        amount0 = 0
        amount1 = amt1_for_liq(a, b, liquidity, round_up=round_up)
    return amount0, amount1


def next_sqrt_price_from_input(
    sqrt_p: int, liquidity: int, amount_in: int, *, zero_for_one: bool
) -> int:
    if liquidity <= 0:
        raise ValueError("liquidity must be positive")
    if amount_in == 0:
        return sqrt_p
    if zero_for_one:
        # Round up so the price never moves further than the input pays for.
        numerator = liquidity * Q96 * sqrt_p
        denominator = liquidity * Q96 + amount_in * sqrt_p
        return -(-numerator // denominator)
    return sqrt_p + (amount_in * Q96) // liquidity


def compute_swap_exact_in(
    sqrt_p: int,
    liquidity: int,
    amount_in: int,
    fee_pips: int,
    *,
    zero_for_one: bool,
) -> tuple[int, int, int]:
    """Return ``(sqrt_price_after, amount_out, fee_amount)`` for one exact-input step."""
    if amount_in <= 0:
        raise ValueError("amount_in must be positive")
    if liquidity <= 0:
        raise ValueError("no active liquidity")
    fee_amount = -(-amount_in * fee_pips // FEE_PIPS_DENOMINATOR)
    amount_after_fee = amount_in - fee_amount
    sqrt_next = next_sqrt_price_from_input(
        sqrt_p, liquidity, amount_after_fee, zero_for_one=zero_for_one
    )
    if sqrt_next <= MIN_SQRT_PRICE or sqrt_next >= MAX_SQRT_PRICE:
        raise ValueError("swap would move price outside the valid range")
    if zero_for_one:
        amount_out = amt1_for_liq(sqrt_next, sqrt_p, liquidity)
    else:
        amount_out = amt0_for_liq(sqrt_p, sqrt_next, liquidity)
    return sqrt_next, amount_out, fee_amount
