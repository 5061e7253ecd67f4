from __future__ import annotations

import pytest

from alignment_vault.core.constants.base import WAD
from alignment_vault.core.utils.uniswap_v2_math import get_amount_out
from alignment_vault.core.utils.uniswap_v3_math import (
    MAX_TICK,
    MIN_TICK,
    Q96,
    amounts_for_liq_inrange,
    compute_swap_exact_in,
    encode_sqrt_price_x96,
    full_range_ticks,
    liq_for_amounts,
    price_wad_from_sqrt_price,
    sqrt_price_x96_from_tick,
    tick_from_sqrt_price_x96,
)


def test_full_range_ticks_are_multiples_inside_bounds():
    assert full_range_ticks(1) == (MIN_TICK, MAX_TICK)
    assert full_range_ticks(60) == (-887220, 887220)
    assert full_range_ticks(200) == (-887200, 887200)
    for spacing in (1, 10, 60, 200, 32767):
        lower, upper = full_range_ticks(spacing)
        assert lower % spacing == 0 and upper % spacing == 0
        assert MIN_TICK <= lower < upper <= MAX_TICK


def test_full_range_ticks_rejects_bad_spacing():
    with pytest.raises(ValueError):
        full_range_ticks(0)


def test_sqrt_price_at_tick_zero_is_one():
    assert sqrt_price_x96_from_tick(0) == Q96
    assert tick_from_sqrt_price_x96(Q96) == 0


@pytest.mark.parametrize("tick", [-887220, -50_000, -1, 1, 69_081, 887220])
def test_tick_round_trip(tick):
    assert tick_from_sqrt_price_x96(sqrt_price_x96_from_tick(tick)) == tick


def test_sqrt_price_from_tick_out_of_range():
    with pytest.raises(ValueError, match="out of range"):
        sqrt_price_x96_from_tick(MAX_TICK + 1)


def test_encode_sqrt_price_and_wad_price():
    sqrt_p = encode_sqrt_price_x96(1000 * WAD, WAD)
    # 1000 token1 per token0, read from either side.
    assert abs(price_wad_from_sqrt_price(sqrt_p, base_is_token0=True) - 1000 * WAD) <= 10**6
    inverse = price_wad_from_sqrt_price(sqrt_p, base_is_token0=False)
    assert abs(inverse - WAD // 1000) <= 10
    assert price_wad_from_sqrt_price(0, base_is_token0=True) == 0


def test_encode_sqrt_price_requires_positive_amounts():
    with pytest.raises(ValueError):
        encode_sqrt_price_x96(0, 1)


def test_liquidity_amounts_never_exceed_inputs():
    sqrt_p = encode_sqrt_price_x96(1000 * WAD, WAD)
    lower, upper = full_range_ticks(60)
    sqrt_a = sqrt_price_x96_from_tick(lower)
    sqrt_b = sqrt_price_x96_from_tick(upper)
    liquidity = liq_for_amounts(sqrt_p, sqrt_a, sqrt_b, WAD, 1000 * WAD)
    assert liquidity > 0
    amount0, amount1 = amounts_for_liq_inrange(sqrt_p, sqrt_a, sqrt_b, liquidity, round_up=True)
    assert amount0 <= WAD
    assert amount1 <= 1000 * WAD
    down0, down1 = amounts_for_liq_inrange(sqrt_p, sqrt_a, sqrt_b, liquidity)
    assert down0 <= amount0 and down1 <= amount1


def test_compute_swap_exact_in_moves_price_and_charges_fee():
    sqrt_p = encode_sqrt_price_x96(1000 * WAD, WAD)
    liquidity = 10**22
    sqrt_next, out, fee = compute_swap_exact_in(sqrt_p, liquidity, WAD, 3000, zero_for_one=True)
    assert sqrt_next < sqrt_p
    assert fee == 3 * 10**15
    # Slightly less than 997 token1 for 1 token0 at 1000.
    assert 900 * WAD < out < 997 * WAD

    sqrt_next, out, _ = compute_swap_exact_in(sqrt_p, liquidity, 1000 * WAD, 3000, zero_for_one=False)
    assert sqrt_next > sqrt_p
    assert 9 * WAD // 10 < out < WAD


def test_compute_swap_exact_in_requires_liquidity():
    with pytest.raises(ValueError, match="no active liquidity"):
        compute_swap_exact_in(Q96, 0, 100, 3000, zero_for_one=True)
    with pytest.raises(ValueError):
        compute_swap_exact_in(Q96, 10, 0, 3000, zero_for_one=True)


def test_constant_product_math():
    assert get_amount_out(0, 100, 100) == 0
    assert get_amount_out(10, 0, 100) == 0
    # 1000 in against 1e6/1e6 reserves.
    assert get_amount_out(1000, 10**6, 10**6) == 996
