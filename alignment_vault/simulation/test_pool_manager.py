from __future__ import annotations

import pytest

from alignment_vault.core.adapters.models import ModifyLiquidityParams, PoolKey
from alignment_vault.core.chain import Chain
from alignment_vault.core.constants.base import NATIVE_CURRENCY, WAD, ZERO_ADDRESS
from alignment_vault.core.errors import (
    AlreadyUnlockedError,
    CurrencyNotSettledError,
    InvalidInputError,
    ManagerLockedError,
    SlippageExceededError,
    UnauthorizedCallerError,
)
from alignment_vault.core.utils.uniswap_v3_math import (
    amounts_for_liq_inrange,
    encode_sqrt_price_x96,
    full_range_ticks,
    sqrt_price_x96_from_tick,
)
from alignment_vault.simulation.pool_manager import PoolManager, PoolSwapper

MANAGER = "0x3000000000000000000000000000000000000003"
ROUTER = "0x4000000000000000000000000000000000000004"
LP = "0x8000000000000000000000000000000000000008"
TRADER = "0x9000000000000000000000000000000000000009"
TARGET = "0x7000000000000000000000000000000000000007"
LIQUIDITY = 10**20


class _Lp:
    """Locker that owns its own position and settles its deltas."""

    def __init__(self, manager: PoolManager, address: str, *, settle: bool = True):
        self.manager = manager
        self.address = address
        self.settle = settle

    async def unlock_callback(self, sender, data):
        if data.get("reenter"):
            await self.manager.unlock(self, {})
        key: PoolKey = data["key"]
        tick_lower, tick_upper = full_range_ticks(key.tick_spacing)
        delta, fees = self.manager.modify_liquidity(
            self.address,
            key,
            ModifyLiquidityParams(
                tick_lower=tick_lower,
                tick_upper=tick_upper,
                liquidity_delta=data["liquidity"],
            ),
        )
        if not self.settle:
            return delta, fees
        ledger = self.manager.chain.ledger
        for currency, amount in ((key.currency0, delta.amount0), (key.currency1, delta.amount1)):
            if amount < 0 and currency == NATIVE_CURRENCY:
                await self.manager.settle(self.address, value=-amount)
            elif amount < 0:
                self.manager.sync(currency)
                await ledger.transfer(currency, self.address, self.manager.address, -amount)
                await self.manager.settle(self.address)
            elif amount > 0:
                await self.manager.take(self.address, currency, self.address, amount)
        return delta, fees


def _setup():
    chain = Chain(timestamp=1)
    target = chain.ledger.register_token(TARGET)
    manager = PoolManager(chain, MANAGER)
    router = PoolSwapper(manager, ROUTER)
    key = PoolKey(
        currency0=NATIVE_CURRENCY,
        currency1=target,
        fee=3000,
        tick_spacing=60,
        hooks=ZERO_ADDRESS,
    )
    manager.initialize(key, encode_sqrt_price_x96(1000 * WAD, WAD))
    return chain, manager, router, key


def _fund_lp(chain, manager, key, liquidity=LIQUIDITY):
    sqrt_p, *_ = manager.get_slot0(key.pool_id)
    lower, upper = full_range_ticks(key.tick_spacing)
    need0, need1 = amounts_for_liq_inrange(
        sqrt_p,
        sqrt_price_x96_from_tick(lower),
        sqrt_price_x96_from_tick(upper),
        liquidity,
        round_up=True,
    )
    chain.ledger.mint(key.currency0, LP, need0)
    chain.ledger.mint(key.currency1, LP, need1)
    return need0, need1


class TestInitialize:
    def test_rejects_unsorted_currencies(self):
        chain, manager, _router, key = _setup()
        bad = PoolKey(
            currency0=key.currency1,
            currency1=key.currency0,
            fee=3000,
            tick_spacing=60,
            hooks=ZERO_ADDRESS,
        )
        with pytest.raises(InvalidInputError, match="sort"):
            manager.initialize(bad, encode_sqrt_price_x96(1, 1))

    def test_rejects_double_initialize(self):
        _chain, manager, _router, key = _setup()
        with pytest.raises(InvalidInputError, match="already initialized"):
            manager.initialize(key, encode_sqrt_price_x96(1, 1))

    def test_views(self):
        _chain, manager, _router, key = _setup()
        sqrt_p, tick, protocol_fee, lp_fee = manager.get_slot0(key.pool_id)
        assert sqrt_p > 0
        assert 69_000 < tick < 69_100
        assert protocol_fee == 0
        assert lp_fee == 3000
        assert manager.get_liquidity(key.pool_id) == 0
        with pytest.raises(InvalidInputError, match="not initialized"):
            manager.get_slot0("0x" + "00" * 32)


class TestFlashAccounting:
    @pytest.mark.asyncio
    async def test_add_liquidity_settles_and_records_position(self):
        chain, manager, _router, key = _setup()
        need0, need1 = _fund_lp(chain, manager, key)
        lp = _Lp(manager, LP)
        delta, fees = await manager.unlock(lp, {"key": key, "liquidity": LIQUIDITY})
        assert delta.amount0 == -need0
        assert delta.amount1 == -need1
        assert tuple(fees) == (0, 0)
        assert manager.get_liquidity(key.pool_id) == LIQUIDITY
        lower, upper = full_range_ticks(60)
        assert manager.get_position_info(key.pool_id, LP, lower, upper).liquidity == LIQUIDITY
        assert chain.ledger.balance_of(NATIVE_CURRENCY, MANAGER) == need0
        assert not manager.is_unlocked

    @pytest.mark.asyncio
    async def test_unsettled_delta_reverts_everything(self):
        chain, manager, _router, key = _setup()
        _fund_lp(chain, manager, key)
        lp = _Lp(manager, LP, settle=False)
        with pytest.raises(CurrencyNotSettledError):
            await manager.unlock(lp, {"key": key, "liquidity": LIQUIDITY})
        assert manager.get_liquidity(key.pool_id) == 0
        assert manager.currency_delta(LP, NATIVE_CURRENCY) == 0
        assert not manager.is_unlocked

    @pytest.mark.asyncio
    async def test_nested_unlock_rejected(self):
        chain, manager, _router, key = _setup()
        _fund_lp(chain, manager, key)
        with pytest.raises(AlreadyUnlockedError):
            await manager.unlock(_Lp(manager, LP), {"key": key, "liquidity": 1, "reenter": True})

    def test_operations_require_unlock(self):
        _chain, manager, _router, key = _setup()
        with pytest.raises(ManagerLockedError):
            manager.modify_liquidity(
                LP, key, ModifyLiquidityParams(tick_lower=-60, tick_upper=60, liquidity_delta=1)
            )
        with pytest.raises(ManagerLockedError):
            manager.sync(key.currency1)

    @pytest.mark.asyncio
    async def test_range_must_contain_price_and_match_spacing(self):
        _chain, manager, _router, key = _setup()

        class _BadRange:
            address = LP

            async def unlock_callback(self, sender, data):
                manager.modify_liquidity(
                    LP, key, ModifyLiquidityParams(**data, liquidity_delta=1)
                )

        with pytest.raises(InvalidInputError, match="contain"):
            await manager.unlock(_BadRange(), {"tick_lower": -120, "tick_upper": 60})
        with pytest.raises(InvalidInputError, match="multiples"):
            await manager.unlock(_BadRange(), {"tick_lower": -887272, "tick_upper": 887272})


class TestSwapsAndFees:
    @pytest.mark.asyncio
    async def test_swap_then_collect_fees(self):
        chain, manager, router, key = _setup()
        _fund_lp(chain, manager, key)
        lp = _Lp(manager, LP)
        await manager.unlock(lp, {"key": key, "liquidity": LIQUIDITY})
        sqrt_before, *_ = manager.get_slot0(key.pool_id)

        chain.ledger.mint(NATIVE_CURRENCY, TRADER, WAD)
        out = await router.swap_exact_in(TRADER, key, zero_for_one=True, amount_in=WAD)
        assert out > 0
        assert chain.ledger.balance_of(key.currency1, TRADER) == out
        assert chain.ledger.balance_of(NATIVE_CURRENCY, TRADER) == 0
        sqrt_after, *_ = manager.get_slot0(key.pool_id)
        assert sqrt_after < sqrt_before

        native_before = chain.ledger.balance_of(NATIVE_CURRENCY, LP)
        _delta, fees = await manager.unlock(lp, {"key": key, "liquidity": 0})
        # 0.3% of the input, less rounding.
        assert 3 * 10**15 - 10 <= fees.amount0 <= 3 * 10**15
        assert fees.amount1 == 0
        assert chain.ledger.balance_of(NATIVE_CURRENCY, LP) == native_before + fees.amount0

        # Nothing new accrues without more swaps.
        _delta, fees = await manager.unlock(lp, {"key": key, "liquidity": 0})
        assert tuple(fees) == (0, 0)

    @pytest.mark.asyncio
    async def test_swap_min_out_and_recipient(self):
        chain, manager, router, key = _setup()
        _fund_lp(chain, manager, key)
        await manager.unlock(_Lp(manager, LP), {"key": key, "liquidity": LIQUIDITY})

        chain.ledger.mint(key.currency1, TRADER, 1000 * WAD)
        with pytest.raises(SlippageExceededError):
            await router.swap_exact_in(
                TRADER, key, zero_for_one=False, amount_in=1000 * WAD, min_amount_out=WAD
            )
        # Reverted: the trader still holds the input.
        assert chain.ledger.balance_of(key.currency1, TRADER) == 1000 * WAD

        out = await router.swap_exact_in(
            TRADER, key, zero_for_one=False, amount_in=1000 * WAD, recipient=LP
        )
        assert chain.ledger.balance_of(NATIVE_CURRENCY, LP) == out

    @pytest.mark.asyncio
    async def test_donate_credits_in_range_liquidity(self):
        chain, manager, router, key = _setup()
        _fund_lp(chain, manager, key)
        lp = _Lp(manager, LP)
        await manager.unlock(lp, {"key": key, "liquidity": LIQUIDITY})

        chain.ledger.mint(key.currency1, TRADER, 5 * WAD)
        await router.donate(TRADER, key, 0, 5 * WAD)
        _delta, fees = await manager.unlock(lp, {"key": key, "liquidity": 0})
        assert 5 * WAD - 10 <= fees.amount1 <= 5 * WAD

    @pytest.mark.asyncio
    async def test_router_callback_checks_caller(self):
        _chain, _manager, router, key = _setup()
        with pytest.raises(UnauthorizedCallerError):
            await router.unlock_callback(TRADER, {"action": "swap", "key": key})
