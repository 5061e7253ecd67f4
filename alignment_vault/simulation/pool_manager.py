"""Singleton pool manager with v4-style flash accounting.

A locker calls ``unlock``; the manager calls back ``locker.unlock_callback(
manager_address, data)``. Inside the callback the locker may modify liquidity,
swap or donate, which only record signed per-currency deltas. The locker then
pays what it owes (``sync`` + transfer + ``settle``, or ``settle(value=...)``
for native) and collects what it is owed (``take``). Every delta must be zero
when the callback returns or the whole unlock reverts.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Protocol

from eth_utils import to_checksum_address
from loguru import logger

from alignment_vault.core.adapters.models import (
    ZERO_DELTA,
    BalanceDelta,
    ModifyLiquidityParams,
    PoolKey,
    SwapParams,
)
from alignment_vault.core.chain import Chain
from alignment_vault.core.constants.base import (
    DYNAMIC_FEE_FLAG,
    MAX_TICK_SPACING,
    NATIVE_CURRENCY,
)
from alignment_vault.core.errors import (
    AlreadyUnlockedError,
    CurrencyNotSettledError,
    InsufficientDepthError,
    InvalidInputError,
    ManagerLockedError,
    SlippageExceededError,
    UnauthorizedCallerError,
)
from alignment_vault.core.utils.uniswap_v3_math import (
    MAX_TICK,
    MIN_TICK,
    Q128,
    amounts_for_liq_inrange,
    compute_swap_exact_in,
    sqrt_price_x96_from_tick,
    tick_from_sqrt_price_x96,
)


class Locker(Protocol):
    address: str

    async def unlock_callback(self, sender: str, data: Any) -> Any: ...


@dataclass
class PositionState:
    liquidity: int = 0
    fee_growth_inside0_last_x128: int = 0
    fee_growth_inside1_last_x128: int = 0


@dataclass
class PoolState:
    key: PoolKey
    sqrt_price_x96: int
    tick: int
    lp_fee: int
    liquidity: int = 0
    fee_growth_global0_x128: int = 0
    fee_growth_global1_x128: int = 0
    positions: dict[tuple[str, int, int, bytes], PositionState] = field(
        default_factory=dict
    )


class PoolManager:
    def __init__(self, chain: Chain, address: str):
        self.chain = chain
        self.address = to_checksum_address(address)
        self._pools: dict[str, PoolState] = {}
        self._unlocked = False
        self._deltas: dict[tuple[str, str], int] = defaultdict(int)
        self._synced: tuple[str, int] | None = None
        chain.register(self)

    def journal_snapshot(self) -> dict[str, PoolState]:
        return copy.deepcopy(self._pools)

    def journal_restore(self, snap: dict[str, PoolState]) -> None:
        self._pools = copy.deepcopy(snap)

    # ── pool lifecycle ──────────────────────────────────────────────────────

    def initialize(self, key: PoolKey, sqrt_price_x96: int) -> int:
        if int(key.currency0, 16) >= int(key.currency1, 16):
            raise InvalidInputError("currency0 must sort below currency1")
        if not 1 <= key.tick_spacing <= MAX_TICK_SPACING:
            raise InvalidInputError(f"tick spacing {key.tick_spacing} out of range")
        pid = key.pool_id
        if pid in self._pools:
            raise InvalidInputError(f"pool {pid} already initialized")
        tick = tick_from_sqrt_price_x96(sqrt_price_x96)
        lp_fee = 0 if key.fee == DYNAMIC_FEE_FLAG else int(key.fee)
        self._pools[pid] = PoolState(
            key=key, sqrt_price_x96=int(sqrt_price_x96), tick=tick, lp_fee=lp_fee
        )
        logger.info(f"Initialized pool {pid[:10]}… at tick {tick}")
        return tick

    def _pool(self, key_or_id: PoolKey | str) -> PoolState:
        pid = key_or_id.pool_id if isinstance(key_or_id, PoolKey) else key_or_id
        pool = self._pools.get(pid)
        if pool is None:
            raise InvalidInputError(f"pool {pid} not initialized")
        return pool

    # ── views (StateView equivalents) ───────────────────────────────────────

    def get_slot0(self, pool_id: str) -> tuple[int, int, int, int]:
        pool = self._pool(pool_id)
        return pool.sqrt_price_x96, pool.tick, 0, pool.lp_fee

    def get_liquidity(self, pool_id: str) -> int:
        return self._pool(pool_id).liquidity

    def get_position_info(
        self,
        pool_id: str,
        owner: str,
        tick_lower: int,
        tick_upper: int,
        salt: bytes = b"\x00" * 32,
    ) -> PositionState:
        pool = self._pool(pool_id)
        pos = pool.positions.get(
            (to_checksum_address(owner), int(tick_lower), int(tick_upper), salt)
        )
        return copy.copy(pos) if pos is not None else PositionState()

    def currency_delta(self, account: str, currency: str) -> int:
        return self._deltas.get(
            (to_checksum_address(account), to_checksum_address(currency)), 0
        )

    @property
    def is_unlocked(self) -> bool:
        return self._unlocked

    # ── flash accounting ────────────────────────────────────────────────────

    async def unlock(self, locker: Locker, data: Any) -> Any:
        if self._unlocked:
            raise AlreadyUnlockedError("pool manager is already unlocked")
        self._unlocked = True
        try:
            async with self.chain.atomic():
                result = await locker.unlock_callback(self.address, data)
                outstanding = {k: v for k, v in self._deltas.items() if v != 0}
                if outstanding:
                    raise CurrencyNotSettledError(outstanding)
                return result
        finally:
            self._unlocked = False
            self._deltas.clear()
            self._synced = None

    def _require_unlocked(self) -> None:
        if not self._unlocked:
            raise ManagerLockedError("pool manager is locked")

    def _account(self, account: str, currency: str, delta: int) -> None:
        if delta == 0:
            return
        self._deltas[(to_checksum_address(account), to_checksum_address(currency))] += delta

    def _account_pool_delta(self, account: str, key: PoolKey, delta: BalanceDelta) -> None:
        self._account(account, key.currency0, delta.amount0)
        self._account(account, key.currency1, delta.amount1)

    def modify_liquidity(
        self,
        sender: str,
        key: PoolKey,
        params: ModifyLiquidityParams,
        hook_data: bytes = b"",
    ) -> tuple[BalanceDelta, BalanceDelta]:
        """Return ``(caller_delta, fees_accrued)``; caller delta already includes fees."""
        self._require_unlocked()
        pool = self._pool(key)
        tl, tu = int(params.tick_lower), int(params.tick_upper)
        if tl >= tu or tl < MIN_TICK or tu > MAX_TICK:
            raise InvalidInputError(f"invalid tick range [{tl}, {tu}]")
        if tl % key.tick_spacing or tu % key.tick_spacing:
            raise InvalidInputError("ticks must be multiples of the tick spacing")
        if not tl <= pool.tick < tu:
            raise InvalidInputError("position range must contain the current price")

        owner = to_checksum_address(sender)
        pos_key = (owner, tl, tu, params.salt)
        pos = pool.positions.setdefault(pos_key, PositionState())

        # Single active range: fee growth inside equals global growth.
        owed0 = (
            (pool.fee_growth_global0_x128 - pos.fee_growth_inside0_last_x128)
            * pos.liquidity
        ) // Q128
        owed1 = (
            (pool.fee_growth_global1_x128 - pos.fee_growth_inside1_last_x128)
            * pos.liquidity
        ) // Q128
        pos.fee_growth_inside0_last_x128 = pool.fee_growth_global0_x128
        pos.fee_growth_inside1_last_x128 = pool.fee_growth_global1_x128

        delta_l = int(params.liquidity_delta)
        if pos.liquidity + delta_l < 0:
            raise InvalidInputError("cannot remove more liquidity than the position holds")

        principal = ZERO_DELTA
        if delta_l != 0:
            sqrt_a = sqrt_price_x96_from_tick(tl)
            sqrt_b = sqrt_price_x96_from_tick(tu)
            amount0, amount1 = amounts_for_liq_inrange(
                pool.sqrt_price_x96, sqrt_a, sqrt_b, abs(delta_l), round_up=delta_l > 0
            )
            principal = (
                BalanceDelta(-amount0, -amount1)
                if delta_l > 0
                else BalanceDelta(amount0, amount1)
            )
        pos.liquidity += delta_l
        pool.liquidity += delta_l

        fees_accrued = BalanceDelta(owed0, owed1)
        caller_delta = principal + fees_accrued
        self._account_pool_delta(owner, key, caller_delta)
        return caller_delta, fees_accrued

    def swap(self, sender: str, key: PoolKey, params: SwapParams, hook_data: bytes = b"") -> BalanceDelta:
        """Exact-input swap inside the active range."""
        self._require_unlocked()
        pool = self._pool(key)
        if params.amount_specified >= 0:
            raise InvalidInputError("only exact-input swaps (negative amount) are supported")
        if pool.liquidity == 0:
            raise InsufficientDepthError(f"pool {key.pool_id[:10]}… has no liquidity")
        amount_in = -int(params.amount_specified)
        try:
            sqrt_next, amount_out, fee_amount = compute_swap_exact_in(
                pool.sqrt_price_x96,
                pool.liquidity,
                amount_in,
                pool.lp_fee,
                zero_for_one=params.zero_for_one,
            )
        except ValueError as exc:
            raise InsufficientDepthError(str(exc)) from exc
        if params.zero_for_one and sqrt_next < params.sqrt_price_limit_x96:
            raise SlippageExceededError(amount_out, 0)
        if not params.zero_for_one and sqrt_next > params.sqrt_price_limit_x96:
            raise SlippageExceededError(amount_out, 0)

        growth = fee_amount * Q128 // pool.liquidity
        if params.zero_for_one:
            pool.fee_growth_global0_x128 += growth
            delta = BalanceDelta(-amount_in, amount_out)
        else:
            pool.fee_growth_global1_x128 += growth
            delta = BalanceDelta(amount_out, -amount_in)
        pool.sqrt_price_x96 = sqrt_next
        pool.tick = tick_from_sqrt_price_x96(sqrt_next)
        self._account_pool_delta(sender, key, delta)
        return delta

    def donate(self, sender: str, key: PoolKey, amount0: int, amount1: int) -> BalanceDelta:
        self._require_unlocked()
        pool = self._pool(key)
        if pool.liquidity == 0:
            raise InsufficientDepthError("cannot donate to a pool without liquidity")
        pool.fee_growth_global0_x128 += int(amount0) * Q128 // pool.liquidity
        pool.fee_growth_global1_x128 += int(amount1) * Q128 // pool.liquidity
        delta = BalanceDelta(-int(amount0), -int(amount1))
        self._account_pool_delta(sender, key, delta)
        return delta

    def sync(self, currency: str) -> None:
        self._require_unlocked()
        cur = to_checksum_address(currency)
        if cur == NATIVE_CURRENCY:
            self._synced = None
            return
        self._synced = (cur, self.chain.ledger.balance_of(cur, self.address))

    async def settle(self, sender: str, value: int = 0) -> int:
        self._require_unlocked()
        if self._synced is None:
            if value:
                await self.chain.ledger.transfer(
                    NATIVE_CURRENCY, sender, self.address, value, call_hook=False
                )
            self._account(sender, NATIVE_CURRENCY, int(value))
            return int(value)
        if value:
            raise InvalidInputError("native value sent while settling an ERC20")
        currency, reserves_before = self._synced
        paid = self.chain.ledger.balance_of(currency, self.address) - reserves_before
        self._synced = None
        self._account(sender, currency, paid)
        return paid

    async def take(self, sender: str, currency: str, to: str, amount: int) -> None:
        self._require_unlocked()
        self._account(sender, currency, -int(amount))
        await self.chain.ledger.transfer(currency, self.address, to, int(amount))


class PoolSwapper:
    """Router that lets an EOA trade or donate against the manager (test helper)."""

    def __init__(self, manager: PoolManager, address: str):
        self.manager = manager
        self.address = to_checksum_address(address)

    async def swap_exact_in(
        self,
        trader: str,
        key: PoolKey,
        *,
        zero_for_one: bool,
        amount_in: int,
        min_amount_out: int = 0,
        recipient: str | None = None,
    ) -> int:
        currency_in = key.currency0 if zero_for_one else key.currency1
        chain = self.manager.chain
        async with chain.atomic():
            await chain.ledger.transfer(
                currency_in, trader, self.address, amount_in, call_hook=False
            )
            return await self.manager.unlock(
                self,
                {
                    "action": "swap",
                    "recipient": to_checksum_address(recipient or trader),
                    "key": key,
                    "zero_for_one": zero_for_one,
                    "amount_in": int(amount_in),
                    "min_amount_out": int(min_amount_out),
                },
            )

    async def donate(self, donor: str, key: PoolKey, amount0: int, amount1: int) -> None:
        chain = self.manager.chain
        async with chain.atomic():
            await chain.ledger.transfer(key.currency0, donor, self.address, amount0, call_hook=False)
            await chain.ledger.transfer(key.currency1, donor, self.address, amount1, call_hook=False)
            await self.manager.unlock(
                self, {"action": "donate", "key": key, "amount0": amount0, "amount1": amount1}
            )

    async def add_liquidity(
        self, provider: str, key: PoolKey, tick_lower: int, tick_upper: int, liquidity: int
    ) -> BalanceDelta:
        """Add liquidity owned by this router on behalf of ``provider`` (pool seeding)."""
        return await self.manager.unlock(
            self,
            {
                "action": "add_liquidity",
                "provider": to_checksum_address(provider),
                "key": key,
                "tick_lower": int(tick_lower),
                "tick_upper": int(tick_upper),
                "liquidity": int(liquidity),
            },
        )

    async def unlock_callback(self, sender: str, data: dict[str, Any]) -> Any:
        if to_checksum_address(sender) != self.manager.address:
            raise UnauthorizedCallerError(sender, "call unlock_callback")
        key: PoolKey = data["key"]
        if data["action"] == "add_liquidity":
            delta, _ = self.manager.modify_liquidity(
                self.address,
                key,
                ModifyLiquidityParams(
                    tick_lower=data["tick_lower"],
                    tick_upper=data["tick_upper"],
                    liquidity_delta=data["liquidity"],
                ),
            )
            ledger = self.manager.chain.ledger
            for currency, owed in ((key.currency0, -delta.amount0), (key.currency1, -delta.amount1)):
                await ledger.transfer(currency, data["provider"], self.address, owed, call_hook=False)
                await self._pay(currency, owed)
            return delta
        if data["action"] == "donate":
            self.manager.donate(self.address, key, data["amount0"], data["amount1"])
            await self._pay(key.currency0, data["amount0"])
            await self._pay(key.currency1, data["amount1"])
            return None

        zero_for_one = data["zero_for_one"]
        delta = self.manager.swap(
            self.address,
            key,
            SwapParams(
                zero_for_one=zero_for_one,
                amount_specified=-data["amount_in"],
                sqrt_price_limit_x96=0 if zero_for_one else 2**160,
            ),
        )
        amount_out = delta.amount1 if zero_for_one else delta.amount0
        if amount_out < data["min_amount_out"]:
            raise SlippageExceededError(amount_out, data["min_amount_out"])
        currency_in, currency_out = (
            (key.currency0, key.currency1) if zero_for_one else (key.currency1, key.currency0)
        )
        await self._pay(currency_in, data["amount_in"])
        await self.manager.take(self.address, currency_out, data["recipient"], amount_out)
        return amount_out

    async def _pay(self, currency: str, amount: int) -> None:
        if amount <= 0:
            return
        if to_checksum_address(currency) == NATIVE_CURRENCY:
            await self.manager.settle(self.address, value=amount)
            return
        self.manager.sync(currency)
        await self.manager.chain.ledger.transfer(
            currency, self.address, self.manager.address, amount, call_hook=False
        )
        await self.manager.settle(self.address)
