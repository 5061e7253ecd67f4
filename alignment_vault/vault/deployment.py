"""Liquidity deployment: swap part of the round, then add full-range liquidity.

Adding liquidity is a two-phase exchange with the pool manager. Inside the
manager's unlock callback a ``SettlementSession`` first *requests* the
position change, which yields the signed balance delta the vault now owes or
is owed, and then *settles* it: negative amounts are paid in, positive
amounts are taken out. The manager refuses to return from ``unlock`` with any
delta left open, so a session that is requested but never settled reverts.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from eth_utils import to_checksum_address
from loguru import logger
from pydantic import BaseModel

from alignment_vault.core.adapters.BaseAdapter import BaseAdapter
from alignment_vault.core.adapters.models import (
    ZERO_DELTA,
    BalanceDelta,
    ModifyLiquidityParams,
    PoolKey,
    VenueType,
)
from alignment_vault.core.constants.base import BPS_DENOMINATOR, NATIVE_CURRENCY
from alignment_vault.core.errors import (
    InsufficientDepthError,
    InvariantViolationError,
    SlippageExceededError,
)
from alignment_vault.core.ledger import TokenLedger
from alignment_vault.core.utils.uniswap_v3_math import (
    Q192,
    amounts_for_liq_inrange,
    full_range_ticks,
    liq_for_amounts,
    sqrt_price_x96_from_tick,
)
from alignment_vault.vault.price_aggregator import PriceCheck
from alignment_vault.vault.state import VaultState

if TYPE_CHECKING:
    from alignment_vault.simulation.pool_manager import PoolManager

HALF_BPS = BPS_DENOMINATOR // 2


class PositionRequest(BaseModel):
    """What the vault asks of its position inside one unlock."""

    tick_lower: int
    tick_upper: int
    # Zero collects accrued fees without touching principal.
    liquidity_delta: int


@dataclass
class SettlementResult:
    caller_delta: BalanceDelta
    fees_accrued: BalanceDelta


class SessionPhase(StrEnum):
    IDLE = "idle"
    REQUESTED = "requested"
    SETTLED = "settled"


class SettlementSession:
    """request -> settle, strictly once each, inside a single unlock callback."""

    def __init__(self, manager: PoolManager, owner: str, key: PoolKey) -> None:
        self.manager = manager
        self.owner = to_checksum_address(owner)
        self.key = key
        self.phase = SessionPhase.IDLE
        self.caller_delta = ZERO_DELTA
        self.fees_accrued = ZERO_DELTA

    def request(self, req: PositionRequest) -> BalanceDelta:
        if self.phase != SessionPhase.IDLE:
            raise InvariantViolationError(f"request() called in phase {self.phase}")
        self.caller_delta, self.fees_accrued = self.manager.modify_liquidity(
            self.owner,
            self.key,
            ModifyLiquidityParams(
                tick_lower=req.tick_lower,
                tick_upper=req.tick_upper,
                liquidity_delta=req.liquidity_delta,
            ),
        )
        self.phase = SessionPhase.REQUESTED
        return self.caller_delta

    async def settle(self) -> SettlementResult:
        if self.phase != SessionPhase.REQUESTED:
            raise InvariantViolationError(f"settle() called in phase {self.phase}")
        for currency, amount in (
            (self.key.currency0, self.caller_delta.amount0),
            (self.key.currency1, self.caller_delta.amount1),
        ):
            if amount < 0:
                await self._pay(currency, -amount)
            elif amount > 0:
                await self.manager.take(self.owner, currency, self.owner, amount)
        self.phase = SessionPhase.SETTLED
        return SettlementResult(
            caller_delta=self.caller_delta, fees_accrued=self.fees_accrued
        )

    async def _pay(self, currency: str, amount: int) -> None:
        if currency == NATIVE_CURRENCY:
            await self.manager.settle(self.owner, value=amount)
            return
        self.manager.sync(currency)
        await self.manager.chain.ledger.transfer(
            currency, self.owner, self.manager.address, amount, call_hook=False
        )
        await self.manager.settle(self.owner)


def compute_swap_proportion_bps(state: VaultState, sqrt_price_x96: int) -> int:
    """Share of the round to swap into the target asset, in basis points.

    Mirrors the value split of the existing position at the current price, or
    50/50 when there is no position or the price sits outside its range.
    """
    if (
        not state.has_position
        or state.tick_lower is None
        or state.tick_upper is None
        or sqrt_price_x96 <= 0
    ):
        return HALF_BPS
    sqrt_lower = sqrt_price_x96_from_tick(state.tick_lower)
    sqrt_upper = sqrt_price_x96_from_tick(state.tick_upper)
    if not sqrt_lower <= sqrt_price_x96 < sqrt_upper:
        return HALF_BPS
    amount_base, amount_target = amounts_for_liq_inrange(
        sqrt_price_x96, sqrt_lower, sqrt_upper, state.total_lp_units
    )
    target_in_base = amount_target * Q192 // (sqrt_price_x96 * sqrt_price_x96)
    total = amount_base + target_in_base
    if total == 0:
        return HALF_BPS
    return target_in_base * BPS_DENOMINATOR // total


def select_swap_venue(
    check: PriceCheck, adapters: dict[VenueType, BaseAdapter]
) -> BaseAdapter:
    """Hooked pool if it is deeper than the single-tick pool, else single-tick, else x*y=k."""

    def usable(venue_type: VenueType) -> tuple[BaseAdapter, int] | None:
        adapter = adapters.get(venue_type)
        if adapter is None or not adapter.supports_swaps:
            return None
        nq = check.for_adapter(adapter.name)
        if nq is None:
            return None
        return adapter, nq.quote.depth

    hooked = usable(VenueType.HOOKED_POOL)
    concentrated = usable(VenueType.CONCENTRATED)
    if hooked is not None and (concentrated is None or hooked[1] > concentrated[1]):
        return hooked[0]
    if concentrated is not None:
        return concentrated[0]
    constant_product = usable(VenueType.CONSTANT_PRODUCT)
    if constant_product is not None:
        return constant_product[0]
    raise InsufficientDepthError("no venue available to swap through")


async def swap_to_target(
    venue: BaseAdapter,
    ledger: TokenLedger,
    *,
    vault: str,
    target: str,
    amount_in: int,
    min_out: int,
) -> int:
    """Swap native into the target asset and return the realised output."""
    before = ledger.balance_of(target, vault)
    await venue.swap_exact_in(vault, NATIVE_CURRENCY, amount_in, min_out, vault)
    received = ledger.balance_of(target, vault) - before
    if received < min_out:
        raise SlippageExceededError(received, min_out)
    return received


def size_full_range_liquidity(
    sqrt_price_x96: int,
    tick_spacing: int,
    base_available: int,
    target_available: int,
) -> tuple[int, int, int]:
    """Largest full-range liquidity whose rounded-up cost fits the balances.

    Returns ``(tick_lower, tick_upper, liquidity)``.
    """
    tick_lower, tick_upper = full_range_ticks(tick_spacing)
    sqrt_lower = sqrt_price_x96_from_tick(tick_lower)
    sqrt_upper = sqrt_price_x96_from_tick(tick_upper)
    liquidity = liq_for_amounts(
        sqrt_price_x96, sqrt_lower, sqrt_upper, base_available, target_available
    )
    while liquidity > 0:
        need_base, need_target = amounts_for_liq_inrange(
            sqrt_price_x96, sqrt_lower, sqrt_upper, liquidity, round_up=True
        )
        if need_base <= base_available and need_target <= target_available:
            break
        liquidity -= 1
    return tick_lower, tick_upper, liquidity


async def deposit_full_range(
    manager: PoolManager,
    locker,
    request: PositionRequest,
) -> SettlementResult:
    result: SettlementResult = await manager.unlock(locker, request)
    logger.info(
        f"Position change {request.liquidity_delta} settled with delta "
        f"{tuple(result.caller_delta)}, fees {tuple(result.fees_accrued)}"
    )
    return result


def verify_position(
    manager: PoolManager, key: PoolKey, owner: str, state: VaultState
) -> None:
    """Local liquidity accounting must match what the venue holds for us."""
    if state.tick_lower is None or state.tick_upper is None:
        if state.total_lp_units:
            raise InvariantViolationError("liquidity recorded without a tick range")
        return
    onchain = manager.get_position_info(
        key.pool_id, owner, state.tick_lower, state.tick_upper
    ).liquidity
    if onchain != state.total_lp_units:
        raise InvariantViolationError(
            f"vault records {state.total_lp_units} liquidity, venue reports {onchain}"
        )
