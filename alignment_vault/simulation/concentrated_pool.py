from __future__ import annotations

from dataclasses import dataclass, replace

from eth_utils import to_checksum_address
from loguru import logger

from alignment_vault.core.chain import Chain
from alignment_vault.core.constants.base import TICK_SPACING
from alignment_vault.core.errors import (
    InsufficientDepthError,
    InvalidInputError,
    SlippageExceededError,
)
from alignment_vault.core.utils.uniswap_v3_math import (
    amounts_for_liq_inrange,
    compute_swap_exact_in,
    full_range_ticks,
    sqrt_price_x96_from_tick,
    tick_from_sqrt_price_x96,
)


@dataclass
class Slot0:
    sqrt_price_x96: int
    tick: int
    unlocked: bool


class ConcentratedPool:
    """Single-active-range pool: one price, one block of active liquidity."""

    def __init__(
        self,
        chain: Chain,
        address: str,
        token_a: str,
        token_b: str,
        fee: int = 3000,
    ):
        a = to_checksum_address(token_a)
        b = to_checksum_address(token_b)
        if a == b:
            raise InvalidInputError("pool tokens must differ")
        if fee not in TICK_SPACING:
            raise InvalidInputError(f"Unknown fee tier {fee}; expected one of {list(TICK_SPACING)}")
        self.chain = chain
        self.address = to_checksum_address(address)
        self.token0, self.token1 = (a, b) if int(a, 16) < int(b, 16) else (b, a)
        self.fee = fee
        self.tick_spacing = TICK_SPACING[fee]
        self._slot0 = Slot0(sqrt_price_x96=0, tick=0, unlocked=True)
        self._liquidity = 0
        chain.register(self)

    def journal_snapshot(self) -> tuple[Slot0, int]:
        return replace(self._slot0), self._liquidity

    def journal_restore(self, snap: tuple[Slot0, int]) -> None:
        self._slot0, self._liquidity = replace(snap[0]), snap[1]

    def slot0(self) -> Slot0:
        return replace(self._slot0)

    def liquidity(self) -> int:
        return self._liquidity

    def set_locked(self, locked: bool) -> None:
        """Mimic a pool caught mid-swap (reentrancy lock held)."""
        self._slot0.unlocked = not locked

    async def seed(self, provider: str, sqrt_price_x96: int, liquidity: int) -> tuple[int, int]:
        """Initialise (if needed) and add full-range liquidity paid by ``provider``."""
        if self._slot0.sqrt_price_x96 == 0:
            self._slot0.sqrt_price_x96 = int(sqrt_price_x96)
            self._slot0.tick = tick_from_sqrt_price_x96(int(sqrt_price_x96))
        tick_lower, tick_upper = full_range_ticks(self.tick_spacing)
        amount0, amount1 = amounts_for_liq_inrange(
            self._slot0.sqrt_price_x96,
            sqrt_price_x96_from_tick(tick_lower),
            sqrt_price_x96_from_tick(tick_upper),
            liquidity,
            round_up=True,
        )
        ledger = self.chain.ledger
        await ledger.transfer(self.token0, provider, self.address, amount0, call_hook=False)
        await ledger.transfer(self.token1, provider, self.address, amount1, call_hook=False)
        self._liquidity += int(liquidity)
        return amount0, amount1

    async def swap_exact_in(
        self,
        sender: str,
        token_in: str,
        amount_in: int,
        min_amount_out: int,
        recipient: str,
    ) -> int:
        if not self._slot0.unlocked:
            raise InvalidInputError(f"pool {self.address} is locked")
        if self._liquidity == 0 or self._slot0.sqrt_price_x96 == 0:
            raise InsufficientDepthError(f"pool {self.address} has no active liquidity")
        tin = to_checksum_address(token_in)
        if tin not in (self.token0, self.token1):
            raise InvalidInputError(f"{token_in} is not in pool {self.address}")
        zero_for_one = tin == self.token0
        try:
            sqrt_next, amount_out, _ = compute_swap_exact_in(
                self._slot0.sqrt_price_x96,
                self._liquidity,
                amount_in,
                self.fee,
                zero_for_one=zero_for_one,
            )
        except ValueError as exc:
            raise InsufficientDepthError(str(exc)) from exc
        if amount_out < min_amount_out or amount_out == 0:
            raise SlippageExceededError(amount_out, min_amount_out)

        tout = self.token1 if zero_for_one else self.token0
        ledger = self.chain.ledger
        await ledger.transfer(tin, sender, self.address, amount_in, call_hook=False)
        await ledger.transfer(tout, self.address, recipient, amount_out, call_hook=False)
        self._slot0.sqrt_price_x96 = sqrt_next
        self._slot0.tick = tick_from_sqrt_price_x96(sqrt_next)
        logger.debug(f"pool {self.address}: {amount_in} {tin} -> {amount_out} {tout}")
        return amount_out
