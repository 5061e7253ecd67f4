from __future__ import annotations

from eth_utils import to_checksum_address
from loguru import logger

from alignment_vault.core.chain import Chain
from alignment_vault.core.errors import (
    InsufficientDepthError,
    InvalidInputError,
    SlippageExceededError,
)
from alignment_vault.core.utils.uniswap_v2_math import get_amount_out


class ConstantProductPair:
    """x*y=k pair whose reserves are its ledger balances."""

    def __init__(self, chain: Chain, address: str, token_a: str, token_b: str):
        a = to_checksum_address(token_a)
        b = to_checksum_address(token_b)
        if a == b:
            raise InvalidInputError("pair tokens must differ")
        self.chain = chain
        self.address = to_checksum_address(address)
        self.token0, self.token1 = (a, b) if int(a, 16) < int(b, 16) else (b, a)

    def get_reserves(self) -> tuple[int, int]:
        ledger = self.chain.ledger
        return (
            ledger.balance_of(self.token0, self.address),
            ledger.balance_of(self.token1, self.address),
        )

    def reserves_for(self, token_in: str) -> tuple[int, int]:
        r0, r1 = self.get_reserves()
        if to_checksum_address(token_in) == self.token0:
            return r0, r1
        if to_checksum_address(token_in) == self.token1:
            return r1, r0
        raise InvalidInputError(f"{token_in} is not in pair {self.address}")

    async def seed(self, provider: str, amount0: int, amount1: int) -> None:
        ledger = self.chain.ledger
        await ledger.transfer(self.token0, provider, self.address, amount0, call_hook=False)
        await ledger.transfer(self.token1, provider, self.address, amount1, call_hook=False)

    async def swap_exact_in(
        self,
        sender: str,
        token_in: str,
        amount_in: int,
        min_amount_out: int,
        recipient: str,
    ) -> int:
        reserve_in, reserve_out = self.reserves_for(token_in)
        if reserve_in == 0 or reserve_out == 0:
            raise InsufficientDepthError(f"pair {self.address} has no liquidity")
        amount_out = get_amount_out(amount_in, reserve_in, reserve_out)
        if amount_out < min_amount_out or amount_out == 0:
            raise SlippageExceededError(amount_out, min_amount_out)

        tin = to_checksum_address(token_in)
        tout = self.token1 if tin == self.token0 else self.token0
        ledger = self.chain.ledger
        await ledger.transfer(tin, sender, self.address, amount_in, call_hook=False)
        await ledger.transfer(tout, self.address, recipient, amount_out, call_hook=False)
        logger.debug(f"pair {self.address}: {amount_in} {tin} -> {amount_out} {tout}")
        return amount_out
