from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from alignment_vault.core.constants.base import SHARE_SCALE
from alignment_vault.core.errors import InvariantViolationError
from alignment_vault.vault.state import VaultState


@dataclass
class ShareIssuance:
    liquidity: int
    round_total: int
    contributions: dict[str, int] = field(default_factory=dict)
    minted: dict[str, int] = field(default_factory=dict)
    dust: int = 0
    largest_contributor: str | None = None
    # Set only when accumulated dust crossed the threshold this round.
    dust_recipient: str | None = None
    dust_redistributed: int = 0

    @property
    def total_minted(self) -> int:
        return sum(self.minted.values())


def issue_shares(
    state: VaultState,
    round_contributors: list[str],
    round_total: int,
    liquidity: int,
) -> ShareIssuance:
    """Mint ``liquidity`` shares across the round pro rata to pending value.

    Pending is cleared for every round contributor in the same pass, even when
    ``liquidity`` is zero and nobody receives anything.
    """
    result = ShareIssuance(liquidity=liquidity, round_total=round_total)
    if round_total <= 0:
        raise InvariantViolationError("share issuance with an empty round")

    largest_amount = 0
    for addr in round_contributors:
        record = state.contributors[addr]
        contribution = record.pending
        share_percent = contribution * SHARE_SCALE // round_total
        shares = liquidity * share_percent // SHARE_SCALE

        record.shares += shares
        state.total_shares += shares
        record.pending = 0
        state.total_pending -= contribution
        result.contributions[addr] = contribution
        result.minted[addr] = shares

        if contribution > largest_amount:
            largest_amount = contribution
            result.largest_contributor = addr

    result.dust = liquidity - result.total_minted
    if result.dust < 0:
        raise InvariantViolationError(
            f"minted {result.total_minted} shares from {liquidity} liquidity units"
        )
    state.accumulated_dust += result.dust

    threshold = state.settings.dust_threshold
    if (
        liquidity > 0
        and state.accumulated_dust > 0
        and state.accumulated_dust >= threshold
        and result.largest_contributor is not None
    ):
        amount = state.accumulated_dust
        state.contributors[result.largest_contributor].shares += amount
        state.total_shares += amount
        state.accumulated_dust = 0
        result.dust_recipient = result.largest_contributor
        result.dust_redistributed = amount
        logger.info(f"Redistributed {amount} dust shares to {result.largest_contributor}")

    if state.total_pending != 0:
        raise InvariantViolationError(
            f"pending value {state.total_pending} left after share issuance"
        )
    return result
