from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from alignment_vault.core.adapters.BaseAdapter import BaseAdapter
from alignment_vault.core.chain import Chain
from alignment_vault.core.constants.base import NATIVE_CURRENCY
from alignment_vault.core.errors import (
    InvariantViolationError,
    NothingToClaimError,
    VaultError,
)
from alignment_vault.vault.state import VaultState


@dataclass
class HarvestResult:
    base_fees: int
    target_fees: int
    target_converted: int
    credited: int


def harvest_due(state: VaultState, now: int) -> bool:
    if not state.has_position:
        return False
    if state.last_harvest_at is None:
        return True
    return now - state.last_harvest_at >= state.settings.harvest_interval


def calculate_claimable(state: VaultState, account: str) -> int:
    """Proportional share of the claimable pool minus what was already paid."""
    record = state.contributors.get(account)
    if record is None or record.shares == 0 or state.total_shares == 0:
        return 0
    current = state.accumulated_fees * record.shares // state.total_shares
    return current - record.claimed_checkpoint


async def convert_target_to_base(
    chain: Chain,
    vault: str,
    target: str,
    amount: int,
    venues: list[BaseAdapter],
) -> int:
    """Swap ``amount`` of the target asset into native, first venue that works.

    Each attempt runs in its own atomic block so a failed swap leaves no trace.
    Returns the native received, or 0 if every venue refused.
    """
    if amount <= 0:
        return 0
    ledger = chain.ledger
    for venue in venues:
        if not venue.supports_swaps:
            continue
        before = ledger.balance_of(NATIVE_CURRENCY, vault)
        try:
            async with chain.atomic():
                await venue.swap_exact_in(vault, target, amount, 0, vault)
        except VaultError as exc:
            logger.warning(f"Fee conversion via {venue.name} failed: {exc}")
            continue
        received = ledger.balance_of(NATIVE_CURRENCY, vault) - before
        logger.info(f"Converted {amount} target fees to {received} native via {venue.name}")
        return received
    logger.warning(f"No venue converted {amount} target fees; carrying them forward")
    return 0


async def absorb_fees(
    chain: Chain,
    state: VaultState,
    vault: str,
    base_fees: int,
    target_fees: int,
    venues: list[BaseAdapter],
) -> HarvestResult:
    """Credit collected fees to the claimable pool, converting the target part first.

    Target fees no venue would take are parked in ``unconverted_target_fees``.
    """
    target_total = target_fees + state.unconverted_target_fees
    converted = 0
    if target_total > 0 and state.target_asset is not None:
        converted = await convert_target_to_base(
            chain, vault, state.target_asset, target_total, venues
        )
        state.unconverted_target_fees = 0 if converted > 0 else target_total
    credited = base_fees + converted
    state.accumulated_fees += credited
    return HarvestResult(
        base_fees=base_fees,
        target_fees=target_total,
        target_converted=converted,
        credited=credited,
    )


def require_position(onchain_liquidity: int, state: VaultState) -> None:
    if state.total_lp_units > 0 and onchain_liquidity == 0:
        raise InvariantViolationError(
            f"vault records {state.total_lp_units} liquidity but the venue reports none"
        )


def begin_claim(state: VaultState, account: str, now: int) -> int:
    """Move the caller's checkpoint forward; the payout itself happens after."""
    claimable = calculate_claimable(state, account)
    if claimable <= 0:
        raise NothingToClaimError(account)
    record = state.contributors[account]
    record.claimed_checkpoint += claimable
    record.last_claim_at = now
    return claimable
