from __future__ import annotations

from loguru import logger

from alignment_vault.core.config import VaultSettings
from alignment_vault.core.constants.base import NATIVE_CURRENCY
from alignment_vault.core.errors import TransferRejectedError, VaultError
from alignment_vault.core.ledger import TokenLedger
from alignment_vault.vault.events import RewardOutcome


def compute_conversion_reward(
    settings: VaultSettings, contributor_count: int, gas_price: int
) -> int:
    """(base gas + per-contributor gas * count) * gas price + fixed bonus."""
    gas_units = settings.base_conversion_gas + settings.gas_per_contributor * int(
        contributor_count
    )
    return gas_units * int(gas_price) + settings.conversion_reward


async def pay_reward(
    ledger: TokenLedger, payer: str, recipient: str, reward: int
) -> RewardOutcome:
    """Best-effort payment. Never raises; the caller's operation has already succeeded."""
    if reward <= 0:
        return RewardOutcome.NONE
    balance = ledger.balance_of(NATIVE_CURRENCY, payer)
    if balance < reward:
        logger.warning(f"Reward {reward} skipped: vault balance {balance} is insufficient")
        return RewardOutcome.INSUFFICIENT_BALANCE
    try:
        await ledger.transfer(NATIVE_CURRENCY, payer, recipient, reward)
    except TransferRejectedError as exc:
        logger.warning(f"Reward {reward} rejected by {recipient}: {exc.reason}")
        return RewardOutcome.REJECTED
    except VaultError as exc:
        logger.warning(f"Reward {reward} to {recipient} failed: {exc}")
        return RewardOutcome.REJECTED
    logger.info(f"Paid conversion reward {reward} to {recipient}")
    return RewardOutcome.PAID
