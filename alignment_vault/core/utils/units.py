from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN

from alignment_vault.core.constants.base import WAD


def _to_decimal(value: str | int | float | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    return Decimal(str(value).strip())


def to_wei_eth(amount_eth: str | int | float | Decimal) -> int:
    try:
        amt = _to_decimal(amount_eth)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid ETH amount: {amount_eth}") from exc
    if amt < 0:
        raise ValueError("Amount must be non-negative")
    return int((amt * Decimal(WAD)).to_integral_value(rounding=ROUND_DOWN))


def to_erc20_raw(amount_tokens: str | int | float | Decimal, decimals: int) -> int:
    try:
        amt = _to_decimal(amount_tokens)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid token amount: {amount_tokens}") from exc
    if amt < 0:
        raise ValueError("Amount must be non-negative")
    scale = Decimal(10) ** int(decimals)
    return int((amt * scale).to_integral_value(rounding=ROUND_DOWN))


def normalize_to_18(raw: int, decimals: int) -> int:
    """Rescale a raw token amount (or per-unit price) to 18 decimals."""
    if decimals == 18:
        return int(raw)
    if decimals < 18:
        return int(raw) * 10 ** (18 - decimals)
    return int(raw) // 10 ** (decimals - 18)
