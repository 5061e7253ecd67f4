from __future__ import annotations

import inspect
from typing import Any, Protocol

from loguru import logger

from alignment_vault.core.constants.base import DEFAULT_TOKEN_DECIMALS


class DecimalsSource(Protocol):
    def decimals(self, token: str) -> Any: ...


async def probe_decimals(
    source: DecimalsSource, token: str, *, default: int = DEFAULT_TOKEN_DECIMALS
) -> int:
    """Ask ``source`` for a token's decimals, falling back to ``default``.

    Works with the in-memory ledger (sync) and the onchain reader (async).
    Tokens without metadata are common enough that this is not an error.
    """
    try:
        result = source.decimals(token)
        if inspect.isawaitable(result):
            result = await result
        value = int(result)
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"decimals() unavailable for {token}, using {default}: {exc}")
        return default
    if value < 0 or value > 77:
        logger.warning(f"decimals() for {token} returned {value}, using {default}")
        return default
    return value
