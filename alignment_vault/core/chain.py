from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol

from loguru import logger

from alignment_vault.core.constants.base import ONE_GWEI
from alignment_vault.core.ledger import TokenLedger


class Journaled(Protocol):
    def journal_snapshot(self) -> Any: ...

    def journal_restore(self, snap: Any) -> None: ...


class Chain:
    """Execution environment shared by the vault and the venues it talks to.

    ``atomic()`` gives every entry point revert semantics: the ledger and all
    registered participants are restored if the wrapped block raises.
    """

    def __init__(
        self,
        ledger: TokenLedger | None = None,
        *,
        timestamp: int | None = None,
        gas_price: int = ONE_GWEI,
    ):
        self.ledger = ledger or TokenLedger()
        self.timestamp = int(timestamp if timestamp is not None else time.time())
        self.gas_price = int(gas_price)
        self._participants: list[Journaled] = []

    def register(self, participant: Journaled) -> None:
        if participant not in self._participants:
            self._participants.append(participant)

    def advance(self, seconds: int) -> int:
        self.timestamp += int(seconds)
        return self.timestamp

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        ledger_snap = self.ledger.snapshot()
        snaps = [(p, p.journal_snapshot()) for p in self._participants]
        try:
            yield
        except BaseException as exc:
            self.ledger.restore(ledger_snap)
            for participant, snap in snaps:
                participant.journal_restore(snap)
            logger.debug(f"Reverted state after {type(exc).__name__}: {exc}")
            raise
