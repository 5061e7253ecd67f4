from __future__ import annotations

import copy
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger

from alignment_vault.core.constants.base import (
    DEFAULT_TOKEN_DECIMALS,
    NATIVE_CURRENCY,
    WRAPPED_NATIVE,
)
from alignment_vault.core.errors import (
    InsufficientBalanceError,
    InvalidInputError,
    TokenMetadataError,
    TransferRejectedError,
)

ReceiveHook = Callable[[str, int], Awaitable[Any]]


class TokenLedger:
    """Balances of every simulated asset, native currency included.

    Native transfers run the recipient's receive hook after the balance moves;
    a hook that raises reverts the transfer, the way a contract rejecting
    ``call{value: ...}`` would.
    """

    def __init__(self, *, wrapped_native: str = WRAPPED_NATIVE):
        self.wrapped_native = to_checksum_address(wrapped_native)
        self._balances: dict[str, dict[str, int]] = defaultdict(dict)
        self._decimals: dict[str, int | None] = {
            NATIVE_CURRENCY: DEFAULT_TOKEN_DECIMALS,
            self.wrapped_native: DEFAULT_TOKEN_DECIMALS,
        }
        self._receivers: dict[str, ReceiveHook] = {}

    def register_token(self, token: str, decimals: int | None = DEFAULT_TOKEN_DECIMALS) -> str:
        """Register a token. ``decimals=None`` models a token without metadata."""
        addr = to_checksum_address(token)
        self._decimals[addr] = decimals
        return addr

    def decimals(self, token: str) -> int:
        addr = to_checksum_address(token)
        if addr not in self._decimals:
            raise TokenMetadataError(f"Unknown token {addr}")
        value = self._decimals[addr]
        if value is None:
            raise TokenMetadataError(f"Token {addr} does not expose decimals()")
        return int(value)

    def register_receiver(self, account: str, hook: ReceiveHook) -> None:
        self._receivers[to_checksum_address(account)] = hook

    def unregister_receiver(self, account: str) -> None:
        self._receivers.pop(to_checksum_address(account), None)

    def balance_of(self, token: str, account: str) -> int:
        return self._balances[to_checksum_address(token)].get(
            to_checksum_address(account), 0
        )

    def mint(self, token: str, account: str, amount: int) -> None:
        if amount < 0:
            raise InvalidInputError("mint amount must be non-negative")
        book = self._balances[to_checksum_address(token)]
        acct = to_checksum_address(account)
        book[acct] = book.get(acct, 0) + int(amount)

    def _move(self, token: str, sender: str, recipient: str, amount: int) -> None:
        book = self._balances[token]
        balance = book.get(sender, 0)
        if balance < amount:
            raise InsufficientBalanceError(token, sender, balance, amount)
        book[sender] = balance - amount
        book[recipient] = book.get(recipient, 0) + amount

    async def transfer(
        self,
        token: str,
        sender: str,
        recipient: str,
        amount: int,
        *,
        call_hook: bool = True,
    ) -> None:
        if amount < 0:
            raise InvalidInputError("transfer amount must be non-negative")
        tok = to_checksum_address(token)
        src = to_checksum_address(sender)
        dst = to_checksum_address(recipient)
        hook = self._receivers.get(dst)
        if tok != NATIVE_CURRENCY or not call_hook or hook is None:
            self._move(tok, src, dst, int(amount))
            return

        # A rejected call unwinds every balance the hook touched, not just this one.
        snap = self.snapshot()
        self._move(tok, src, dst, int(amount))
        try:
            await hook(src, int(amount))
        except Exception as exc:
            self.restore(snap)
            logger.debug(f"Native transfer {src} -> {dst} rejected: {exc}")
            raise TransferRejectedError(dst, str(exc)) from exc

    async def wrap(self, account: str, amount: int) -> None:
        await self.transfer(
            NATIVE_CURRENCY, account, self.wrapped_native, amount, call_hook=False
        )
        self.mint(self.wrapped_native, account, amount)

    async def unwrap(self, account: str, amount: int) -> None:
        acct = to_checksum_address(account)
        self._move(self.wrapped_native, acct, self.wrapped_native, int(amount))
        await self.transfer(NATIVE_CURRENCY, self.wrapped_native, acct, amount)

    def snapshot(self) -> dict[str, dict[str, int]]:
        return copy.deepcopy(dict(self._balances))

    def restore(self, snap: dict[str, dict[str, int]]) -> None:
        self._balances = defaultdict(dict, copy.deepcopy(snap))
