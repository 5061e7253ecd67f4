from __future__ import annotations


class VaultError(RuntimeError):
    """Base class for every failure raised by the vault and its venues."""


class InvalidInputError(VaultError):
    pass


class UnauthorizedCallerError(VaultError):
    def __init__(self, sender: str, action: str):
        self.sender = sender
        self.action = action
        super().__init__(f"{sender} is not allowed to {action}")


class ReentrancyError(VaultError):
    def __init__(self, fn_name: str):
        self.fn_name = fn_name
        super().__init__(f"Reentrant call to {fn_name}")


class MarketConditionError(VaultError):
    """Retryable: prices, depth or output moved against the caller."""


class PriceDeviationError(MarketConditionError):
    def __init__(self, venue_a: str, venue_b: str, deviation_bps: int, max_bps: int):
        self.venue_a = venue_a
        self.venue_b = venue_b
        self.deviation_bps = deviation_bps
        self.max_bps = max_bps
        super().__init__(
            f"Price deviation between {venue_a} and {venue_b} is {deviation_bps} bps "
            f"(max {max_bps} bps)"
        )


class InsufficientDepthError(MarketConditionError):
    pass


class SlippageExceededError(MarketConditionError):
    def __init__(self, amount_out: int, min_amount_out: int):
        self.amount_out = amount_out
        self.min_amount_out = min_amount_out
        super().__init__(f"Output {amount_out} below minimum {min_amount_out}")


class VenueUnavailableError(VaultError):
    pass


class NothingToClaimError(VaultError):
    def __init__(self, account: str):
        self.account = account
        super().__init__(f"Nothing new to claim for {account}")


class InvariantViolationError(VaultError):
    """Unrecoverable accounting mismatch. Never retried."""


class InsufficientBalanceError(VaultError):
    def __init__(self, token: str, account: str, balance: int, needed: int):
        self.token = token
        self.account = account
        self.balance = balance
        self.needed = needed
        super().__init__(
            f"Insufficient {token} balance for {account}: have {balance}, need {needed}"
        )


class TransferRejectedError(VaultError):
    def __init__(self, recipient: str, reason: str):
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"Transfer rejected by {recipient}: {reason}")


class TokenMetadataError(VaultError):
    pass


class ManagerLockedError(VaultError):
    pass


class AlreadyUnlockedError(VaultError):
    pass


class CurrencyNotSettledError(VaultError):
    def __init__(self, outstanding: dict[tuple[str, str], int]):
        self.outstanding = outstanding
        super().__init__(f"Unsettled currency deltas: {outstanding}")
