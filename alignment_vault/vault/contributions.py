from __future__ import annotations

from eth_utils import is_address, to_checksum_address

from alignment_vault.core.constants.base import ZERO_ADDRESS
from alignment_vault.core.errors import InvalidInputError
from alignment_vault.vault.state import Contributor, VaultState


def validate_contribution(amount: int, contributor: str | None) -> str:
    if amount <= 0:
        raise InvalidInputError("contribution amount must be positive")
    if not contributor or not is_address(contributor):
        raise InvalidInputError("contributor identity is required")
    addr = to_checksum_address(contributor)
    if addr == ZERO_ADDRESS:
        raise InvalidInputError("contributor identity cannot be the zero address")
    return addr


def record_contribution(state: VaultState, contributor: str, amount: int) -> Contributor:
    """Add ``amount`` to the contributor's pending and lifetime totals.

    Joins the active set at most once per round.
    """
    addr = validate_contribution(amount, contributor)
    record = state.contributors.get(addr)
    if record is None:
        record = Contributor(address=addr)
        state.contributors[addr] = record
    if addr not in state.active_contributors:
        state.active_contributors.append(addr)
    record.pending += amount
    record.total_contributed += amount
    state.total_pending += amount
    state.total_received += amount
    return record


def clear_round(state: VaultState) -> None:
    state.active_contributors.clear()
