from __future__ import annotations

import pytest

from alignment_vault.core.adapters.BaseAdapter import BaseAdapter
from alignment_vault.core.adapters.models import VenueQuote, VenueType
from alignment_vault.core.chain import Chain
from alignment_vault.core.config import VaultSettings
from alignment_vault.core.constants.base import NATIVE_CURRENCY
from alignment_vault.core.errors import (
    InvariantViolationError,
    NothingToClaimError,
    SlippageExceededError,
)
from alignment_vault.vault.fees import (
    absorb_fees,
    begin_claim,
    calculate_claimable,
    convert_target_to_base,
    harvest_due,
    require_position,
)
from alignment_vault.vault.state import Contributor, VaultState

OWNER = "0x1000000000000000000000000000000000000001"
VAULT = "0x2000000000000000000000000000000000000002"
TARGET = "0x7000000000000000000000000000000000000007"
ALICE = "0x1111111111111111111111111111111111111111"
BOB = "0x2222222222222222222222222222222222222222"
HOUR = 3600


class _Seller(BaseAdapter):
    """Buys the target asset from the vault at a fixed rate, or fails."""

    venue_type = VenueType.HOOKED_POOL

    def __init__(self, chain, name, rate=1, fail=False):
        super().__init__(name)
        self.chain = chain
        self.rate = rate
        self.fail = fail
        self.calls = 0

    async def quote(self) -> VenueQuote:
        raise NotImplementedError

    async def swap_exact_in(self, payer, token_in, amount_in, min_amount_out, recipient):
        self.calls += 1
        ledger = self.chain.ledger
        # Partial work that must be rolled back when the swap fails.
        await ledger.transfer(token_in, payer, self.name, amount_in)
        if self.fail:
            raise SlippageExceededError(0, min_amount_out)
        out = amount_in * self.rate
        ledger.mint(NATIVE_CURRENCY, recipient, out)
        return out


def _state(**kw) -> VaultState:
    state = VaultState(owner=OWNER, target_asset=TARGET, **kw)
    state.contributors = {
        ALICE: Contributor(address=ALICE, shares=300),
        BOB: Contributor(address=BOB, shares=100),
    }
    state.total_shares = 400
    state.total_lp_units = 400
    return state


class TestClaimable:
    def test_pro_rata_minus_checkpoint(self):
        state = _state(accumulated_fees=1000)
        assert calculate_claimable(state, ALICE) == 750
        assert calculate_claimable(state, BOB) == 250
        state.contributors[ALICE].claimed_checkpoint = 700
        assert calculate_claimable(state, ALICE) == 50

    def test_unknown_or_shareless(self):
        state = _state(accumulated_fees=1000)
        assert calculate_claimable(state, OWNER) == 0
        empty = VaultState(owner=OWNER, accumulated_fees=1000)
        assert calculate_claimable(empty, ALICE) == 0

    def test_begin_claim_advances_checkpoint(self):
        state = _state(accumulated_fees=1000)
        assert begin_claim(state, ALICE, now=42) == 750
        assert state.contributors[ALICE].claimed_checkpoint == 750
        assert state.contributors[ALICE].last_claim_at == 42
        with pytest.raises(NothingToClaimError):
            begin_claim(state, ALICE, now=43)

        state.accumulated_fees += 400
        assert begin_claim(state, ALICE, now=44) == 300


class TestHarvestDue:
    def test_requires_position(self):
        state = VaultState(owner=OWNER)
        assert not harvest_due(state, 10**9)

    def test_interval(self):
        state = _state(settings=VaultSettings(harvest_interval=HOUR))
        assert harvest_due(state, 100)
        state.last_harvest_at = 1000
        assert not harvest_due(state, 1000 + HOUR - 1)
        assert harvest_due(state, 1000 + HOUR)


def test_require_position():
    state = _state()
    require_position(400, state)
    with pytest.raises(InvariantViolationError):
        require_position(0, state)
    require_position(0, VaultState(owner=OWNER))


class TestConversion:
    @pytest.mark.asyncio
    async def test_falls_through_failed_venue(self):
        chain = Chain(timestamp=1)
        chain.ledger.mint(TARGET, VAULT, 50)
        bad = _Seller(chain, "0x" + "aa" * 20, fail=True)
        good = _Seller(chain, "0x" + "bb" * 20, rate=2)

        received = await convert_target_to_base(chain, VAULT, TARGET, 50, [bad, good])
        assert received == 100
        assert bad.calls == good.calls == 1
        assert chain.ledger.balance_of(TARGET, VAULT) == 0
        assert chain.ledger.balance_of(TARGET, bad.name) == 0

    @pytest.mark.asyncio
    async def test_all_fail_returns_zero(self):
        chain = Chain(timestamp=1)
        chain.ledger.mint(TARGET, VAULT, 50)
        bad = _Seller(chain, "0x" + "aa" * 20, fail=True)
        assert await convert_target_to_base(chain, VAULT, TARGET, 50, [bad]) == 0
        assert chain.ledger.balance_of(TARGET, VAULT) == 50

    @pytest.mark.asyncio
    async def test_absorb_credits_base_and_converted(self):
        chain = Chain(timestamp=1)
        chain.ledger.mint(TARGET, VAULT, 30)
        state = _state()
        venue = _Seller(chain, "0x" + "bb" * 20, rate=3)

        result = await absorb_fees(chain, state, VAULT, 10, 30, [venue])
        assert result.credited == 10 + 90
        assert result.target_converted == 90
        assert state.accumulated_fees == 100
        assert state.unconverted_target_fees == 0

    @pytest.mark.asyncio
    async def test_absorb_carries_unconverted_forward(self):
        chain = Chain(timestamp=1)
        chain.ledger.mint(TARGET, VAULT, 50)
        state = _state()
        bad = _Seller(chain, "0x" + "aa" * 20, fail=True)

        result = await absorb_fees(chain, state, VAULT, 5, 20, [bad])
        assert result.credited == 5
        assert state.unconverted_target_fees == 20

        # Next harvest retries the parked amount together with the new fees.
        good = _Seller(chain, "0x" + "bb" * 20)
        result = await absorb_fees(chain, state, VAULT, 0, 30, [good])
        assert result.target_fees == 50
        assert result.credited == 50
        assert state.unconverted_target_fees == 0
        assert state.accumulated_fees == 55
