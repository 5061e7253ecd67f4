"""The alignment vault.

Contributions accumulate as pending value until anyone triggers a conversion
round. A round validates prices across the configured venues, swaps part of
the pending value into the target asset, adds everything as full-range
liquidity on the designated pool-manager pool and mints shares pro rata.
Shareholders claim trading fees earned by that position.

Every externally triggerable entry point is a coroutine taking the caller as
``sender``, runs inside ``chain.atomic()`` and, apart from the pool manager's
unlock callback, holds the vault's reentrancy lock.
"""

from __future__ import annotations

from typing import Any

from eth_utils import is_address, to_checksum_address
from loguru import logger
from pydantic import ValidationError

from alignment_vault.adapters.hooked_pool_adapter.adapter import HookedPoolAdapter
from alignment_vault.core.adapters.BaseAdapter import BaseAdapter
from alignment_vault.core.adapters.models import PoolKey, VenueType
from alignment_vault.core.chain import Chain
from alignment_vault.core.config import VaultSettings, get_vault_settings
from alignment_vault.core.constants.base import (
    BPS_DENOMINATOR,
    DYNAMIC_FEE_FLAG,
    MAX_TICK_SPACING,
    NATIVE_CURRENCY,
    TICK_SPACING,
    ZERO_ADDRESS,
)
from alignment_vault.core.errors import (
    InvalidInputError,
    InvariantViolationError,
    SlippageExceededError,
    UnauthorizedCallerError,
)
from alignment_vault.core.utils.reentrancy import nonreentrant
from alignment_vault.core.utils.tokens import DecimalsSource, probe_decimals
from alignment_vault.simulation.pool_manager import PoolManager, PoolSwapper
from alignment_vault.vault.contributions import (
    clear_round,
    record_contribution,
    validate_contribution,
)
from alignment_vault.vault.deployment import (
    PositionRequest,
    SettlementResult,
    SettlementSession,
    compute_swap_proportion_bps,
    deposit_full_range,
    select_swap_venue,
    size_full_range_liquidity,
    swap_to_target,
    verify_position,
)
from alignment_vault.vault.events import (
    ConfigurationChanged,
    ContributionReceived,
    ConversionExecuted,
    ConversionReward,
    DustRedistributed,
    FeesClaimed,
    FeesDeposited,
    FeesHarvested,
    SharesIssued,
    VaultEvent,
)
from alignment_vault.vault.fees import (
    HarvestResult,
    absorb_fees,
    begin_claim,
    calculate_claimable,
    harvest_due,
    require_position,
)
from alignment_vault.vault.incentives import compute_conversion_reward, pay_reward
from alignment_vault.vault.price_aggregator import PriceAggregator
from alignment_vault.vault.shares import issue_shares
from alignment_vault.vault.state import Contributor, VaultState


class AlignmentVault:
    def __init__(
        self,
        chain: Chain,
        address: str,
        owner: str,
        *,
        pool_manager: PoolManager,
        router: PoolSwapper,
        constant_product: BaseAdapter | None = None,
        concentrated: BaseAdapter | None = None,
        quote_venues: list[BaseAdapter] | None = None,
        settings: VaultSettings | None = None,
        token_metadata: DecimalsSource | None = None,
    ):
        self.chain = chain
        self.address = to_checksum_address(address)
        self.pool_manager = pool_manager
        self.router = router
        self.state = VaultState(
            owner=to_checksum_address(owner),
            settings=settings or get_vault_settings(),
        )
        self.adapters: dict[VenueType, BaseAdapter] = {}
        if constant_product is not None:
            self.adapters[VenueType.CONSTANT_PRODUCT] = constant_product
        if concentrated is not None:
            self.adapters[VenueType.CONCENTRATED] = concentrated
        # Read-only venues that take part in price validation only.
        self.quote_venues = list(quote_venues or [])
        self.token_metadata = token_metadata or chain.ledger
        self.aggregator = PriceAggregator()
        self.events: list[VaultEvent] = []
        self.logger = logger.bind(vault=self.address)

        chain.ledger.register_receiver(self.address, self.receive)
        chain.register(self)

    # ── journaling ──────────────────────────────────────────────────────────

    def journal_snapshot(self) -> tuple[VaultState, int, dict[VenueType, BaseAdapter]]:
        return self.state.model_copy(deep=True), len(self.events), dict(self.adapters)

    def journal_restore(
        self, snap: tuple[VaultState, int, dict[VenueType, BaseAdapter]]
    ) -> None:
        state, n_events, adapters = snap
        # In place: callers up the stack hold references to self.state.
        restored = state.model_copy(deep=True)
        for name in VaultState.model_fields:
            setattr(self.state, name, getattr(restored, name))
        del self.events[n_events:]
        self.adapters = dict(adapters)

    def _emit(self, event_cls: type[VaultEvent], **fields: Any) -> VaultEvent:
        event = event_cls(timestamp=self.chain.timestamp, **fields)
        self.events.append(event)
        self.logger.info(f"{event.name}: {event.model_dump(exclude={'name', 'timestamp'})}")
        return event

    # ── contributions ───────────────────────────────────────────────────────

    async def receive(self, sender: str, amount: int) -> None:
        """Native receive hook. Unwrap and pool-manager payouts are not contributions."""
        src = to_checksum_address(sender)
        if src in (self.chain.ledger.wrapped_native, self.pool_manager.address):
            self.logger.debug(f"Pass-through of {amount} from {src}")
            return
        await self._record_direct_contribution(src, amount)

    @nonreentrant
    async def _record_direct_contribution(self, sender: str, amount: int) -> None:
        async with self.chain.atomic():
            record_contribution(self.state, sender, amount)
            self._emit(ContributionReceived, contributor=sender, amount=amount, via="direct")

    async def contribute(self, sender: str, amount: int) -> None:
        """Send native to the vault, credited to ``sender``."""
        if amount <= 0:
            raise InvalidInputError("contribution amount must be positive")
        await self.chain.ledger.transfer(NATIVE_CURRENCY, sender, self.address, amount)

    @nonreentrant
    async def receive_contribution(
        self, sender: str, currency: str, amount: int, contributor: str | None
    ) -> None:
        """Contribution forwarded by an authorised fee router on someone's behalf."""
        router = to_checksum_address(sender)
        if router not in self.state.authorized_routers:
            raise UnauthorizedCallerError(router, "route contributions")
        if to_checksum_address(currency) != NATIVE_CURRENCY:
            raise InvalidInputError(f"unsupported contribution currency {currency}")
        addr = validate_contribution(amount, contributor)
        async with self.chain.atomic():
            await self.chain.ledger.transfer(
                NATIVE_CURRENCY, router, self.address, amount, call_hook=False
            )
            record_contribution(self.state, addr, amount)
            self._emit(ContributionReceived, contributor=addr, amount=amount, via=router)

    # ── conversion ──────────────────────────────────────────────────────────

    @nonreentrant
    async def convert_and_add_liquidity(self, sender: str, min_out_target: int) -> int:
        """Run one conversion round and return the liquidity units it created."""
        caller = to_checksum_address(sender)
        if min_out_target < 0:
            raise InvalidInputError("minimum output cannot be negative")
        state = self.state
        if state.target_asset is None or state.venue is None:
            raise InvalidInputError("target asset and venue must be configured")
        if state.total_pending <= 0:
            raise InvalidInputError("no pending contributions to convert")

        async with self.chain.atomic():
            round_contributors = list(state.active_contributors)
            round_total = state.total_pending
            key = state.venue

            sqrt_price, *_ = self.pool_manager.get_slot0(key.pool_id)
            proportion = compute_swap_proportion_bps(state, sqrt_price)
            swap_amount = round_total * proportion // BPS_DENOMINATOR

            check = await self.aggregator.validate(
                self._pricing_venues(),
                target_decimals=state.target_decimals,
                swap_amount=swap_amount,
                settings=state.settings,
            )

            target_out = 0
            swap_venue: str | None = None
            if swap_amount > 0:
                venue = select_swap_venue(check, self.adapters)
                target_out = await swap_to_target(
                    venue,
                    self.chain.ledger,
                    vault=self.address,
                    target=state.target_asset,
                    amount_in=swap_amount,
                    min_out=min_out_target,
                )
                swap_venue = venue.name
            elif min_out_target > 0:
                raise SlippageExceededError(0, min_out_target)

            sqrt_price, *_ = self.pool_manager.get_slot0(key.pool_id)
            tick_lower, tick_upper, liquidity = size_full_range_liquidity(
                sqrt_price, key.tick_spacing, round_total - swap_amount, target_out
            )
            if liquidity > 0:
                result = await deposit_full_range(
                    self.pool_manager,
                    self,
                    PositionRequest(
                        tick_lower=tick_lower,
                        tick_upper=tick_upper,
                        liquidity_delta=liquidity,
                    ),
                )
                state.tick_lower, state.tick_upper = tick_lower, tick_upper
                state.total_lp_units += liquidity
                verify_position(self.pool_manager, key, self.address, state)
                fees = result.fees_accrued
                if fees.amount0 or fees.amount1:
                    await self._absorb(fees.amount0, fees.amount1)

            issuance = issue_shares(state, round_contributors, round_total, liquidity)
            for addr, shares in issuance.minted.items():
                self._emit(
                    SharesIssued,
                    contributor=addr,
                    contribution=issuance.contributions[addr],
                    shares=shares,
                )
            if issuance.dust_recipient is not None:
                self._emit(
                    DustRedistributed,
                    recipient=issuance.dust_recipient,
                    shares=issuance.dust_redistributed,
                )
            clear_round(state)
            if state.total_shares + state.accumulated_dust != state.total_lp_units:
                raise InvariantViolationError(
                    f"shares {state.total_shares} + dust {state.accumulated_dust} "
                    f"!= liquidity {state.total_lp_units}"
                )
            self._emit(
                ConversionExecuted,
                caller=caller,
                round_total=round_total,
                swapped_in=swap_amount,
                target_out=target_out,
                liquidity=liquidity,
                swap_venue=swap_venue,
                contributor_count=len(round_contributors),
            )

            reward = compute_conversion_reward(
                state.settings, len(round_contributors), self.chain.gas_price
            )
            outcome = await pay_reward(self.chain.ledger, self.address, caller, reward)
            self._emit(ConversionReward, recipient=caller, amount=reward, outcome=outcome)
        return liquidity

    def _pricing_venues(self) -> list[BaseAdapter]:
        return self._execution_venues() + self.quote_venues

    async def unlock_callback(self, sender: str, data: Any) -> SettlementResult:
        """Pool-manager callback. Guarded by caller identity, not by the lock."""
        if to_checksum_address(sender) != self.pool_manager.address:
            raise UnauthorizedCallerError(sender, "call unlock_callback")
        if not isinstance(data, PositionRequest) or self.state.venue is None:
            raise InvalidInputError("unexpected unlock payload")
        session = SettlementSession(self.pool_manager, self.address, self.state.venue)
        session.request(data)
        return await session.settle()

    # ── fees ────────────────────────────────────────────────────────────────

    def _execution_venues(self) -> list[BaseAdapter]:
        # Deployment venue first, then the simple-swap fallbacks.
        return [
            self.adapters[t]
            for t in (VenueType.HOOKED_POOL, VenueType.CONCENTRATED, VenueType.CONSTANT_PRODUCT)
            if t in self.adapters
        ]

    async def _absorb(self, base_fees: int, target_fees: int) -> HarvestResult:
        result = await absorb_fees(
            self.chain,
            self.state,
            self.address,
            base_fees,
            target_fees,
            self._execution_venues(),
        )
        self._emit(
            FeesHarvested,
            base_fees=result.base_fees,
            target_fees=result.target_fees,
            target_converted=result.target_converted,
            credited=result.credited,
        )
        return result

    async def _harvest(self) -> HarvestResult:
        state = self.state
        key = state.venue
        if key is None or state.tick_lower is None or state.tick_upper is None:
            raise InvariantViolationError("position recorded without a venue")
        onchain = self.pool_manager.get_position_info(
            key.pool_id, self.address, state.tick_lower, state.tick_upper
        ).liquidity
        require_position(onchain, state)
        collected = await deposit_full_range(
            self.pool_manager,
            self,
            PositionRequest(
                tick_lower=state.tick_lower,
                tick_upper=state.tick_upper,
                liquidity_delta=0,
            ),
        )
        fees = collected.fees_accrued
        result = await self._absorb(fees.amount0, fees.amount1)
        state.last_harvest_at = self.chain.timestamp
        return result

    @nonreentrant
    async def claim_fees(self, sender: str) -> int:
        """Harvest if due, then pay the caller's unclaimed share of fees."""
        account = to_checksum_address(sender)
        async with self.chain.atomic():
            if harvest_due(self.state, self.chain.timestamp):
                await self._harvest()
            amount = begin_claim(self.state, account, self.chain.timestamp)
            await self.chain.ledger.transfer(NATIVE_CURRENCY, self.address, account, amount)
            self._emit(FeesClaimed, account=account, amount=amount)
        return amount

    # ── administration ──────────────────────────────────────────────────────

    def _require_owner(self, sender: str, action: str) -> None:
        if to_checksum_address(sender) != self.state.owner:
            raise UnauthorizedCallerError(sender, action)

    async def set_target_asset(self, sender: str, token: str) -> None:
        self._require_owner(sender, "set the target asset")
        if not is_address(token) or to_checksum_address(token) == ZERO_ADDRESS:
            raise InvalidInputError(f"invalid target asset {token!r}")
        if self.state.has_position:
            raise InvalidInputError("target asset is fixed once liquidity exists")
        addr = to_checksum_address(token)
        for adapter in self.adapters.values():
            bound = getattr(adapter, "target_token", addr)
            if bound != addr:
                raise InvalidInputError(f"{adapter.name} is bound to target {bound}")
        decimals = await probe_decimals(self.token_metadata, addr)
        self.state.target_asset = addr
        self.state.target_decimals = decimals
        if self.state.venue is not None and self.state.venue.currency1 != addr:
            self.state.venue = None
            self.adapters.pop(VenueType.HOOKED_POOL, None)
        self._emit(ConfigurationChanged, field="target_asset", value=f"{addr} ({decimals} decimals)")

    async def set_venue(self, sender: str, key: PoolKey) -> None:
        self._require_owner(sender, "set the venue")
        state = self.state
        if state.target_asset is None:
            raise InvalidInputError("set the target asset before the venue")
        if state.has_position:
            raise InvalidInputError("venue is fixed once liquidity exists")
        wrapped = self.chain.ledger.wrapped_native
        if wrapped in (key.currency0, key.currency1):
            raise InvalidInputError("venue must pair the native currency, not its wrapped token")
        if key.currency0 != NATIVE_CURRENCY:
            raise InvalidInputError("venue currency0 must be the native currency")
        if key.currency1 != state.target_asset:
            raise InvalidInputError(
                f"venue currency1 {key.currency1} is not the target {state.target_asset}"
            )
        if not 1 <= key.tick_spacing <= MAX_TICK_SPACING:
            raise InvalidInputError(f"tick spacing {key.tick_spacing} out of range")
        if key.fee == DYNAMIC_FEE_FLAG:
            if key.hooks == ZERO_ADDRESS:
                raise InvalidInputError("dynamic-fee pools need a hooks contract")
        elif TICK_SPACING.get(key.fee) != key.tick_spacing:
            raise InvalidInputError(
                f"fee {key.fee} does not match tick spacing {key.tick_spacing}"
            )
        state.venue = key
        self.adapters[VenueType.HOOKED_POOL] = HookedPoolAdapter(
            self.pool_manager, key, self.router
        )
        self._emit(ConfigurationChanged, field="venue", value=key.pool_id)

    async def _update_setting(self, sender: str, field: str, value: int) -> None:
        self._require_owner(sender, f"set {field}")
        try:
            setattr(self.state.settings, field, value)
        except ValidationError as exc:
            raise InvalidInputError(f"invalid {field}: {value}") from exc
        self._emit(ConfigurationChanged, field=field, value=str(value))

    async def set_conversion_reward(self, sender: str, amount: int) -> None:
        await self._update_setting(sender, "conversion_reward", amount)

    async def set_max_price_deviation_bps(self, sender: str, bps: int) -> None:
        await self._update_setting(sender, "max_price_deviation_bps", bps)

    async def set_dust_threshold(self, sender: str, threshold: int) -> None:
        await self._update_setting(sender, "dust_threshold", threshold)

    async def set_harvest_interval(self, sender: str, seconds: int) -> None:
        await self._update_setting(sender, "harvest_interval", seconds)

    async def set_router_authorization(self, sender: str, router: str, authorized: bool) -> None:
        self._require_owner(sender, "authorise routers")
        if not is_address(router):
            raise InvalidInputError(f"invalid router {router!r}")
        addr = to_checksum_address(router)
        if authorized:
            self.state.authorized_routers.add(addr)
        else:
            self.state.authorized_routers.discard(addr)
        self._emit(ConfigurationChanged, field="router", value=f"{addr}={authorized}")

    async def transfer_ownership(self, sender: str, new_owner: str) -> None:
        self._require_owner(sender, "transfer ownership")
        if not is_address(new_owner) or to_checksum_address(new_owner) == ZERO_ADDRESS:
            raise InvalidInputError(f"invalid owner {new_owner!r}")
        self.state.owner = to_checksum_address(new_owner)
        self._emit(ConfigurationChanged, field="owner", value=self.state.owner)

    @nonreentrant
    async def deposit_fees(self, sender: str, amount: int) -> None:
        """Top up the claimable pool with native sent by the owner."""
        self._require_owner(sender, "deposit fees")
        if amount <= 0:
            raise InvalidInputError("deposit amount must be positive")
        owner = to_checksum_address(sender)
        async with self.chain.atomic():
            await self.chain.ledger.transfer(
                NATIVE_CURRENCY, owner, self.address, amount, call_hook=False
            )
            self.state.accumulated_fees += amount
            self._emit(FeesDeposited, sender=owner, amount=amount)

    # ── views ───────────────────────────────────────────────────────────────

    def calculate_claimable(self, account: str) -> int:
        return max(0, calculate_claimable(self.state, to_checksum_address(account)))

    def get_contributor(self, account: str) -> Contributor:
        return self.state.contributor(to_checksum_address(account)).model_copy()

    @property
    def active_contributor_count(self) -> int:
        return len(self.state.active_contributors)

    def snapshot(self) -> dict[str, Any]:
        state = self.state
        return {
            "address": self.address,
            "owner": state.owner,
            "target_asset": state.target_asset,
            "target_decimals": state.target_decimals,
            "pool_id": state.venue.pool_id if state.venue else None,
            "tick_lower": state.tick_lower,
            "tick_upper": state.tick_upper,
            "total_shares": state.total_shares,
            "total_pending": state.total_pending,
            "total_received": state.total_received,
            "accumulated_fees": state.accumulated_fees,
            "total_lp_units": state.total_lp_units,
            "accumulated_dust": state.accumulated_dust,
            "unconverted_target_fees": state.unconverted_target_fees,
            "last_harvest_at": state.last_harvest_at,
            "contributors": len(state.contributors),
            "active_contributors": len(state.active_contributors),
            "native_balance": self.chain.ledger.balance_of(NATIVE_CURRENCY, self.address),
            "settings": state.settings.model_dump(),
        }
