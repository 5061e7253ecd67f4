"""Build a seeded simulated chain around a vault and replay scripted actions."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Literal

from eth_utils import to_checksum_address
from loguru import logger
from pydantic import BaseModel, Field, model_validator

from alignment_vault.adapters.concentrated_adapter.adapter import ConcentratedAdapter
from alignment_vault.adapters.constant_product_adapter.adapter import (
    ConstantProductAdapter,
)
from alignment_vault.adapters.onchain_adapter.adapter import (
    OnchainVenueKind,
    build_onchain_adapter,
)
from alignment_vault.core.adapters.models import PoolKey
from alignment_vault.core.chain import Chain
from alignment_vault.core.config import VaultSettings
from alignment_vault.core.constants.base import NATIVE_CURRENCY, TICK_SPACING, ZERO_ADDRESS
from alignment_vault.core.errors import VaultError
from alignment_vault.core.ledger import TokenLedger
from alignment_vault.core.utils.uniswap_v3_math import (
    amounts_for_liq_inrange,
    encode_sqrt_price_x96,
    full_range_ticks,
    liq_for_amounts,
    sqrt_price_x96_from_tick,
)
from alignment_vault.core.utils.units import to_erc20_raw, to_wei_eth
from alignment_vault.simulation.concentrated_pool import ConcentratedPool
from alignment_vault.simulation.constant_product import ConstantProductPair
from alignment_vault.simulation.pool_manager import PoolManager, PoolSwapper
from alignment_vault.vault.vault import AlignmentVault

DEPLOYER = "0x1000000000000000000000000000000000000001"
VAULT_ADDRESS = "0x2000000000000000000000000000000000000002"
POOL_MANAGER_ADDRESS = "0x3000000000000000000000000000000000000003"
ROUTER_ADDRESS = "0x4000000000000000000000000000000000000004"
PAIR_ADDRESS = "0x5000000000000000000000000000000000000005"
CONCENTRATED_POOL_ADDRESS = "0x6000000000000000000000000000000000000006"
TARGET_TOKEN = "0x7000000000000000000000000000000000000007"


class VenueSeed(BaseModel):
    # Native side of the seeded liquidity, in ether.
    depth_eth: Decimal
    # Target per native; defaults to the scenario price.
    price: Decimal | None = None


class QuoteVenue(BaseModel):
    """A live pool read over RPC that only takes part in price validation."""

    kind: OnchainVenueKind
    pool_address: str
    base_token: str
    pool_id: str | None = None
    rpc_url: str | None = None

    @model_validator(mode="after")
    def _hooked_needs_pool_id(self) -> QuoteVenue:
        if self.kind == "hooked_pool" and not self.pool_id:
            raise ValueError("hooked_pool quote venues need a pool_id")
        return self


class ScenarioAction(BaseModel):
    type: Literal["contribute", "convert", "swap", "advance", "claim"]
    sender: str | None = None
    amount_eth: Decimal = Decimal(0)
    # For sells, the amount is in target tokens.
    direction: Literal["buy", "sell"] = "buy"
    min_out: int = 0
    seconds: int = 0


class ScenarioConfig(BaseModel):
    target_decimals: int = 18
    price: Decimal = Decimal(1000)
    fee: int = 3000
    hooked_pool: VenueSeed | None = Field(
        default_factory=lambda: VenueSeed(depth_eth=Decimal(100))
    )
    concentrated: VenueSeed | None = None
    constant_product: VenueSeed | None = None
    gas_price_gwei: Decimal = Decimal(1)
    start_time: int = 1_700_000_000
    settings: VaultSettings = Field(default_factory=VaultSettings)
    quote_venues: list[QuoteVenue] = Field(default_factory=list)
    actions: list[ScenarioAction] = Field(default_factory=list)


@dataclass
class World:
    chain: Chain
    vault: AlignmentVault
    manager: PoolManager
    router: PoolSwapper
    key: PoolKey
    target: str
    pair: ConstantProductPair | None = None
    pool: ConcentratedPool | None = None

    @property
    def ledger(self) -> TokenLedger:
        return self.chain.ledger


def _target_raw(depth_eth: Decimal, price: Decimal, decimals: int) -> int:
    return to_erc20_raw(depth_eth * price, decimals)


def _sqrt_price(token0: str, native_raw: int, target_raw: int, wrapped: str) -> int:
    # sqrt(token1 / token0) for whichever side sorts first.
    if token0 in (NATIVE_CURRENCY, wrapped):
        return encode_sqrt_price_x96(target_raw, native_raw)
    return encode_sqrt_price_x96(native_raw, target_raw)


async def _mint_wrapped(ledger: TokenLedger, account: str, amount: int) -> None:
    ledger.mint(NATIVE_CURRENCY, account, amount)
    await ledger.wrap(account, amount)


async def seed_hooked_pool(
    manager: PoolManager,
    router: PoolSwapper,
    key: PoolKey,
    seed: VenueSeed | None,
    price: Decimal,
    decimals: int,
) -> int:
    """Initialise the pool; add full-range liquidity from the deployer if seeded."""
    ledger = manager.chain.ledger
    depth = seed.depth_eth if seed else Decimal(1)
    native_raw = to_wei_eth(depth)
    target_raw = _target_raw(depth, (seed.price if seed else None) or price, decimals)
    sqrt_price = _sqrt_price(key.currency0, native_raw, target_raw, ledger.wrapped_native)
    manager.initialize(key, sqrt_price)
    if seed is None:
        return 0
    tick_lower, tick_upper = full_range_ticks(key.tick_spacing)
    sqrt_a = sqrt_price_x96_from_tick(tick_lower)
    sqrt_b = sqrt_price_x96_from_tick(tick_upper)
    liquidity = liq_for_amounts(sqrt_price, sqrt_a, sqrt_b, native_raw, target_raw)
    need0, need1 = amounts_for_liq_inrange(sqrt_price, sqrt_a, sqrt_b, liquidity, round_up=True)
    ledger.mint(key.currency0, DEPLOYER, need0)
    ledger.mint(key.currency1, DEPLOYER, need1)
    await router.add_liquidity(DEPLOYER, key, tick_lower, tick_upper, liquidity)
    return liquidity


async def build_world(cfg: ScenarioConfig) -> World:
    ledger = TokenLedger()
    chain = Chain(
        ledger,
        timestamp=cfg.start_time,
        gas_price=to_erc20_raw(cfg.gas_price_gwei, 9),
    )
    target = ledger.register_token(TARGET_TOKEN, cfg.target_decimals)
    wrapped = ledger.wrapped_native

    manager = PoolManager(chain, POOL_MANAGER_ADDRESS)
    router = PoolSwapper(manager, ROUTER_ADDRESS)
    key = PoolKey(
        currency0=NATIVE_CURRENCY,
        currency1=target,
        fee=cfg.fee,
        tick_spacing=TICK_SPACING[cfg.fee],
        hooks=ZERO_ADDRESS,
    )
    await seed_hooked_pool(
        manager, router, key, cfg.hooked_pool, cfg.price, cfg.target_decimals
    )

    pair = None
    cp_adapter = None
    if cfg.constant_product is not None:
        pair = ConstantProductPair(chain, PAIR_ADDRESS, wrapped, target)
        native_raw = to_wei_eth(cfg.constant_product.depth_eth)
        target_raw = _target_raw(
            cfg.constant_product.depth_eth,
            cfg.constant_product.price or cfg.price,
            cfg.target_decimals,
        )
        await _mint_wrapped(ledger, DEPLOYER, native_raw)
        ledger.mint(target, DEPLOYER, target_raw)
        if pair.token0 == wrapped:
            await pair.seed(DEPLOYER, native_raw, target_raw)
        else:
            await pair.seed(DEPLOYER, target_raw, native_raw)
        cp_adapter = ConstantProductAdapter(pair, target)

    pool = None
    cl_adapter = None
    if cfg.concentrated is not None:
        pool = ConcentratedPool(chain, CONCENTRATED_POOL_ADDRESS, wrapped, target, fee=cfg.fee)
        native_raw = to_wei_eth(cfg.concentrated.depth_eth)
        target_raw = _target_raw(
            cfg.concentrated.depth_eth,
            cfg.concentrated.price or cfg.price,
            cfg.target_decimals,
        )
        sqrt_price = _sqrt_price(pool.token0, native_raw, target_raw, wrapped)
        tick_lower, tick_upper = full_range_ticks(pool.tick_spacing)
        liquidity = liq_for_amounts(
            sqrt_price,
            sqrt_price_x96_from_tick(tick_lower),
            sqrt_price_x96_from_tick(tick_upper),
            native_raw if pool.token0 == wrapped else target_raw,
            target_raw if pool.token0 == wrapped else native_raw,
        )
        # Round-up slack on both sides.
        await _mint_wrapped(ledger, DEPLOYER, native_raw + 1)
        ledger.mint(target, DEPLOYER, target_raw + 1)
        await pool.seed(DEPLOYER, sqrt_price, liquidity)
        cl_adapter = ConcentratedAdapter(pool, target)

    vault = AlignmentVault(
        chain,
        VAULT_ADDRESS,
        DEPLOYER,
        pool_manager=manager,
        router=router,
        constant_product=cp_adapter,
        concentrated=cl_adapter,
        quote_venues=[
            build_onchain_adapter(
                v.kind,
                pool_address=v.pool_address,
                base_token=v.base_token,
                pool_id=v.pool_id,
                rpc_url=v.rpc_url,
            )
            for v in cfg.quote_venues
        ],
        settings=cfg.settings,
    )
    await vault.set_target_asset(DEPLOYER, target)
    await vault.set_venue(DEPLOYER, key)
    logger.info(f"Simulation ready: vault {vault.address}, pool {key.pool_id[:10]}…")
    return World(
        chain=chain,
        vault=vault,
        manager=manager,
        router=router,
        key=key,
        target=target,
        pair=pair,
        pool=pool,
    )


async def run_action(world: World, action: ScenarioAction) -> dict[str, Any]:
    sender = to_checksum_address(action.sender or DEPLOYER)
    ledger = world.ledger
    result: dict[str, Any] = {"type": action.type, "sender": sender}
    try:
        if action.type == "contribute":
            amount = to_wei_eth(action.amount_eth)
            ledger.mint(NATIVE_CURRENCY, sender, amount)
            await world.vault.contribute(sender, amount)
            result["amount"] = amount
        elif action.type == "convert":
            result["liquidity"] = await world.vault.convert_and_add_liquidity(
                sender, action.min_out
            )
        elif action.type == "swap":
            buy = action.direction == "buy"
            if buy:
                amount = to_wei_eth(action.amount_eth)
                ledger.mint(NATIVE_CURRENCY, sender, amount)
            else:
                amount = to_erc20_raw(action.amount_eth, ledger.decimals(world.target))
                ledger.mint(world.target, sender, amount)
            result["amount_out"] = await world.router.swap_exact_in(
                sender, world.key, zero_for_one=buy, amount_in=amount
            )
        elif action.type == "advance":
            result["timestamp"] = world.chain.advance(action.seconds)
        elif action.type == "claim":
            result["claimed"] = await world.vault.claim_fees(sender)
    except VaultError as exc:
        logger.warning(f"{action.type} by {sender} failed: {exc}")
        result.update({"ok": False, "error": type(exc).__name__, "details": str(exc)})
        return result
    result["ok"] = True
    return result


async def run_scenario(cfg: ScenarioConfig) -> dict[str, Any]:
    world = await build_world(cfg)
    results = [await run_action(world, action) for action in cfg.actions]
    return {
        "results": results,
        "vault": world.vault.snapshot(),
        "events": [e.model_dump(mode="json") for e in world.vault.events],
    }
