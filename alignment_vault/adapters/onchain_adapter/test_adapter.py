from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from alignment_vault.adapters.onchain_adapter.adapter import (
    OnchainConcentratedAdapter,
    OnchainConstantProductAdapter,
    OnchainHookedPoolAdapter,
    OnchainTokenMetadata,
    _OnchainQuoteAdapter,
    build_onchain_adapter,
)
from alignment_vault.core.constants.base import WAD
from alignment_vault.core.errors import InvalidInputError, VenueUnavailableError
from alignment_vault.core.utils.tokens import probe_decimals
from alignment_vault.core.utils.uniswap_v3_math import encode_sqrt_price_x96

MODULE = "alignment_vault.adapters.onchain_adapter.adapter"
WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
TOKEN = "0x1111111111111111111111111111111111111111"
POOL = "0x2222222222222222222222222222222222222222"
POOL_ID = "0x" + "ab" * 32


class _FakeCall:
    def __init__(self, rv):
        self._rv = rv

    async def call(self, *args, **kwargs):
        if isinstance(self._rv, Exception):
            raise self._rv
        return self._rv


class _FakePair:
    def __init__(self, reserves, token0):
        self._reserves = reserves
        self._token0 = token0

    @property
    def functions(self):
        return self

    def getReserves(self):  # noqa: N802
        return _FakeCall((*self._reserves, 0))

    def token0(self):
        return _FakeCall(self._token0)


class _FakePool:
    def __init__(self, sqrt_price, liquidity, token0, unlocked=True):
        self._slot0 = (sqrt_price, 0, 0, 1, 1, 0, unlocked)
        self._liquidity = liquidity
        self._token0 = token0

    @property
    def functions(self):
        return self

    def slot0(self):
        return _FakeCall(self._slot0)

    def liquidity(self):
        return _FakeCall(self._liquidity)

    def token0(self):
        return _FakeCall(self._token0)


class _FakeStateView:
    def __init__(self, sqrt_price, liquidity):
        self._sqrt_price = sqrt_price
        self._liquidity = liquidity
        self.pool_ids: list[bytes] = []

    @property
    def functions(self):
        return self

    def getSlot0(self, pool_id):  # noqa: N802
        self.pool_ids.append(pool_id)
        return _FakeCall((self._sqrt_price, 0, 0, 3000))

    def getLiquidity(self, pool_id):  # noqa: N802
        return _FakeCall(self._liquidity)


class _FakeErc20:
    def __init__(self, decimals):
        self._decimals = decimals

    @property
    def functions(self):
        return self

    def decimals(self):
        return _FakeCall(self._decimals)


class _Web3Ctx:
    """Async context manager returning a fake w3 with a specific contract."""

    def __init__(self, contract):
        self._contract = contract

    async def __aenter__(self):
        w3 = MagicMock()
        w3.eth.contract.return_value = self._contract
        return w3

    async def __aexit__(self, *a):
        pass


def _cp_adapter():
    return OnchainConstantProductAdapter(pool_address=POOL, base_token=WETH, rpc_url="http://rpc")


class TestConstantProduct:
    @pytest.mark.asyncio
    async def test_base_is_token1(self):
        pair = _FakePair((2000 * WAD, 2 * WAD), TOKEN)
        with patch(f"{MODULE}.web3_from_rpc", return_value=_Web3Ctx(pair)):
            quote = await _cp_adapter().quote()
        assert quote.raw_price == 1000 * WAD
        assert quote.depth == 2 * WAD

    @pytest.mark.asyncio
    async def test_base_is_token0(self):
        pair = _FakePair((4 * WAD, 2000 * WAD), WETH)
        with patch(f"{MODULE}.web3_from_rpc", return_value=_Web3Ctx(pair)):
            quote = await _cp_adapter().quote()
        assert quote.raw_price == 500 * WAD
        assert quote.depth == 4 * WAD

    @pytest.mark.asyncio
    async def test_empty_reserves(self):
        pair = _FakePair((0, 0), TOKEN)
        with patch(f"{MODULE}.web3_from_rpc", return_value=_Web3Ctx(pair)):
            with pytest.raises(VenueUnavailableError, match="no reserves"):
                await _cp_adapter().quote()

    @pytest.mark.asyncio
    async def test_rpc_errors_become_unavailable(self):
        pair = _FakePair((1, 1), TOKEN)
        pair.getReserves = lambda: _FakeCall(RuntimeError("connection refused"))
        with patch(f"{MODULE}.web3_from_rpc", return_value=_Web3Ctx(pair)):
            with pytest.raises(VenueUnavailableError, match="connection refused"):
                await _cp_adapter().quote()

    @pytest.mark.asyncio
    async def test_read_only(self):
        with pytest.raises(NotImplementedError):
            await _cp_adapter().swap_exact_in(WETH, WETH, 1, 0, WETH)
        assert not _cp_adapter().supports_swaps


class TestConcentrated:
    @pytest.mark.asyncio
    async def test_quote(self):
        # TOKEN sorts first: token1/token0 is weth per token.
        sqrt_price = encode_sqrt_price_x96(WAD, 1000 * WAD)
        pool = _FakePool(sqrt_price, 5 * 10**20, TOKEN)
        adapter = OnchainConcentratedAdapter(pool_address=POOL, base_token=WETH)
        with patch(f"{MODULE}.web3_from_rpc", return_value=_Web3Ctx(pool)):
            quote = await adapter.quote()
        assert abs(quote.raw_price - 1000 * WAD) <= 10**6
        assert quote.depth == 5 * 10**20

    @pytest.mark.asyncio
    async def test_locked_pool(self):
        pool = _FakePool(encode_sqrt_price_x96(1, 1), 1, TOKEN, unlocked=False)
        adapter = OnchainConcentratedAdapter(pool_address=POOL, base_token=WETH)
        with patch(f"{MODULE}.web3_from_rpc", return_value=_Web3Ctx(pool)):
            with pytest.raises(VenueUnavailableError, match="locked"):
                await adapter.quote()


class TestHookedPool:
    @pytest.mark.asyncio
    async def test_quote_passes_pool_id_bytes(self):
        view = _FakeStateView(encode_sqrt_price_x96(1000 * WAD, WAD), 10**21)
        adapter = OnchainHookedPoolAdapter(
            pool_id=POOL_ID, pool_address=POOL, base_token="0x" + "00" * 20
        )
        with patch(f"{MODULE}.web3_from_rpc", return_value=_Web3Ctx(view)):
            quote = await adapter.quote()
        assert view.pool_ids == [bytes.fromhex("ab" * 32)]
        assert abs(quote.raw_price - 1000 * WAD) <= 10**6
        assert quote.depth == 10**21

    @pytest.mark.asyncio
    async def test_empty_pool(self):
        view = _FakeStateView(0, 0)
        adapter = OnchainHookedPoolAdapter(
            pool_id=POOL_ID, pool_address=POOL, base_token="0x" + "00" * 20
        )
        with patch(f"{MODULE}.web3_from_rpc", return_value=_Web3Ctx(view)):
            with pytest.raises(VenueUnavailableError):
                await adapter.quote()


@pytest.mark.asyncio
async def test_token_metadata_feeds_probe_decimals():
    with patch(f"{MODULE}.web3_from_rpc", return_value=_Web3Ctx(_FakeErc20(6))):
        assert await probe_decimals(OnchainTokenMetadata("http://rpc"), TOKEN) == 6


class TestBuildOnchainAdapter:
    def test_builds_each_kind(self):
        common = {"pool_address": POOL, "base_token": WETH, "rpc_url": "http://rpc"}
        cp = build_onchain_adapter("constant_product", **common)
        cl = build_onchain_adapter("concentrated", **common)
        hooked = build_onchain_adapter("hooked_pool", pool_id=POOL_ID, **common)
        assert isinstance(cp, OnchainConstantProductAdapter)
        assert isinstance(cl, OnchainConcentratedAdapter)
        assert isinstance(hooked, OnchainHookedPoolAdapter)
        assert hooked.pool_id == POOL_ID
        assert cp.rpc_url == "http://rpc"

    def test_hooked_pool_needs_pool_id(self):
        with pytest.raises(InvalidInputError, match="pool_id"):
            build_onchain_adapter("hooked_pool", pool_address=POOL, base_token=WETH)

    def test_unknown_kind(self):
        with pytest.raises(InvalidInputError, match="unknown"):
            build_onchain_adapter("orderbook", pool_address=POOL, base_token=WETH)

    def test_reader_base_is_abstract(self):
        with pytest.raises(TypeError):
            _OnchainQuoteAdapter("raw", pool_address=POOL, base_token=WETH)
