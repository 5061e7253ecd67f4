from contextlib import asynccontextmanager

from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3

from alignment_vault.core.config import get_rpc_url
from alignment_vault.core.constants.base import DEFAULT_HTTP_TIMEOUT


@asynccontextmanager
async def web3_from_rpc(rpc_url: str | None = None):
    url = rpc_url or get_rpc_url()
    if not url:
        raise ValueError("No RPC URL configured (set vault.rpc_url in config.json)")
    w3 = AsyncWeb3(
        AsyncHTTPProvider(url, request_kwargs={"timeout": DEFAULT_HTTP_TIMEOUT})
    )
    try:
        yield w3
    finally:
        try:
            await w3.provider.disconnect()
        except Exception as exc:  # noqa: BLE001
            logger.debug(f"Error disconnecting provider for {url}: {exc}")
