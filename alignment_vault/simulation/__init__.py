"""In-memory venues for cold-start deployments, the CLI and tests."""

from alignment_vault.simulation.concentrated_pool import ConcentratedPool
from alignment_vault.simulation.constant_product import ConstantProductPair
from alignment_vault.simulation.pool_manager import PoolManager, PoolSwapper

__all__ = [
    "ConcentratedPool",
    "ConstantProductPair",
    "PoolManager",
    "PoolSwapper",
]
