from decimal import Decimal

import pytest

from alignment_vault.core.config import VaultSettings
from alignment_vault.simulation.scenario import ScenarioConfig, VenueSeed


def pytest_configure(config):
    config.addinivalue_line("markers", "smoke: mark test as a smoke test")
    config.addinivalue_line("markers", "scenario: end-to-end vault scenario")


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "smoke" in item.nodeid:
            item.add_marker(pytest.mark.smoke)


@pytest.fixture
def scenario_config() -> ScenarioConfig:
    """Deep hooked pool plus a matching x*y=k pair, 1000 target per native."""
    return ScenarioConfig(
        price=Decimal(1000),
        hooked_pool=VenueSeed(depth_eth=Decimal(100)),
        constant_product=VenueSeed(depth_eth=Decimal(50)),
        settings=VaultSettings(),
    )
