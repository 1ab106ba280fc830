"""Tests for the DeFi adapter registry."""

import pytest
from conftest import FakeLedger, FakePrices

from algo_portfolio_tracker.core.registry import AdapterRegistry
from algo_portfolio_tracker.protocols.base import BaseDefiAdapter


@pytest.fixture
def isolated_registry():
    """Snapshot and restore registered adapters around a test."""
    saved = dict(AdapterRegistry._adapters)
    yield AdapterRegistry
    AdapterRegistry.clear()
    AdapterRegistry._adapters.update(saved)


def test_adapter_registration():
    """Test that adapters auto-register on import."""
    from algo_portfolio_tracker import protocols  # noqa: F401

    assert "tinyman" in AdapterRegistry.list_adapters()


def test_get_adapter():
    """Test retrieving adapter by name."""
    from algo_portfolio_tracker import protocols  # noqa: F401

    adapter_class = AdapterRegistry.get_adapter("tinyman")
    assert adapter_class is not None
    assert adapter_class.protocol == "Tinyman"

    # Non-existent adapter
    assert AdapterRegistry.get_adapter("nonexistent") is None


def test_register_requires_name(isolated_registry):
    """Test registration fails for adapters without a name."""
    with pytest.raises(ValueError, match="must define 'name'"):

        @isolated_registry.register
        class Nameless:
            pass


def test_create_all_injects_dependencies(isolated_registry, settings):
    """Test every registered adapter is built with shared dependencies."""
    isolated_registry.clear()

    @isolated_registry.register
    class PactAdapter(BaseDefiAdapter):
        name = "pact"
        protocol = "Pact"

        def get_positions(self, wallets):
            return []

    ledger = FakeLedger()
    prices = FakePrices()
    adapters = isolated_registry.create_all(ledger=ledger, prices=prices, settings=settings)

    assert len(adapters) == 1
    assert adapters[0].ledger is ledger
    assert adapters[0].prices is prices
    assert adapters[0].settings is settings


def test_base_adapter_requires_protocol(settings):
    """Test adapters must define a protocol display name."""

    class Incomplete(BaseDefiAdapter):
        name = "incomplete"

        def get_positions(self, wallets):
            return []

    with pytest.raises(ValueError, match="must define 'protocol'"):
        Incomplete(FakeLedger(), FakePrices(), settings=settings)
