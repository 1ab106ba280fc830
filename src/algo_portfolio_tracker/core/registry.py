"""DeFi adapter registry with auto-registration pattern."""

from typing import Any, Protocol

from algo_portfolio_tracker.core.models import DefiPosition


class DefiAdapterInterface(Protocol):
    """
    Interface that all DeFi adapters must implement.

    Attributes
    ----------
    name : str
        Unique adapter identifier (e.g., 'tinyman')
    protocol : str
        Display name reported on positions (e.g., 'Tinyman')

    Methods
    -------
    get_positions(wallets)
        Fetch valued positions held by the wallets

    """

    name: str
    protocol: str

    def get_positions(self, wallets: list[str]) -> list[DefiPosition]:
        """
        Fetch valued positions held by the wallets.

        Parameters
        ----------
        wallets : list[str]
            Wallet addresses

        Returns
        -------
        list[DefiPosition]
            Positions found

        """
        ...


class AdapterRegistry:
    """
    Registry for DeFi adapters with auto-registration.

    Adapters register themselves using the @AdapterRegistry.register decorator.
    The snapshot aggregator instantiates every registered adapter and merges
    their positions.

    """

    _adapters: dict[str, type] = {}

    @classmethod
    def register(cls, adapter_class: type) -> type:
        """
        Decorator to register a DeFi adapter.

        Parameters
        ----------
        adapter_class : type
            Adapter class to register

        Returns
        -------
        type
            The adapter class (for decorator chaining)

        Examples
        --------
        >>> @AdapterRegistry.register
        ... class PactAdapter(BaseDefiAdapter):
        ...     name = "pact"
        ...     protocol = "Pact"

        """
        if not getattr(adapter_class, "name", ""):
            msg = f"Adapter {adapter_class.__name__} must define 'name' attribute"
            raise ValueError(msg)

        cls._adapters[adapter_class.name] = adapter_class
        return adapter_class

    @classmethod
    def get_adapter(cls, name: str) -> type | None:
        """
        Get adapter class by name.

        Parameters
        ----------
        name : str
            Adapter identifier

        Returns
        -------
        type | None
            Adapter class or None if not found

        """
        return cls._adapters.get(name)

    @classmethod
    def get_all_adapters(cls) -> list[type]:
        """Get all registered adapter classes."""
        return list(cls._adapters.values())

    @classmethod
    def create_all(cls, **dependencies: Any) -> list[DefiAdapterInterface]:
        """
        Instantiate every registered adapter.

        Parameters
        ----------
        **dependencies : Any
            Keyword arguments passed to each adapter constructor
            (ledger, prices, settings)

        Returns
        -------
        list[DefiAdapterInterface]
            Adapter instances in registration order

        """
        return [adapter_class(**dependencies) for adapter_class in cls._adapters.values()]

    @classmethod
    def clear(cls) -> None:
        """Clear all registered adapters (useful for testing)."""
        cls._adapters.clear()

    @classmethod
    def list_adapters(cls) -> list[str]:
        """Get list of all registered adapter names."""
        return list(cls._adapters.keys())
