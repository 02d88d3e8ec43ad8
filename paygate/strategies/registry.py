"""
Strategy selection by payment method identifier.

Adding a payment method means writing a strategy and registering it here;
the processor never changes.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from paygate.core.config import CREDIT_CARD, PAYPAL, AppConfig, get_config
from paygate.core.exceptions import ConfigurationError, UnsupportedMethodError
from paygate.gateways.base import GatewayAdapter
from paygate.gateways.sandbox import SandboxGateway
from paygate.schemas.payment import normalize_method
from paygate.strategies.base import PaymentStrategy
from paygate.strategies.credit_card import CreditCardStrategy
from paygate.strategies.paypal import PayPalStrategy

logger = logging.getLogger(__name__)

STRATEGY_CLASSES = {
    CREDIT_CARD: CreditCardStrategy,
    PAYPAL: PayPalStrategy,
}


class StrategyRegistry:
    """Lookup table from method identifier to strategy instance"""

    def __init__(self):
        self._strategies: Dict[str, PaymentStrategy] = {}
        self._aliases: Dict[str, str] = {}

    def register(self, method_id: str, strategy: PaymentStrategy, aliases: Optional[Iterable[str]] = None) -> None:
        """Register a strategy; aliases default to the strategy's own."""
        method_id = normalize_method(method_id)
        self._strategies[method_id] = strategy
        for alias in (strategy.aliases if aliases is None else aliases):
            self._aliases[normalize_method(alias)] = method_id
        logger.debug(f"Registered {type(strategy).__name__} for {method_id}")

    def select(self, method_id: str) -> PaymentStrategy:
        """
        Resolve a method identifier to its strategy.

        Raises:
            UnsupportedMethodError: If nothing is registered under the identifier
        """
        key = normalize_method(method_id or "")
        key = self._aliases.get(key, key)
        strategy = self._strategies.get(key)
        if strategy is None:
            raise UnsupportedMethodError(method_id, self.methods())
        return strategy

    def methods(self) -> List[str]:
        return sorted(self._strategies)

    def __contains__(self, method_id: str) -> bool:
        key = normalize_method(method_id)
        return self._aliases.get(key, key) in self._strategies


def build_registry(
    config: AppConfig,
    gateways: Optional[Mapping[str, GatewayAdapter]] = None,
) -> StrategyRegistry:
    """
    Build the registry of every known payment method from configuration.

    Args:
        config: Loaded application configuration
        gateways: Adapter per method id. In the sandbox environment missing
            entries default to SandboxGateway.

    Raises:
        ConfigurationError: If a production gateway has no adapter
    """
    gateways = dict(gateways or {})
    registry = StrategyRegistry()

    for method_id, strategy_class in STRATEGY_CLASSES.items():
        gateway_config = config.gateways[method_id]
        gateway = gateways.get(method_id)
        if gateway is None:
            if gateway_config.environment != "sandbox":
                raise ConfigurationError(
                    f"No gateway adapter configured for {method_id}",
                    config_key="gateways",
                )
            gateway = SandboxGateway(name=method_id)

        registry.register(method_id, strategy_class(gateway, gateway_config))

    return registry


_default_registry: Optional[StrategyRegistry] = None


def set_default_registry(registry: Optional[StrategyRegistry]) -> None:
    global _default_registry
    _default_registry = registry


def get_default_registry() -> StrategyRegistry:
    """The process-wide registry, built from the loaded configuration on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = build_registry(get_config())
    return _default_registry


def select_strategy(method_id: str, registry: Optional[StrategyRegistry] = None) -> PaymentStrategy:
    if registry is None:
        registry = get_default_registry()
    return registry.select(method_id)
