"""
Carrier Registry

- Adapter classes register themselves with @register_carrier
- build_carrier_registry() instantiates them once at startup against the
  shared HTTP client and settings
- The resulting CarrierRegistry is read-only and injected where needed
"""
import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Dict, Iterator, Optional, Type

import httpx

from fulfillment.modules.shipping.carriers.base import BaseCarrier
from fulfillment.modules.shipping.carriers.normalize import normalize_carrier

logger = logging.getLogger(__name__)

# Registry of carrier implementations, keyed by registry code
_CARRIER_REGISTRY: Dict[str, Type[BaseCarrier]] = {}


def register_carrier(*carrier_codes: str):
    """
    Decorator to register a carrier implementation.

    Usage:
        @register_carrier("FASTWAY")
        class FastwayCarrier(BaseCarrier):
            ...
    """
    def decorator(cls: Type[BaseCarrier]):
        for code in carrier_codes:
            _CARRIER_REGISTRY[code] = cls
            logger.debug(f"Registered carrier: {code} -> {cls.__name__}")
        return cls
    return decorator


class CarrierRegistry(Mapping):
    """Immutable mapping of registry code -> adapter instance."""

    def __init__(self, adapters: Dict[str, BaseCarrier]):
        self._adapters = MappingProxyType(dict(adapters))

    def __getitem__(self, code: str) -> BaseCarrier:
        return self._adapters[code]

    def __iter__(self) -> Iterator[str]:
        return iter(self._adapters)

    def __len__(self) -> int:
        return len(self._adapters)

    def resolve(self, carrier: Any) -> Optional[BaseCarrier]:
        """
        Find the adapter for a stored or user-entered carrier.

        Returns None when no adapter is available (OTHER, unknown couriers,
        disabled carriers).
        """
        selection = normalize_carrier(carrier)
        if selection is None:
            return None
        return self._adapters.get(selection.tracking_key)


def build_carrier_registry(settings: Any, http_client: httpx.AsyncClient) -> CarrierRegistry:
    """Instantiate every registered adapter not listed in DISABLED_CARRIERS."""
    disabled = {code.strip().lower() for code in (settings.DISABLED_CARRIERS or [])}
    adapters: Dict[str, BaseCarrier] = {}

    for code, carrier_cls in _CARRIER_REGISTRY.items():
        if code.lower() in disabled:
            logger.info(f"Carrier {code} disabled via config")
            continue
        adapters[code] = carrier_cls.from_settings(code, settings, http_client)

    logger.info(f"Carrier registry built: {', '.join(sorted(adapters)) or 'none'}")
    return CarrierRegistry(adapters)


def get_registered_carriers():
    """All registry codes that have an implementation."""
    return list(_CARRIER_REGISTRY.keys())


# Import carriers to trigger registration
# These imports must be at the bottom to avoid circular imports
from fulfillment.modules.shipping.carriers.couriers import (  # noqa: E402, F401
    AramexCarrier,
    CourierGuyCarrier,
    FastwayCarrier,
)
from fulfillment.modules.shipping.carriers.shippo import ShippoCarrier  # noqa: E402, F401
