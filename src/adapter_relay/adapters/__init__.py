"""Adapter registry lookup."""

from adapter_relay.adapters.registry import (
    DEFAULT_ADAPTERS,
    AdapterRegistry,
    AdapterSpec,
    AdapterType,
    adapter_type,
    get_adapter_registry,
    is_valid_adapter_id,
)

__all__ = [
    "DEFAULT_ADAPTERS",
    "AdapterRegistry",
    "AdapterSpec",
    "AdapterType",
    "adapter_type",
    "get_adapter_registry",
    "is_valid_adapter_id",
]
