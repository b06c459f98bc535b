"""Static adapter registry: adapter id to declared type."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from adapter_relay.utils import get_logger

logger = get_logger(__name__)


class AdapterType(Enum):
    """Declared capability of an adapter."""

    EXTRACTION = "extraction"
    ENRICHMENT = "enrichment"
    NOTIFICATION = "notification"
    LOGGING = "logging"


@dataclass(frozen=True)
class AdapterSpec:
    """Registry entry for one adapter."""

    id: str
    type: AdapterType
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "type": self.type.value,
            "description": self.description,
        }


DEFAULT_ADAPTERS: tuple[AdapterSpec, ...] = (
    AdapterSpec("pdf-extract", AdapterType.EXTRACTION, "Extract text from PDF documents"),
    AdapterSpec("docx-extract", AdapterType.EXTRACTION, "Extract text from Word documents"),
    AdapterSpec("ocr-extract", AdapterType.EXTRACTION, "OCR scanned images"),
    AdapterSpec("user-profile", AdapterType.ENRICHMENT, "Attach user profile to context"),
    AdapterSpec("web-search", AdapterType.ENRICHMENT, "Augment prompt with search results"),
    AdapterSpec("slack-notify", AdapterType.NOTIFICATION, "Post results to Slack"),
    AdapterSpec("email-notify", AdapterType.NOTIFICATION, "Email results to the user"),
    AdapterSpec("audit-log", AdapterType.LOGGING, "Persist an audit trail entry"),
)


class AdapterRegistry:
    """Registry of known adapters keyed by id."""

    def __init__(self, adapters: Iterable[AdapterSpec] = DEFAULT_ADAPTERS) -> None:
        """Initialize registry.

        Args:
            adapters: Initial adapter entries
        """
        self._adapters: dict[str, AdapterSpec] = {spec.id: spec for spec in adapters}

    def register(self, spec: AdapterSpec) -> None:
        """Add or replace an adapter entry."""
        self._adapters[spec.id] = spec
        logger.info("adapter.registered", adapter_id=spec.id, type=spec.type.value)

    def is_valid_adapter_id(self, adapter_id: str) -> bool:
        return adapter_id in self._adapters

    def adapter_type(self, adapter_id: str) -> AdapterType:
        """Declared type of an adapter.

        Raises:
            KeyError: If the adapter id is unknown
        """
        return self._adapters[adapter_id].type

    def ids_of_type(self, adapter_type: AdapterType) -> list[str]:
        """Ids of every adapter declared with the given type."""
        return [spec.id for spec in self._adapters.values() if spec.type == adapter_type]

    def list_adapters(self) -> list[dict[str, Any]]:
        """List all adapters.

        Returns:
            List of adapter dictionaries
        """
        return [spec.to_dict() for spec in self._adapters.values()]


# Global registry instance
_default_registry: AdapterRegistry | None = None


def get_adapter_registry() -> AdapterRegistry:
    """Get global adapter registry."""
    global _default_registry
    if _default_registry is None:
        _default_registry = AdapterRegistry()
    return _default_registry


def is_valid_adapter_id(adapter_id: str) -> bool:
    """Check an id against the global registry."""
    return get_adapter_registry().is_valid_adapter_id(adapter_id)


def adapter_type(adapter_id: str) -> AdapterType:
    """Declared type of an adapter in the global registry."""
    return get_adapter_registry().adapter_type(adapter_id)
