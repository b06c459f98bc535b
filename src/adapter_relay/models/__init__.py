"""Pydantic models for the adapter wire contract."""

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Reserved context keys
USER_ID_KEY = "userId"
CHAT_ID_KEY = "chatId"
# Typed extension slot, merged one level deep
META_KEY = "meta"
OUTPUT_KEY = "output"
DATA_KEY = "data"

AdapterContext = dict[str, Any]


def merge_context(base: Mapping[str, Any] | None, *updates: Mapping[str, Any] | None) -> AdapterContext:
    """Merge context updates into a new context.

    Later keys win. The ``meta`` slot is merged key by key instead of being
    replaced. Neither ``base`` nor any update is modified.

    Args:
        base: Current context
        *updates: Contributions applied in order

    Returns:
        New merged context
    """
    merged: AdapterContext = dict(base or {})
    if isinstance(merged.get(META_KEY), Mapping):
        merged[META_KEY] = dict(merged[META_KEY])

    for update in updates:
        if not update:
            continue
        for key, value in update.items():
            current = merged.get(key)
            if key == META_KEY and isinstance(current, Mapping) and isinstance(value, Mapping):
                merged[key] = {**current, **value}
            elif key == META_KEY and isinstance(value, Mapping):
                merged[key] = dict(value)
            else:
                merged[key] = value
    return merged


class AdapterRequest(BaseModel):
    """Payload for one adapter attempt."""

    model_config = ConfigDict(populate_by_name=True)

    adapter_id: str = Field(alias="adapterId")
    input: str | None = None
    context: AdapterContext = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with wire field names."""
        return self.model_dump(by_alias=True, mode="json")


class AdapterResponse(BaseModel):
    """Adapter result. ``status`` is the single source of truth."""

    model_config = ConfigDict(extra="ignore")

    status: Literal["ok", "error"]
    output: str | None = None
    data: Any = None
    error: str | None = None

    @model_validator(mode="after")
    def _error_only_on_failure(self) -> "AdapterResponse":
        if self.status == "ok" and self.error is not None:
            raise ValueError("error must be empty when status is 'ok'")
        return self

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def failure(cls, error: str) -> "AdapterResponse":
        """Build an error response."""
        return cls(status="error", error=error)

    def context_update(self) -> AdapterContext:
        """Context contribution of this response.

        Mapping ``data`` is merged key by key; any other non-null ``data``
        is stored under the ``data`` key.
        """
        if self.data is None:
            return {}
        if isinstance(self.data, Mapping):
            return dict(self.data)
        return {DATA_KEY: self.data}


class PipelineResult(BaseModel):
    """Outcome of a sequential pipeline run."""

    prompt: str | None
    context: AdapterContext = Field(default_factory=dict)


class RunAdapterBody(BaseModel):
    """Gateway request body for a single adapter run."""

    input: str | None = None
    context: AdapterContext = Field(default_factory=dict)


class BatchRunBody(BaseModel):
    """Gateway request body for a fan-out run."""

    model_config = ConfigDict(populate_by_name=True)

    adapter_ids: list[str] = Field(alias="adapterIds")
    input: str | None = None
    context: AdapterContext = Field(default_factory=dict)
