"""Common schemas and wire-format helpers."""

import json
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")

# Epoch values above this are milliseconds (year 5138 in seconds)
MILLIS_THRESHOLD = 1e11


class WireModel(BaseModel):
    """Base for models exchanged with the console backend (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper."""

    items: list[T]
    total: int = Field(description="Total number of items")
    skip: int = Field(description="Number of items skipped")
    limit: int = Field(description="Max items returned")

    @property
    def has_more(self) -> bool:
        """Check if there are more items to fetch."""
        return self.skip + len(self.items) < self.total


def to_epoch_seconds(value: Any) -> float | None:
    """Normalize a wire timestamp to float seconds since epoch.

    Accepts epoch seconds or milliseconds (int, float or numeric string),
    ISO-8601 strings, datetimes, and protobuf Long objects ({"low", "high"})
    as emitted by the WhatsApp provider.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, dict):
        low = int(value.get("low", 0)) & 0xFFFFFFFF
        high = int(value.get("high", 0))
        seconds = float((high << 32) + low)
    elif isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        try:
            seconds = float(value)
        except ValueError:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return to_epoch_seconds(parsed)
    else:
        raise ValueError(f"unsupported timestamp: {value!r}")

    if seconds > MILLIS_THRESHOLD:
        seconds /= 1000
    return seconds


def parse_labels(value: Any) -> list[str]:
    """Parse a labels field that may arrive JSON-encoded or comma-separated."""
    if not value:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            value = value.split(",")
        if isinstance(value, str):
            value = [value]
    if not isinstance(value, (list, tuple, set)):
        return []

    labels: list[str] = []
    for label in value:
        label = str(label).strip()
        if label and label not in labels:
            labels.append(label)
    return labels


def optional_id(value: Any) -> str | None:
    """Normalize an identifier that may arrive as int, str or empty."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None
