"""Base model and timestamp coercion for chat entities.

Every chat entity inherits from :class:`ChatBaseModel` which provides:

* frozen instances, so snapshots handed to observers cannot be mutated;
* ``populate_by_name`` so both the transport's Go-style keys (``ID``,
  ``SenderID``) and snake_case names validate;
* a ``model_validator(mode="before")`` that drops ``None`` values so the
  field default is used instead.

Timestamps travel as epoch milliseconds. :data:`EpochMillis` accepts the
shapes the transport has been seen to produce and normalizes them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, StringConstraints, model_validator


def to_epoch_millis(value: Any) -> int:
    """Convert a timestamp (ms, ISO string or datetime) to epoch milliseconds.

    ``None`` and empty strings become ``0`` ("no timestamp").
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError("timestamp must not be a boolean")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return int(value.timestamp() * 1000)
    if isinstance(value, str):
        stripped = value.strip()
        try:
            numeric = float(stripped)
        except ValueError:
            return to_epoch_millis(datetime.fromisoformat(stripped.replace("Z", "+00:00")))
        value = numeric
    ts = int(value)
    return ts if ts > 0 else 0


def from_epoch_millis(value: int) -> datetime | None:
    """Inverse of :func:`to_epoch_millis` for display code; ``0`` maps to ``None``."""
    if value <= 0:
        return None
    return datetime.fromtimestamp(value / 1000, tz=UTC)


EpochMillis = Annotated[int, BeforeValidator(to_epoch_millis)]
"""Annotated type that coerces timestamps to integer epoch milliseconds."""

EntityId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
"""Entity identifier; surrounding whitespace is stripped and blank ids are rejected."""


class ChatBaseModel(BaseModel):
    """Base for chat entity models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_none(cls, values: Any) -> Any:
        """Drop ``None`` values so field defaults apply."""
        if not isinstance(values, dict):
            return values
        return {key: value for key, value in values.items() if value is not None}

    def patch(self) -> dict[str, Any]:
        """Fields explicitly carried by the payload this model was built from.

        Field-wise merges overwrite only these; absent fields mean "no update".
        """
        return {name: getattr(self, name) for name in self.model_fields_set}
