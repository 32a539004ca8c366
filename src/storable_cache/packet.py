"""Packet model: a cached value with its two time horizons.

A packet is *expired* once more than ``lifetime`` seconds have passed since
``timestamp``; the value is still present and usable as a fallback. It is
*outdated* once more than ``savetime`` seconds have passed, and may then be
removed physically by a ``delete_outdated`` sweep.
"""

import json
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from storable_cache.exceptions import BadPacketError

PACKET_FORMAT = "storable-cache/packet"
PACKET_VERSION = 1


def current_timestamp() -> int:
    """Current wall-clock time in whole seconds."""
    return int(time.time())


class Packet(BaseModel):
    """Immutable cache entry.

    Example:
        ```python
        packet = Packet(value="payload", lifetime=3, savetime=3600)
        packet.expired()   # False for the next 3 seconds
        packet.outdated()  # False for the next hour
        ```
    """

    value: str = Field(description="Cached value.")
    lifetime: int = Field(
        description="Seconds after which the value is expired but still present."
    )
    savetime: int = Field(
        description="Seconds after which the entry may be deleted physically."
    )
    timestamp: int = Field(
        default_factory=current_timestamp,
        description="Creation time in seconds since the epoch.",
    )

    model_config = ConfigDict(frozen=True, strict=True)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _default_timestamp(cls, value: Any) -> Any:
        # None or negative means "now"
        if value is None:
            return current_timestamp()
        if isinstance(value, int) and not isinstance(value, bool) and value < 0:
            return current_timestamp()
        return value

    def age(self, current_time: int | float | None = None) -> float:
        """Seconds elapsed since the packet was created.

        Without ``current_time`` the age is counted in whole seconds, the
        same resolution ``timestamp`` is stored with.
        """
        if current_time is None:
            current_time = current_timestamp()
        return current_time - self.timestamp

    def expired(self, current_time: int | float | None = None) -> bool:
        """Check whether the lifetime has elapsed."""
        return self.age(current_time) > self.lifetime

    def outdated(self, current_time: int | float | None = None) -> bool:
        """Check whether the savetime has elapsed."""
        return self.age(current_time) > self.savetime

    def dumps(self) -> bytes:
        """Serialize into the versioned JSON envelope."""
        payload = {
            "format": PACKET_FORMAT,
            "version": PACKET_VERSION,
            **self.model_dump(),
        }
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")

    @classmethod
    def loads(cls, data: bytes | str | None) -> "Packet":
        """Deserialize a packet, raising BadPacketError on any defect."""
        if not data:
            raise BadPacketError("Empty packet data")

        try:
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            payload = json.loads(data)
        except (UnicodeDecodeError, ValueError) as e:
            raise BadPacketError(f"Packet is not valid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise BadPacketError("Packet payload is not an object")
        if payload.pop("format", None) != PACKET_FORMAT:
            raise BadPacketError("Unknown packet format")
        if payload.pop("version", None) != PACKET_VERSION:
            raise BadPacketError("Unsupported packet version")

        timestamp = payload.get("timestamp")
        # "now" for a missing or negative timestamp applies to new packets only
        if isinstance(timestamp, bool) or not isinstance(timestamp, int) or timestamp < 0:
            raise BadPacketError(f"Invalid packet timestamp: {timestamp!r}")

        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise BadPacketError(f"Invalid packet: {e.error_count()} errors") from e
