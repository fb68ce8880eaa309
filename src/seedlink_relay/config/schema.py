"""Configuration schema for Seedlink Relay.

Uses Pydantic v2 for validation, serialization, and documentation.
Configuration is loaded from YAML files and validated against these models.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# SEED identifiers may use ? and * wildcards in Seedlink selectors
_SEED_CODE_PATTERN = r"^[A-Za-z0-9?*]*$"


# =============================================================================
# SERVER CONFIGURATION
# =============================================================================


class ServerConfig(BaseModel):
    """WebSocket listener and heartbeat configuration."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(
        default="Seedlink Proxy",
        min_length=1,
        max_length=64,
        description="Instance name used in log output",
    )
    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(default=8087, ge=0, le=65535, description="Listen port (0 = ephemeral)")
    heartbeat_interval_ms: int = Field(
        default=60000,
        ge=10,
        le=3_600_000,
        description="Interval between ping rounds; a client missing one round is evicted",
    )
    debug: bool = Field(
        default=False,
        description="Expose full tracebacks in error replies sent to clients",
    )
    outbound_queue_size: int = Field(
        default=1024,
        ge=1,
        le=1_000_000,
        description="Frames buffered per client before new frames are dropped",
    )
    max_message_bytes: int = Field(
        default=65536,
        ge=128,
        description="Largest inbound client frame accepted by the listener",
    )


# =============================================================================
# CHANNEL CONFIGURATION
# =============================================================================


class SelectorConfig(BaseModel):
    """One upstream stream identifier (network.station.location.channel)."""

    model_config = ConfigDict(extra="forbid")

    network: str = Field(..., min_length=1, max_length=2, pattern=_SEED_CODE_PATTERN)
    station: str = Field(..., min_length=1, max_length=5, pattern=_SEED_CODE_PATTERN)
    location: str = Field(default="", max_length=2, pattern=_SEED_CODE_PATTERN)
    channel: str = Field(..., min_length=1, max_length=3, pattern=_SEED_CODE_PATTERN)


class SourceConfig(BaseModel):
    """Upstream parameters handed to the channel source implementation."""

    model_config = ConfigDict(extra="forbid")

    type: str = Field(default="simulated", min_length=1, description="Registered source type")
    host: str | None = Field(default=None, description="Upstream server host")
    port: int | None = Field(default=None, ge=1, le=65535, description="Upstream server port")
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Source-specific options, validated by the source implementation",
    )


class ChannelConfig(BaseModel):
    """A named channel clients can subscribe to."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=64, description="Unique channel name")
    selectors: list[SelectorConfig] = Field(..., min_length=1)
    source: SourceConfig = Field(default_factory=SourceConfig)


# =============================================================================
# ROOT CONFIGURATION
# =============================================================================


class RelayConfig(BaseModel):
    """Root configuration model for the relay."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(
        default="1.0.0",
        description="Configuration schema version",
    )
    server: ServerConfig = Field(default_factory=ServerConfig)
    channels: list[ChannelConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_channels(self) -> RelayConfig:
        """Validate that channel names are unique."""
        seen: set[str] = set()
        for channel in self.channels:
            if channel.name in seen:
                raise ValueError(f"Duplicate channel name '{channel.name}'")
            seen.add(channel.name)
        return self

    def get_channel(self, name: str) -> ChannelConfig | None:
        """Return the channel configuration with the given name."""
        for channel in self.channels:
            if channel.name == name:
                return channel
        return None
