"""Simulated channel source.

Produces synthetic unpacked records for every configured selector, shaped
like the records a Seedlink source emits. Useful for demos and for running
the relay without access to an upstream server.
"""

from __future__ import annotations

import asyncio
import random
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from seedlink_relay.adapters.upstream.base import BaseChannelSource, ExponentialBackoff
from seedlink_relay.config.loader import ConfigurationError

if TYPE_CHECKING:
    from seedlink_relay.adapters.upstream.base import RecordCallback
    from seedlink_relay.config.schema import ChannelConfig
    from seedlink_relay.domain.model.channels import Selector

logger = structlog.get_logger(__name__)


class SimulatedSourceOptions(BaseModel):
    """Options accepted under source.options for the simulated type."""

    model_config = ConfigDict(extra="forbid")

    sample_rate: float = Field(default=20.0, gt=0.0, le=1000.0, description="Samples per second")
    record_samples: int = Field(default=100, ge=1, le=10000, description="Samples per record")
    amplitude: int = Field(default=1000, ge=1, description="Maximum step of the random walk")
    seed: int | None = Field(default=None, description="Random seed for reproducible data")


class SimulatedChannelSource(BaseChannelSource):
    """Channel source emitting random-walk waveform records."""

    def __init__(
        self,
        config: ChannelConfig,
        emit: RecordCallback,
        *,
        backoff: ExponentialBackoff | None = None,
    ) -> None:
        super().__init__(config, emit, backoff=backoff)
        try:
            self._options = SimulatedSourceOptions.model_validate(config.source.options)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid options for simulated source of channel '{config.name}': {e}"
            ) from e
        self._random = random.Random(self._options.seed)
        self._levels: dict[Selector, int] = dict.fromkeys(self.selectors, 0)

    @property
    def record_interval_s(self) -> float:
        """Seconds of data covered by one record."""
        return self._options.record_samples / self._options.sample_rate

    async def _stream(self) -> None:
        logger.debug(
            "Simulated stream started",
            channel=self.name,
            interval_s=self.record_interval_s,
        )
        while True:
            start = datetime.now(UTC)
            for selector in self.selectors:
                self._publish(self.make_record(selector, start))
            await asyncio.sleep(self.record_interval_s)

    def make_record(self, selector: Selector, start: datetime) -> dict[str, Any]:
        """Build one synthetic record for a selector starting at the given time."""
        options = self._options
        level = self._levels.get(selector, 0)
        data: list[int] = []
        for _ in range(options.record_samples):
            level += self._random.randint(-options.amplitude, options.amplitude)
            data.append(level)
        self._levels[selector] = level

        start_ms = int(start.timestamp() * 1000)
        duration_ms = int((options.record_samples - 1) / options.sample_rate * 1000)

        return {
            "id": str(selector),
            "network": selector.network,
            "station": selector.station,
            "location": selector.location,
            "channel": selector.channel,
            "start": start_ms,
            "end": start_ms + duration_ms,
            "sampleRate": options.sample_rate,
            "data": data,
        }
