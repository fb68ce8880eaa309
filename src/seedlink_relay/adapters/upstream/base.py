"""Base protocol and utilities for upstream channel sources.

Defines the ChannelSource protocol the relay depends on, a base class that
runs the upstream stream only while a channel has subscribers, and the
registry of source types used to build sources from configuration.
"""

from __future__ import annotations

import asyncio
import contextlib
import random
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import structlog

from seedlink_relay.config.loader import ConfigurationError
from seedlink_relay.config.schema import ChannelConfig
from seedlink_relay.domain.model.channels import Selector

logger = structlog.get_logger(__name__)

# Callback receiving each unpacked record a source produces
RecordCallback = Callable[[Mapping[str, Any]], None]

SourceFactory = Callable[[ChannelConfig, RecordCallback], "ChannelSource"]


@runtime_checkable
class ChannelSource(Protocol):
    """Protocol for the upstream side of a channel.

    Implementations own the upstream connection and the unpacking of its
    data format; they hand finished records to the callback they were
    created with.
    """

    @property
    def name(self) -> str:
        """Return the channel name."""
        ...

    @property
    def selectors(self) -> tuple[Selector, ...]:
        """Return the upstream stream identifiers."""
        ...

    @property
    def active(self) -> bool:
        """Return whether the upstream stream is running."""
        ...

    def set_demand(self, active: bool) -> None:
        """Start or stop the upstream stream.

        Called with True when the channel gains its first subscriber and
        with False when the last one leaves.
        """
        ...

    async def close(self) -> None:
        """Stop the upstream stream for good."""
        ...


@dataclass
class ExponentialBackoff:
    """Exponential backoff with jitter for upstream reconnects."""

    base_delay: float = 1.0
    max_delay: float = 60.0
    max_retries: int = 10
    jitter: float = 0.1
    attempts: int = field(default=0, init=False)

    def next_delay(self) -> float | None:
        """Calculate next delay with exponential backoff and jitter.

        Returns:
            Delay in seconds, or None if max retries exceeded
        """
        if self.attempts >= self.max_retries:
            return None

        self.attempts += 1
        delay = min(self.base_delay * (2 ** (self.attempts - 1)), self.max_delay)

        jitter_range = delay * self.jitter
        delay += random.uniform(-jitter_range, jitter_range)

        return max(0.1, float(delay))

    def reset(self) -> None:
        """Reset attempt counter."""
        self.attempts = 0


class BaseChannelSource(ABC):
    """Base class for channel source implementations.

    The upstream stream is "sleeping" until set_demand(True) is called and
    is cancelled again by set_demand(False). When the stream fails or ends
    it is restarted with exponential backoff until the retry budget runs
    out; the next set_demand(True) then starts it again with a fresh budget.
    """

    def __init__(
        self,
        config: ChannelConfig,
        emit: RecordCallback,
        *,
        backoff: ExponentialBackoff | None = None,
    ) -> None:
        self._config = config
        self._emit = emit
        self._selectors = tuple(Selector.from_config(s) for s in config.selectors)
        self._backoff = backoff or ExponentialBackoff()
        self._task: asyncio.Task[None] | None = None
        self.records_emitted = 0

    @property
    def name(self) -> str:
        """Return the channel name."""
        return self._config.name

    @property
    def selectors(self) -> tuple[Selector, ...]:
        """Return the configured selectors."""
        return self._selectors

    @property
    def active(self) -> bool:
        """Return whether the upstream task is running."""
        return self._task is not None and not self._task.done()

    @abstractmethod
    async def _stream(self) -> None:
        """Implementation-specific upstream loop.

        Runs until cancelled, calling _publish() for every record. Raising
        an exception or returning triggers a reconnect after a backoff delay.
        """
        ...

    def set_demand(self, active: bool) -> None:
        """Start or cancel the upstream task."""
        if active and not self.active:
            logger.info("Waking channel source", channel=self.name)
            self._backoff.reset()
            self._task = asyncio.create_task(self._run(), name=f"source_{self.name}")
        elif not active and self._task is not None:
            logger.info("Putting channel source to sleep", channel=self.name)
            self._task.cancel()
            self._task = None

    async def close(self) -> None:
        """Cancel the upstream task and wait for it to finish."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        while True:
            try:
                await self._stream()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                reason = str(e)
            else:
                reason = "upstream stream ended"

            delay = self._backoff.next_delay()
            if delay is None:
                logger.error(
                    "Upstream failed, max reconnection attempts reached",
                    channel=self.name,
                    error=reason,
                )
                return
            logger.warning(
                "Upstream failed, reconnecting after delay",
                channel=self.name,
                error=reason,
                delay_s=delay,
                attempt=self._backoff.attempts,
            )
            await asyncio.sleep(delay)

    def _publish(self, record: Mapping[str, Any]) -> None:
        """Hand a record to the relay."""
        # A delivered record proves the upstream healthy again
        self._backoff.reset()
        self.records_emitted += 1
        try:
            self._emit(record)
        except Exception as e:
            logger.exception(
                "Record callback error",
                channel=self.name,
                error=str(e),
            )


_SOURCE_TYPES: dict[str, SourceFactory] = {}


def register_source_type(source_type: str, factory: SourceFactory) -> None:
    """Register a channel source implementation under a configuration type name."""
    _SOURCE_TYPES[source_type] = factory


def registered_source_types() -> list[str]:
    """Return the registered source type names, sorted."""
    _load_builtin_types()
    return sorted(_SOURCE_TYPES)


def create_channel_source(config: ChannelConfig, emit: RecordCallback) -> ChannelSource:
    """Factory function to create a channel source from configuration.

    Args:
        config: Channel configuration
        emit: Callback receiving the source's records

    Returns:
        Source instance implementing ChannelSource

    Raises:
        ConfigurationError: If the source type is unknown or its options are invalid
    """
    _load_builtin_types()

    factory = _SOURCE_TYPES.get(config.source.type)
    if factory is None:
        raise ConfigurationError(
            f"Channel '{config.name}' uses unknown source type '{config.source.type}'. "
            f"Available: {', '.join(sorted(_SOURCE_TYPES))}"
        )

    return factory(config, emit)


def _load_builtin_types() -> None:
    # Import implementations here to avoid circular imports
    from seedlink_relay.adapters.upstream.simulated import (  # noqa: PLC0415
        SimulatedChannelSource,
    )

    _SOURCE_TYPES.setdefault("simulated", SimulatedChannelSource)
