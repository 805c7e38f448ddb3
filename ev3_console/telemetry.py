"""Bounded telemetry history for the map surface.

Two buffers are kept: the vehicle trail and scanned terrain points. Their
capacities differ (100 and 50 by default) and are configured separately.
Samples come from a pluggable :class:`SampleSource`; the bundled
:class:`RandomWalkSource` drives the demo map and takes an injected RNG.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List, Optional, Protocol, Sequence

from . import constants

LOGGER = logging.getLogger(__name__)


class TerrainClass(str, Enum):
    OBSTACLE = "obstacle"
    CLEAR = "clear"
    UNKNOWN = "unknown"
    SCANNED = "scanned"


@dataclass(frozen=True, slots=True)
class TelemetrySample:
    latitude: float
    longitude: float
    timestamp: datetime
    heading: Optional[float] = None
    speed: Optional[float] = None
    classification: Optional[TerrainClass] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "lat": self.latitude,
            "lng": self.longitude,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
        }
        if self.heading is not None:
            payload["heading"] = self.heading
        if self.speed is not None:
            payload["speed"] = self.speed
        if self.classification is not None:
            payload["type"] = self.classification.value
        return payload


class TelemetryBuffer:
    """Fixed-capacity FIFO of samples, oldest first."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("Telemetry buffer capacity must be positive")
        self._capacity = capacity
        self._samples: Deque[TelemetrySample] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def latest(self) -> Optional[TelemetrySample]:
        return self._samples[-1] if self._samples else None

    def append(self, sample: TelemetrySample) -> None:
        self._samples.append(sample)

    def extend(self, samples: Iterable[TelemetrySample]) -> None:
        self._samples.extend(samples)

    def clear(self) -> None:
        self._samples.clear()

    def to_sequence(self) -> List[TelemetrySample]:
        return list(self._samples)

    def __len__(self) -> int:
        return len(self._samples)


class TelemetryChannel:
    """A buffer paired with its display toggle.

    Switching the toggle off clears the buffer and drops further samples;
    switching it back on starts from empty.
    """

    def __init__(self, name: str, capacity: int, *, enabled: bool = True) -> None:
        self.name = name
        self._buffer = TelemetryBuffer(capacity)
        self._enabled = enabled

    @property
    def buffer(self) -> TelemetryBuffer:
        return self._buffer

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        if not enabled and self._enabled:
            LOGGER.debug(
                "Clearing %s telemetry (%d samples)", self.name, len(self._buffer)
            )
            self._buffer.clear()
        self._enabled = enabled

    def append(self, sample: TelemetrySample) -> bool:
        if not self._enabled:
            return False
        self._buffer.append(sample)
        return True

    def to_sequence(self) -> List[TelemetrySample]:
        return self._buffer.to_sequence()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self._enabled,
            "capacity": self._buffer.capacity,
            "samples": [sample.as_dict() for sample in self._buffer.to_sequence()],
        }


@dataclass(slots=True)
class TelemetryFrame:
    position: TelemetrySample
    terrain: List[TelemetrySample] = field(default_factory=list)


class SampleSource(Protocol):
    """Anything that can produce the next telemetry frame."""

    async def read(self) -> Optional[TelemetryFrame]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RandomWalkSource:
    """Synthetic vehicle wander with occasional terrain detections."""

    POSITION_JITTER = 0.0001
    TERRAIN_JITTER = 0.0005
    HEADING_JITTER = 10.0
    MAX_SPEED = 2.0
    TERRAIN_PROBABILITY = 0.3
    OBSTACLE_PROBABILITY = 0.3

    def __init__(
        self,
        origin: Sequence[float] = constants.DEFAULT_ORIGIN,
        *,
        heading: float = 45.0,
        rng: Optional[random.Random] = None,
        clock=_utcnow,
    ) -> None:
        self._latitude = float(origin[0])
        self._longitude = float(origin[1])
        self._heading = heading
        self._rng = rng or random.Random()
        self._clock = clock

    def seed_samples(self) -> TelemetryFrame:
        """Initial frame shown before the first tick."""

        now = self._clock()
        lat, lng = self._latitude, self._longitude
        return TelemetryFrame(
            position=TelemetrySample(lat, lng, now, heading=self._heading, speed=0.0),
            terrain=[
                TelemetrySample(lat, lng, now, classification=TerrainClass.SCANNED),
                TelemetrySample(
                    lat + 0.0001,
                    lng + 0.0001,
                    now,
                    classification=TerrainClass.OBSTACLE,
                ),
                TelemetrySample(
                    lat - 0.0001, lng - 0.0001, now, classification=TerrainClass.CLEAR
                ),
            ],
        )

    async def read(self) -> TelemetryFrame:
        rng = self._rng
        now = self._clock()

        self._latitude += (rng.random() - 0.5) * self.POSITION_JITTER
        self._longitude += (rng.random() - 0.5) * self.POSITION_JITTER
        drift = (rng.random() - 0.5) * self.HEADING_JITTER
        self._heading = (self._heading + drift) % 360
        position = TelemetrySample(
            self._latitude,
            self._longitude,
            now,
            heading=self._heading,
            speed=rng.random() * self.MAX_SPEED,
        )

        terrain: List[TelemetrySample] = []
        if rng.random() < self.TERRAIN_PROBABILITY:
            classification = (
                TerrainClass.OBSTACLE
                if rng.random() < self.OBSTACLE_PROBABILITY
                else TerrainClass.CLEAR
            )
            terrain.append(
                TelemetrySample(
                    self._latitude + (rng.random() - 0.5) * self.TERRAIN_JITTER,
                    self._longitude + (rng.random() - 0.5) * self.TERRAIN_JITTER,
                    now,
                    classification=classification,
                )
            )

        return TelemetryFrame(position=position, terrain=terrain)


class TelemetryFeed:
    """Pump frames from a source into the trail and terrain channels."""

    def __init__(
        self,
        source: SampleSource,
        *,
        trail_capacity: int = constants.DEFAULT_TRAIL_CAPACITY,
        terrain_capacity: int = constants.DEFAULT_TERRAIN_CAPACITY,
        interval_seconds: float = 3.0,
    ) -> None:
        self._source = source
        self._interval = max(interval_seconds, 0.01)
        self.trail = TelemetryChannel("trail", trail_capacity)
        self.terrain = TelemetryChannel("terrain", terrain_capacity)
        self._position: Optional[TelemetrySample] = None
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def position(self) -> Optional[TelemetrySample]:
        return self._position

    def channel(self, name: str) -> TelemetryChannel:
        if name == self.trail.name:
            return self.trail
        if name == self.terrain.name:
            return self.terrain
        raise KeyError(name)

    def ingest(self, frame: TelemetryFrame) -> None:
        self._position = frame.position
        self.trail.append(frame.position)
        for point in frame.terrain:
            self.terrain.append(point)

    async def pump_once(self) -> bool:
        frame = await self._source.read()
        if frame is None:
            return False
        self.ingest(frame)
        return True

    def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.pump_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Telemetry source failed")

    def as_dict(self) -> Dict[str, Any]:
        return {
            "position": self._position.as_dict() if self._position else None,
            "trail": self.trail.as_dict(),
            "terrain": self.terrain.as_dict(),
        }
