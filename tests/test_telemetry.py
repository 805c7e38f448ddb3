"""Tests for the telemetry buffers, channels and feed."""

import asyncio
import random
from datetime import datetime, timezone
from typing import List, Optional

import pytest

from ev3_console.telemetry import (
    RandomWalkSource,
    TelemetryBuffer,
    TelemetryChannel,
    TelemetryFeed,
    TelemetryFrame,
    TelemetrySample,
    TerrainClass,
)

_NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def _sample(index: int, **kwargs) -> TelemetrySample:
    return TelemetrySample(52.0 + index * 0.001, 13.0, _NOW, **kwargs)


class _ListSource:
    def __init__(self, frames: List[Optional[TelemetryFrame]]) -> None:
        self._frames = list(frames)

    async def read(self) -> Optional[TelemetryFrame]:
        if not self._frames:
            return None
        return self._frames.pop(0)


def test_buffer_evicts_oldest_when_full():
    buffer = TelemetryBuffer(3)
    samples = [_sample(index) for index in range(4)]

    for sample in samples:
        buffer.append(sample)

    assert len(buffer) == 3
    assert buffer.to_sequence() == samples[1:]
    assert buffer.to_sequence()[0] is samples[1]
    assert buffer.latest is samples[3]


def test_buffer_clear_and_snapshot_independence():
    buffer = TelemetryBuffer(5)
    buffer.extend(_sample(index) for index in range(2))

    snapshot = buffer.to_sequence()
    snapshot.clear()
    assert len(buffer) == 2

    buffer.clear()
    assert buffer.to_sequence() == []
    assert buffer.latest is None


@pytest.mark.parametrize("capacity", [0, -1])
def test_buffer_requires_positive_capacity(capacity):
    with pytest.raises(ValueError):
        TelemetryBuffer(capacity)


def test_channel_toggle_clears_and_drops():
    channel = TelemetryChannel("trail", 10)
    assert channel.append(_sample(0)) is True

    channel.set_enabled(False)
    assert channel.to_sequence() == []
    assert channel.append(_sample(1)) is False
    assert channel.to_sequence() == []

    channel.set_enabled(True)
    assert channel.append(_sample(2)) is True
    assert len(channel.to_sequence()) == 1


def test_sample_as_dict_uses_map_keys():
    sample = _sample(0, classification=TerrainClass.OBSTACLE)

    assert sample.as_dict() == {
        "lat": 52.0,
        "lng": 13.0,
        "timestamp": "2025-01-01T12:00:00+00:00",
        "type": "obstacle",
    }


@pytest.mark.asyncio
async def test_feed_routes_frames_into_channels():
    frames = [
        TelemetryFrame(
            position=_sample(index),
            terrain=[_sample(index, classification=TerrainClass.CLEAR)],
        )
        for index in range(4)
    ]
    feed = TelemetryFeed(_ListSource(frames), trail_capacity=3, terrain_capacity=2)

    for _ in range(4):
        assert await feed.pump_once() is True
    assert await feed.pump_once() is False

    assert len(feed.trail.to_sequence()) == 3
    assert len(feed.terrain.to_sequence()) == 2
    assert feed.position is frames[-1].position
    assert feed.trail.to_sequence()[0] is frames[1].position


@pytest.mark.asyncio
async def test_feed_channel_lookup():
    feed = TelemetryFeed(_ListSource([]))

    assert feed.channel("trail") is feed.trail
    assert feed.channel("terrain") is feed.terrain
    with pytest.raises(KeyError):
        feed.channel("sonar")


@pytest.mark.asyncio
async def test_feed_disabled_terrain_still_tracks_position():
    frame = TelemetryFrame(
        position=_sample(0),
        terrain=[_sample(0, classification=TerrainClass.OBSTACLE)],
    )
    feed = TelemetryFeed(_ListSource([frame]))
    feed.terrain.set_enabled(False)

    await feed.pump_once()

    assert feed.terrain.to_sequence() == []
    assert feed.trail.to_sequence() == [frame.position]
    assert feed.as_dict()["position"]["lat"] == 52.0


@pytest.mark.asyncio
async def test_feed_loop_pumps_until_stopped():
    source = RandomWalkSource(rng=random.Random(7), clock=lambda: _NOW)
    feed = TelemetryFeed(source, interval_seconds=0.01)

    feed.start()
    await asyncio.sleep(0.08)
    await feed.stop()

    pumped = len(feed.trail.to_sequence())
    assert pumped >= 2

    await asyncio.sleep(0.03)
    assert len(feed.trail.to_sequence()) == pumped


@pytest.mark.asyncio
async def test_random_walk_is_deterministic_with_seeded_rng():
    first = RandomWalkSource(rng=random.Random(42), clock=lambda: _NOW)
    second = RandomWalkSource(rng=random.Random(42), clock=lambda: _NOW)

    for _ in range(10):
        assert await first.read() == await second.read()


@pytest.mark.asyncio
async def test_random_walk_stays_near_origin():
    source = RandomWalkSource((10.0, 20.0), rng=random.Random(1), clock=lambda: _NOW)

    for _ in range(20):
        frame = await source.read()
        assert abs(frame.position.latitude - 10.0) < 0.01
        assert abs(frame.position.longitude - 20.0) < 0.01
        assert 0 <= frame.position.heading < 360
        for point in frame.terrain:
            assert point.classification in (TerrainClass.OBSTACLE, TerrainClass.CLEAR)


def test_seed_samples_cover_terrain_classes():
    source = RandomWalkSource((1.0, 2.0), clock=lambda: _NOW)

    frame = source.seed_samples()

    assert frame.position.latitude == 1.0
    assert [point.classification for point in frame.terrain] == [
        TerrainClass.SCANNED,
        TerrainClass.OBSTACLE,
        TerrainClass.CLEAR,
    ]
