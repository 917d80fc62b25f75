"""Pytest configuration and fixtures for replay tests."""

import pytest

from replay.config import PlaybackConfig
from replay.util.rng import SeededRNG


@pytest.fixture
def seeded_rng():
    """Provide a deterministic RNG for tests."""
    return SeededRNG(42)


@pytest.fixture
def simulator(seeded_rng):
    """A headless simulator loaded with the default scenario."""
    from replay.headless import DEFAULT_SCENARIO, HeadlessSimulator

    sim = HeadlessSimulator(rng=seeded_rng)
    sim.setup_from_scenario(DEFAULT_SCENARIO)
    return sim


@pytest.fixture
def host(simulator):
    """A headless host around the default-scenario simulator."""
    from replay.headless import HeadlessHost

    return HeadlessHost(simulator)


@pytest.fixture
def fast_config():
    """Playback pacing with every delay collapsed."""
    return PlaybackConfig.fast()
