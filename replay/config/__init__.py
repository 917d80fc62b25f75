"""Configuration for recording, playback and verification."""

from replay.config.playback import (
    BACKGROUND_TICK_SECONDS,
    PlaybackConfig,
    VerifierConfig,
)

__all__ = [
    "BACKGROUND_TICK_SECONDS",
    "PlaybackConfig",
    "VerifierConfig",
]
