"""Session playback: controller and operator panel."""

from replay.playback.controller import (
    THOUGHT_BUBBLE_DISMISSED,
    PlaybackController,
    PlaybackFailure,
)
from replay.playback.panel import PlaybackPanel

__all__ = [
    "PlaybackController",
    "PlaybackFailure",
    "PlaybackPanel",
    "THOUGHT_BUBBLE_DISMISSED",
]
