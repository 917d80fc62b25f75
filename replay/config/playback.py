"""Playback and verification configuration.

Module constants hold the production defaults. The dataclasses group them
so a host (or a test) can run playback at a different pace without
touching the controller.
"""

import os
from dataclasses import dataclass

# Pacing (seconds of tick time)
INTER_ACTION_DELAY = 1.0  # Wait between two replayed actions
INTRA_ACTION_DELAY = 0.8  # Pause after an implicit mode toggle inside an action
HOVER_PAUSE = 0.0  # Dwell on a subject before clicking it
SLICE_HOVER_PAUSE = 1.5  # Dwell on a menu slice before clicking it
EXPECT_ACTION_SETTLE = 0.1  # Delay before reading the result of a completing click
CLICK_RETRY_DELAY = 0.1  # Delay before re-clicking after a dismissed thought bubble
LOCAL_DELAY = 0.1  # All pacing delays collapse to this in fast mode

# Bounded waits for asynchronous presentation effects
TRANSITION_WAIT_TIMEOUT = 5.0
PENDING_OPERATIONS_WAIT_TIMEOUT = 5.0
EXIT_ANIMATION_WAIT_TIMEOUT = 10.0

CLICK_RETRY_LIMIT = 3
LONG_WAIT_THRESHOLD = 10  # Countdown shown only for waits at least this long

# Background engine
BACKGROUND_TICK_SECONDS = 0.5  # Duration of one background interval

# Verification tolerances
TRUST_TOLERANCE = 0.001
ATTENTION_TOLERANCE = 0.01
TIMER_TOLERANCE = 0.01

FAST_PLAYBACK_ENV = "REPLAY_FAST_PLAYBACK"


@dataclass
class PlaybackConfig:
    """Pacing and wait budgets for the playback controller.

    Attributes:
        inter_action_delay: Countdown before each replayed action
        intra_action_delay: Pause after toggling view mode mid-action
        hover_pause: Dwell on a subject before clicking it
        slice_hover_pause: Dwell on a menu slice before clicking it
        transition_timeout: Max wait for a view transition to finish
        pending_operations_timeout: Max wait for queued blend operations
        exit_animation_timeout: Max wait for exit animations
        click_retry_limit: Re-clicks allowed when a click only dismissed a bubble
        restore_orchestrator_on_intervals: Restore the recorded background-engine
            snapshot before replaying a batch of background ticks
    """

    inter_action_delay: float = INTER_ACTION_DELAY
    intra_action_delay: float = INTRA_ACTION_DELAY
    hover_pause: float = HOVER_PAUSE
    slice_hover_pause: float = SLICE_HOVER_PAUSE
    expect_action_settle: float = EXPECT_ACTION_SETTLE
    click_retry_delay: float = CLICK_RETRY_DELAY
    transition_timeout: float = TRANSITION_WAIT_TIMEOUT
    pending_operations_timeout: float = PENDING_OPERATIONS_WAIT_TIMEOUT
    exit_animation_timeout: float = EXIT_ANIMATION_WAIT_TIMEOUT
    click_retry_limit: int = CLICK_RETRY_LIMIT
    long_wait_threshold: int = LONG_WAIT_THRESHOLD
    restore_orchestrator_on_intervals: bool = True

    @classmethod
    def fast(cls) -> "PlaybackConfig":
        """Pacing used for local development and automated runs."""
        return cls(
            inter_action_delay=LOCAL_DELAY,
            intra_action_delay=LOCAL_DELAY,
            slice_hover_pause=LOCAL_DELAY,
        )

    @classmethod
    def from_env(cls) -> "PlaybackConfig":
        """Build a config, honouring ``REPLAY_FAST_PLAYBACK=true``."""
        if os.getenv(FAST_PLAYBACK_ENV, "false").lower() == "true":
            return cls.fast()
        return cls()


@dataclass
class VerifierConfig:
    """Numeric tolerances used when comparing recorded and live state."""

    trust_tolerance: float = TRUST_TOLERANCE
    attention_tolerance: float = ATTENTION_TOLERANCE
    timer_tolerance: float = TIMER_TOLERANCE
