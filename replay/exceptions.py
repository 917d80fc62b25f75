"""Replay exception hierarchy.

Centralised base classes so callers can catch narrowly and failures are
easy to classify. Desynchronization is deliberately absent here: a replay
divergence is reported through ``replay.result`` objects, never raised.
"""


class ReplayError(Exception):
    """Root of all replay-domain exceptions."""


class InvalidStateError(ReplayError):
    """An operation was requested in a state that does not allow it."""


class UnseededRNGError(InvalidStateError):
    """A reproducible RNG was required but a live (unseeded) one was supplied."""


class SessionFormatError(ReplayError, ValueError):
    """A recorded session could not be parsed or failed validation."""


class PlaybackError(ReplayError):
    """Errors raised by the playback controller outside of a running replay."""


class PersistenceError(ReplayError):
    """Errors during save / load of recorded sessions."""
