"""Operator control panel shown during playback.

The panel is a plain view-model: the controller updates it every frame and
the host renders it however it likes (DOM overlay, terminal status line,
nothing at all for a headless run). Buttons are wired back to the
controller through callbacks.
"""

import math
from typing import Callable

from replay.config.playback import LONG_WAIT_THRESHOLD
from replay.state_machine import PlaybackState

Callback = Callable[[], None]


class PlaybackPanel:
    """Countdown, next-action label and pause/stop/skip buttons.

    Stopping takes two clicks: the first pauses and asks for confirmation,
    then the operator either resumes or confirms.
    """

    def __init__(
        self,
        on_pause: Callback,
        on_resume: Callback,
        on_cancel: Callback,
        on_advance: Callback,
        long_wait_threshold: int = LONG_WAIT_THRESHOLD,
    ) -> None:
        self._on_pause = on_pause
        self._on_resume = on_resume
        self._on_cancel = on_cancel
        self._on_advance = on_advance
        self.long_wait_threshold = long_wait_threshold

        self.visible = False
        self.confirm_dismiss_mode = False
        self.error = False
        self.countdown_text = ""
        self.action_text = ""
        self.show_dismiss = True
        self.show_resume = False
        self.show_final_dismiss = False
        self.show_advance = False

    def show(self) -> None:
        self.visible = True
        self.confirm_dismiss_mode = False
        self.error = False
        self.countdown_text = ""
        self.action_text = ""

    def hide(self) -> None:
        self.visible = False
        self.confirm_dismiss_mode = False

    # Buttons

    def request_dismiss(self) -> None:
        self.confirm_dismiss_mode = True
        self._on_pause()

    def abort_dismiss(self) -> None:
        self.confirm_dismiss_mode = False
        self._on_resume()

    def confirm_dismiss(self) -> None:
        self._on_cancel()

    def press_advance(self) -> None:
        self._on_advance()

    def refresh(
        self,
        state: PlaybackState,
        countdown: float,
        next_action_label: str,
        error_message: str = "",
    ) -> None:
        """Recompute texts and button visibility for the current frame."""
        if not self.visible:
            return

        seconds = math.ceil(countdown)
        long_wait = state == PlaybackState.WAITING and seconds >= self.long_wait_threshold

        self.error = state == PlaybackState.ERROR
        self.show_dismiss = not self.confirm_dismiss_mode
        self.show_resume = self.confirm_dismiss_mode
        self.show_final_dismiss = self.confirm_dismiss_mode
        self.show_advance = long_wait and not self.confirm_dismiss_mode

        if state == PlaybackState.ERROR:
            self.countdown_text = "Error"
            self.action_text = error_message
        elif self.confirm_dismiss_mode:
            self.countdown_text = ""
            self.action_text = "Stop playback?"
        elif state in (PlaybackState.WAITING, PlaybackState.EXECUTING):
            self.action_text = next_action_label
            if long_wait:
                # Coarse steps keep the display from flickering every frame
                shown = math.ceil(seconds / 5) * 5
                self.countdown_text = f"{shown // 60}:{shown % 60:02d}"
            else:
                self.countdown_text = ""
        elif state == PlaybackState.PAUSED:
            self.countdown_text = "Paused"
            self.action_text = ""
        elif state == PlaybackState.COMPLETE:
            self.countdown_text = ""
            self.action_text = "Playback complete"
