"""Catalogue of replayable actions.

Actions reach the simulation through three menus: the star menu (opened
by clicking the star), the cloud menu (opened by clicking a subject) and
the ray-field menu (opened by clicking the self ray). A handful of actions
have no menu at all: selecting a target, switching view mode, spontaneous
blends raised by the simulation itself and background-tick pseudo-actions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Collection, Optional, Tuple

from replay.exceptions import SessionFormatError

if TYPE_CHECKING:
    from replay.session.models import RecordedAction

# Special subject ids the host resolves to on-screen controls
STAR_CLOUD_ID = "*"
RAY_CLOUD_ID = "*ray*"
MODE_TOGGLE_CLOUD_ID = "*mode*"

SELECT_TARGET = "select_a_target"
RAY_FIELD_SELECT = "ray_field_select"
SPONTANEOUS_BLEND = "spontaneous_blend"
BACKLASH = "backlash"
MODE_CHANGE = "mode_change"
INTERVAL_ACTION = "process_intervals"

MODES = ("panorama", "foreground")


@dataclass(frozen=True)
class MenuAction:
    id: str
    short_name: str
    category: str


STAR_MENU_ACTIONS: Tuple[MenuAction, ...] = (
    MenuAction("feel_toward", "Feel", "relationship"),
    MenuAction("expand_deepen", "Expand", "relationship"),
)

CLOUD_MENU_ACTIONS: Tuple[MenuAction, ...] = (
    MenuAction("notice_part", "Notice", "discovery"),
    MenuAction("who_do_you_see", "Who?", "discovery"),
    MenuAction("job", "Job", "role"),
    MenuAction("join_conference", "Join", "relationship"),
    MenuAction("separate", "Separate", "relationship"),
    MenuAction("be_with", "Be with", "relationship"),
    MenuAction("step_back", "Step back", "relationship"),
    MenuAction("blend", "Blend", "relationship"),
    MenuAction("help_protected", "Help?", "relationship"),
    MenuAction("validate", "Validate", "relationship"),
)

RAY_FIELD_ACTIONS: Tuple[MenuAction, ...] = (
    MenuAction("age", "Age", "discovery"),
    MenuAction("identity", "Identity", "discovery"),
    MenuAction("jobAppraisal", "Appraisal", "discovery"),
    MenuAction("jobImpact", "Impact", "discovery"),
    MenuAction("whatNeedToKnow", "Need?", "discovery"),
    MenuAction("gratitude", "Gratitude", "relationship"),
    MenuAction("compassion", "Compassion", "relationship"),
    MenuAction("apologize", "Apologize", "relationship"),
)

STAR_ACTION_IDS = frozenset(a.id for a in STAR_MENU_ACTIONS)
CLOUD_ACTION_IDS = frozenset(a.id for a in CLOUD_MENU_ACTIONS)
RAY_FIELD_IDS = frozenset(a.id for a in RAY_FIELD_ACTIONS)

KNOWN_ACTIONS = (
    STAR_ACTION_IDS
    | CLOUD_ACTION_IDS
    | {SELECT_TARGET, RAY_FIELD_SELECT, SPONTANEOUS_BLEND, BACKLASH, MODE_CHANGE, INTERVAL_ACTION}
)

# Actions that must name the subject they act on
_SUBJECT_ACTIONS = CLOUD_ACTION_IDS | {SELECT_TARGET, RAY_FIELD_SELECT, SPONTANEOUS_BLEND, BACKLASH}


def is_valid_action(action_id: str) -> bool:
    return action_id in KNOWN_ACTIONS


def is_star_menu_action(action_id: str) -> bool:
    return action_id in STAR_ACTION_IDS


def is_cloud_menu_action(action_id: str) -> bool:
    return action_id in CLOUD_ACTION_IDS


def validate_recorded_action(
    action: RecordedAction, known_cloud_ids: Optional[Collection[str]] = None
) -> None:
    """Check that ``action`` is something playback knows how to replay.

    Args:
        action: The action to check
        known_cloud_ids: Subject ids of the simulation, when available

    Raises:
        SessionFormatError: Describing the first problem found
    """
    kind = action.action
    if not is_valid_action(kind):
        raise SessionFormatError(f"Unknown action: {kind}")

    if kind == INTERVAL_ACTION:
        if action.count is None or action.count < 0:
            raise SessionFormatError("process_intervals requires a non-negative count")
        return

    if kind == MODE_CHANGE:
        if action.new_mode not in MODES:
            raise SessionFormatError(f"mode_change has invalid newMode: {action.new_mode!r}")
        return

    if kind == RAY_FIELD_SELECT and action.field not in RAY_FIELD_IDS:
        raise SessionFormatError(f"ray_field_select has unknown field: {action.field!r}")

    if kind in _SUBJECT_ACTIONS and not action.cloud_id:
        raise SessionFormatError(f"{kind} requires a cloudId")

    if known_cloud_ids is not None:
        if action.cloud_id and action.cloud_id not in known_cloud_ids:
            raise SessionFormatError(f"Unknown cloudId: {action.cloud_id}")
        if action.target_cloud_id and action.target_cloud_id not in known_cloud_ids:
            raise SessionFormatError(f"Unknown targetCloudId: {action.target_cloud_id}")


def format_action_label(action: RecordedAction, name_of: Callable[[str], str]) -> str:
    """Short operator-facing description of ``action``.

    Background-tick pseudo-actions are silent and format as "". Kinds this
    build does not know are shown by their raw id.
    """
    kind = action.action
    name = name_of(action.cloud_id) if action.cloud_id else ""
    target_name = name_of(action.target_cloud_id) if action.target_cloud_id else None

    if kind == SELECT_TARGET:
        return f"Select: {name}"
    if kind == "join_conference":
        return f"Click: {name}"
    if kind == "step_back":
        return f"Step back: {name}"
    if kind == "separate":
        return f"Separate: {name}"
    if kind == "blend":
        return f"Blend: {name}"
    if kind == "job":
        return f"Job: {name}"
    if kind == "feel_toward":
        return f"Feel toward: {name}" if name else "Feel toward"
    if kind == "expand_deepen":
        return "Expand and deepen"
    if kind == "who_do_you_see":
        return f"Who do you see: {name}"
    if kind == "help_protected":
        return f"Help protected: {name}"
    if kind == "be_with":
        return f"Be with: {name}"
    if kind == "validate":
        return f"Validate: {name}"
    if kind == "notice_part":
        if target_name:
            return f"Notice: {name} notices {target_name}"
        return f"Notice part: {name}"
    if kind == RAY_FIELD_SELECT:
        return f"Ask {action.field}: {name}"
    if kind == SPONTANEOUS_BLEND:
        return f"{name} demands attention"
    if kind == BACKLASH:
        return f"Backlash: {name}"
    if kind == MODE_CHANGE:
        return f"Mode: {action.new_mode or 'unknown'}"
    if kind == INTERVAL_ACTION:
        return ""
    return kind
