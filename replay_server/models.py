"""Request and response models for the session API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class SessionSummary(BaseModel):
    """One stored session, without its action log."""

    session_id: str
    seed: int
    code_version: str
    platform: str
    action_count: int
    user_action_count: int
    sealed: bool
    timestamp: float


class SessionCreated(BaseModel):
    session_id: str
    action_count: int
    message: str


class ActionResultModel(BaseModel):
    index: int
    action: str
    success: bool
    message: str = ""


class VerifyResponse(BaseModel):
    """Result of replaying a stored session on the headless host."""

    session_id: str
    passed: bool
    differences: List[str]
    actions_replayed: int
    action_results: List[ActionResultModel]
    final_state: Optional[Dict[str, Any]] = None
