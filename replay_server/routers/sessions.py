"""Session API: upload, list, download, delete and verify recordings."""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, HTTPException, Response
from fastapi.responses import JSONResponse

from replay.exceptions import PersistenceError, PlaybackError, SessionFormatError
from replay.headless import replay_session
from replay.session import session_from_dict, session_to_json
from replay_server.models import (
    ActionResultModel,
    SessionCreated,
    SessionSummary,
    VerifyResponse,
)
from replay_server.session_store import SessionStore

logger = logging.getLogger(__name__)


def setup_sessions_router(store: SessionStore) -> APIRouter:
    """Create and configure the sessions router.

    Args:
        store: Where uploaded sessions are kept

    Returns:
        Configured APIRouter
    """
    router = APIRouter(prefix="/api/sessions", tags=["sessions"])

    def _load(session_id: str):
        try:
            return store.load(session_id)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        except PersistenceError as e:
            logger.error(f"Error loading session {session_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("", status_code=201, response_model=SessionCreated)
    async def upload_session(payload: Dict[str, Any] = Body(...)):
        """Store an exported session.

        The body is the session JSON exactly as a host exported it. It is
        validated strictly: unknown action kinds or malformed fields are
        rejected with 400.
        """
        try:
            session = session_from_dict(payload, strict=True)
        except SessionFormatError as e:
            raise HTTPException(status_code=400, detail=str(e))

        try:
            session_id = store.save(session)
        except PersistenceError as e:
            logger.error(f"Error storing session: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

        return SessionCreated(
            session_id=session_id,
            action_count=len(session.actions),
            message=f"Stored session with {len(session.actions)} actions",
        )

    @router.get("", response_model=List[SessionSummary])
    async def list_sessions():
        """List stored sessions, skipping any that can no longer be read."""
        summaries = []
        for session_id in store.list_ids():
            session = store.try_load(session_id)
            if session is None:
                continue
            summaries.append(
                SessionSummary(
                    session_id=session_id,
                    seed=session.seed,
                    code_version=session.code_version,
                    platform=session.platform,
                    action_count=len(session.actions),
                    user_action_count=len(session.user_actions),
                    sealed=session.is_sealed,
                    timestamp=session.timestamp,
                )
            )
        return summaries

    @router.get("/{session_id}")
    async def download_session(session_id: str):
        """Return the stored session JSON, ready for re-import into a host."""
        session = _load(session_id)
        return Response(content=session_to_json(session), media_type="application/json")

    @router.delete("/{session_id}")
    async def delete_session(session_id: str):
        if not store.delete(session_id):
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return JSONResponse({"session_id": session_id, "deleted": True})

    @router.post("/{session_id}/verify", response_model=VerifyResponse)
    async def verify_session(session_id: str):
        """Replay a stored session on the headless host and report divergences.

        Sessions recorded without an initial model cannot be rebuilt headless
        and are rejected with 422.
        """
        session = _load(session_id)
        try:
            report = replay_session(session)
        except PlaybackError as e:
            raise HTTPException(status_code=422, detail=str(e))

        return VerifyResponse(
            session_id=session_id,
            passed=report.passed,
            differences=report.differences,
            actions_replayed=len(report.action_results),
            action_results=[
                ActionResultModel(
                    index=r.index, action=r.action, success=r.success, message=r.message
                )
                for r in report.action_results
            ],
            final_state=report.final_state.to_dict() if report.final_state else None,
        )

    return router
