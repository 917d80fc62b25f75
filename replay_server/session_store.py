"""On-disk storage for uploaded sessions.

Sessions are stored as indented JSON named by their content fingerprint, so
uploading the same recording twice stores it once.
"""

import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Union

from replay.exceptions import PersistenceError, SessionFormatError
from replay.session import fingerprint_session, load_session, save_session
from replay.session.models import RecordedSession

logger = logging.getLogger(__name__)

# Base directory for stored sessions
DATA_DIR = Path(os.getenv("REPLAY_DATA_DIR", "data/sessions"))

_SESSION_ID = re.compile(r"^[0-9a-f]{32}$")


class SessionStore:
    """File-per-session store under ``data_dir``."""

    def __init__(self, data_dir: Union[str, Path, None] = None) -> None:
        self.data_dir = Path(data_dir) if data_dir is not None else DATA_DIR

    def _path(self, session_id: str) -> Path:
        if not _SESSION_ID.match(session_id):
            raise KeyError(session_id)
        return self.data_dir / f"{session_id}.json"

    def save(self, session: RecordedSession) -> str:
        """Store ``session`` and return its id.

        Raises:
            PersistenceError: If the file cannot be written
        """
        session_id = fingerprint_session(session)
        try:
            save_session(session, self._path(session_id))
        except OSError as e:
            raise PersistenceError(f"Could not store session {session_id}: {e}") from e
        logger.info("Stored session %s (%d actions)", session_id[:8], len(session.actions))
        return session_id

    def load(self, session_id: str) -> RecordedSession:
        """Load a stored session.

        Raises:
            KeyError: If no session has this id
            PersistenceError: If the stored file is unreadable or corrupt
        """
        path = self._path(session_id)
        if not path.exists():
            raise KeyError(session_id)
        try:
            return load_session(path)
        except (OSError, SessionFormatError) as e:
            raise PersistenceError(f"Stored session {session_id} is unreadable: {e}") from e

    def exists(self, session_id: str) -> bool:
        try:
            return self._path(session_id).exists()
        except KeyError:
            return False

    def list_ids(self) -> List[str]:
        if not self.data_dir.exists():
            return []
        return sorted(
            path.stem for path in self.data_dir.glob("*.json") if _SESSION_ID.match(path.stem)
        )

    def delete(self, session_id: str) -> bool:
        """Remove a stored session; False if it did not exist."""
        try:
            path = self._path(session_id)
        except KeyError:
            return False
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted session %s", session_id[:8])
        return True

    def try_load(self, session_id: str) -> Optional[RecordedSession]:
        """Like :meth:`load`, but None for unknown or unreadable sessions."""
        try:
            return self.load(session_id)
        except KeyError:
            return None
        except PersistenceError as e:
            logger.warning("%s", e)
            return None
