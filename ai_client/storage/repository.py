"""
Repository pattern for data access.

Handles loading and saving usage statistics and conversation sessions
as JSON files under the client's state directory.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from ai_client.core.accounting import SessionStats
from ai_client.core.conversation import Conversation

from .files import atomic_write_json, ensure_directory, read_json
from .models import (
    SessionSummary,
    conversation_from_dict,
    conversation_to_dict,
    stats_from_dict,
    stats_to_dict,
    summary_from_dict,
    to_epoch_ms,
)

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = Path.home() / ".ai-client"
STATS_FILENAME = "stats.json"
SESSIONS_DIRNAME = "sessions"


class StateRepository:
    """Repository for persisted stats and conversation sessions.

    Reads are forgiving: a missing, unreadable or malformed file is
    reported as absent. Writes are atomic and failures propagate.
    Concurrent processes are not coordinated; the last writer wins.
    """

    def __init__(self, base_dir: Optional[Path] = None):
        """Initialize the repository with a state directory.

        Args:
            base_dir: Directory holding stats.json and sessions/
                (defaults to ~/.ai-client)
        """
        self.base_dir = Path(base_dir) if base_dir is not None else DEFAULT_STATE_DIR
        self.stats_path = self.base_dir / STATS_FILENAME
        self.sessions_dir = self.base_dir / SESSIONS_DIRNAME

    def _ensure_directories(self) -> None:
        ensure_directory(self.base_dir)
        ensure_directory(self.sessions_dir)

    def _session_path(self, session_id: str) -> Path:
        # Reject ids that would escape the sessions directory
        if not session_id or Path(session_id).name != session_id:
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self.sessions_dir / f"{session_id}.json"

    def load_stats(self) -> Optional[SessionStats]:
        """Load global usage statistics.

        Returns:
            SessionStats, or None if absent or corrupted
        """
        if not self.stats_path.exists():
            return None
        try:
            return stats_from_dict(read_json(self.stats_path))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring invalid stats file %s: %s", self.stats_path, e)
            return None

    def save_stats(self, stats: SessionStats) -> None:
        """Persist global usage statistics atomically.

        Args:
            stats: Statistics to write

        Raises:
            OSError: If the file cannot be written
        """
        self._ensure_directories()
        data = stats_to_dict(stats)
        data["lastUpdated"] = to_epoch_ms(datetime.now(timezone.utc))
        atomic_write_json(self.stats_path, data)

    def load_conversation(self, session_id: str) -> Optional[Conversation]:
        """Load a saved conversation.

        Args:
            session_id: Conversation id

        Returns:
            Conversation, or None if not found or corrupted
        """
        try:
            path = self._session_path(session_id)
        except ValueError as e:
            logger.warning("%s", e)
            return None
        if not path.exists():
            return None
        try:
            conversation = conversation_from_dict(read_json(path))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring invalid session file %s: %s", path, e)
            return None
        if conversation.id != session_id:
            logger.warning("Ignoring session file %s with mismatched id %r", path, conversation.id)
            return None
        return conversation

    def save_conversation(self, conversation: Conversation) -> None:
        """Persist a conversation atomically.

        Raises:
            OSError: If the file cannot be written
        """
        self._ensure_directories()
        atomic_write_json(
            self._session_path(conversation.id),
            conversation_to_dict(conversation)
        )

    def list_sessions(self) -> List[SessionSummary]:
        """List saved sessions, most recently updated first.

        Corrupted session files are skipped, as are files whose stored id
        does not match their file name.
        """
        if not self.sessions_dir.exists():
            return []

        sessions = []
        for path in self.sessions_dir.glob("*.json"):
            try:
                summary = summary_from_dict(read_json(path))
            except (OSError, ValueError) as e:
                logger.debug("Skipping unreadable session file %s: %s", path, e)
                continue
            if summary.id != path.stem:
                logger.warning("Skipping session file %s with mismatched id %r", path, summary.id)
                continue
            sessions.append(summary)

        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions

    def delete_session(self, session_id: str) -> bool:
        """Delete a saved session.

        Returns:
            True if deleted, False if it didn't exist
        """
        path = self._session_path(session_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def prune_sessions(self, older_than_days: int) -> List[str]:
        """Delete sessions not updated within ``older_than_days``.

        Args:
            older_than_days: Age threshold in days (must be >= 0)

        Returns:
            Ids of the deleted sessions
        """
        if older_than_days < 0:
            raise ValueError("older_than_days must be >= 0")

        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        deleted = []
        for session in self.list_sessions():
            if session.updated_at < cutoff and self.delete_session(session.id):
                deleted.append(session.id)
        return deleted


# Global repository instance
_default_repository: Optional[StateRepository] = None


def get_repository(base_dir: Optional[Path] = None) -> StateRepository:
    """Get a repository instance.

    Without ``base_dir`` a shared instance for ~/.ai-client is returned.

    Args:
        base_dir: Optional state directory

    Returns:
        An instance of StateRepository
    """
    global _default_repository
    if base_dir is not None:
        return StateRepository(base_dir)
    if _default_repository is None:
        _default_repository = StateRepository()
    return _default_repository
