"""
In-memory session store for mounted forms.

Each session holds a FormSession. Sessions are created when the
presentation layer mounts a form and cleaned up after a timeout; nothing
is persisted.
"""

import logging
import threading
import time
import uuid
from collections import Counter

from reservations.core.form_state import FormSession

logger = logging.getLogger(__name__)


# Default session timeout: 30 minutes
DEFAULT_SESSION_TIMEOUT_SECONDS = 30 * 60


class Session:
    """A single mounted form, with access timestamps for expiry."""

    def __init__(self, form: FormSession):
        self.form: FormSession = form
        self.created_at: float = time.time()
        self.last_accessed_at: float = time.time()

    def touch(self) -> None:
        """Update the last accessed timestamp."""
        self.last_accessed_at = time.time()

    def is_expired(self, timeout_seconds: int = DEFAULT_SESSION_TIMEOUT_SECONDS) -> bool:
        """Check if the session has expired."""
        return (time.time() - self.last_accessed_at) > timeout_seconds


class SessionStore:
    """In-memory store for form sessions.

    Thread-safe for basic use. Sessions are lost on restart.
    """

    def __init__(self, timeout_seconds: int = DEFAULT_SESSION_TIMEOUT_SECONDS):
        self._sessions: dict[str, Session] = {}
        self._timeout_seconds = timeout_seconds
        self._lock = threading.RLock()

    def create_session(
        self,
        form_kind: str,
        session_id: str | None = None,
    ) -> tuple[str, Session]:
        """Mount a new form session.

        Args:
            form_kind: A registered form kind.
            session_id: Optional custom ID. Auto-generated if not provided.

        Returns:
            Tuple of (session_id, Session).

        Raises:
            ConfigurationError: If the form kind is unknown.
        """
        if session_id is None:
            session_id = str(uuid.uuid4())

        session = Session(FormSession.for_form(form_kind))

        with self._lock:
            if session_id in self._sessions:
                logger.info("Replacing session %s", session_id)
            self._sessions[session_id] = session
        return session_id, session

    def get_session(self, session_id: str) -> Session | None:
        """Retrieve a session by ID.

        Returns None if the session doesn't exist or has expired.
        Automatically cleans up expired sessions.
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            return None

        if session.is_expired(self._timeout_seconds):
            with self._lock:
                if session_id in self._sessions:
                    del self._sessions[session_id]
            return None

        session.touch()
        return session

    def delete_session(self, session_id: str) -> bool:
        """Delete a session. Returns True if it existed."""
        with self._lock:
            if session_id in self._sessions:
                del self._sessions[session_id]
                return True
            return False

    def cleanup_expired(self) -> int:
        """Remove all expired sessions. Returns the count of removed sessions."""
        with self._lock:
            expired = [
                sid for sid, session in self._sessions.items()
                if session.is_expired(self._timeout_seconds)
            ]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def count_by_form(self) -> dict[str, int]:
        """Number of live sessions per form kind."""
        with self._lock:
            sessions = list(self._sessions.values())
        return dict(Counter(s.form.form_kind for s in sessions))

    def list_session_ids(self, form_kind: str | None = None) -> list[str]:
        """Return active session IDs, optionally only those of one form kind."""
        with self._lock:
            return [
                sid for sid, session in self._sessions.items()
                if form_kind is None or session.form.form_kind == form_kind
            ]
