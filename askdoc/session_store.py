"""In-memory registry of per-user sessions with idle-based eviction."""

from __future__ import annotations

import asyncio
import datetime
import threading
import uuid
from collections.abc import Callable
from dataclasses import fields
from typing import Any

from .config import config
from .errors import ErrorRecord, ErrorType
from .models import ALLOWED_TRANSITIONS, IndexStatus, Session

logger = config.get_logger(__name__)

_UNSET: Any = object()
_SESSION_FIELDS = frozenset(f.name for f in fields(Session)) - {"id", "created_at"}


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


class SessionStore:
    """Owns every Session object; other components borrow them per request.

    All operations are total over missing or blank ids: they return ``None``
    or ``False`` instead of raising. The map is guarded by a lock so that
    requests served from worker threads and from the event loop can share it.
    Two concurrent writers to the same session may still lose updates; one
    writer per session is assumed at the request level.
    """

    def __init__(
        self,
        idle_hours: float | None = None,
        sweep_interval_seconds: float | None = None,
        clock: Callable[[], datetime.datetime] = _utc_now,
    ) -> None:
        """Initialize an empty store.

        Args:
            idle_hours: Sessions untouched for longer are evicted by sweep().
                Defaults to config.SESSION_IDLE_HOURS.
            sweep_interval_seconds: Minimum spacing between lazy sweeps.
                Defaults to config.SESSION_SWEEP_INTERVAL_SECONDS.
            clock: Source of timezone-aware "now" timestamps.
        """
        if idle_hours is None:
            idle_hours = config.SESSION_IDLE_HOURS
        if sweep_interval_seconds is None:
            sweep_interval_seconds = config.SESSION_SWEEP_INTERVAL_SECONDS

        self.idle_threshold = datetime.timedelta(hours=idle_hours)
        self.sweep_interval = datetime.timedelta(seconds=sweep_interval_seconds)
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._ingestion_locks: dict[str, asyncio.Lock] = {}
        self._lock = threading.RLock()
        self._last_sweep = clock()

    def create(self) -> str:
        """Create a new empty session.

        Returns:
            The new session id.
        """
        self.maybe_sweep()
        session_id = str(uuid.uuid4())
        now = self._clock()
        with self._lock:
            self._sessions[session_id] = Session(
                id=session_id,
                created_at=now,
                last_accessed_at=now,
            )
        logger.info("Created new session: %s", session_id)
        return session_id

    def get(self, session_id: str | None) -> Session | None:
        """Return the session and refresh its last-accessed time."""  # noqa: DOC201
        if not session_id or not session_id.strip():
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.debug("Session not found: %s", session_id)
                return None
            session.last_accessed_at = self._clock()
            return session

    def exists(self, session_id: str | None) -> bool:
        """Check for a session without touching its last-accessed time."""  # noqa: DOC201
        if not session_id:
            return False
        with self._lock:
            return session_id in self._sessions

    def update(
        self,
        session_id: str | None,
        *,
        expected_token: str | None = _UNSET,
        **changes: Any,
    ) -> bool:
        """Apply field changes to a session in one locked step.

        Args:
            session_id: Target session.
            expected_token: When given, the update only applies if the session's
                ``ingestion_token`` still equals it (compare-and-swap).
            **changes: Session attributes to overwrite.

        Returns:
            True if the session exists (and the token matched) and was updated.

        Raises:
            AttributeError: If a change names a field Session does not have.
        """
        unknown = set(changes) - _SESSION_FIELDS
        if unknown:
            msg = f"Unknown session fields: {', '.join(sorted(unknown))}"
            raise AttributeError(msg)

        with self._lock:
            session = self.get(session_id)
            if session is None:
                return False
            if (
                expected_token is not _UNSET
                and session.ingestion_token != expected_token
            ):
                logger.info(
                    "Discarding stale update for session %s (attempt superseded)",
                    session_id,
                )
                return False
            for name, value in changes.items():
                setattr(session, name, value)
        return True

    def transition(
        self,
        session_id: str | None,
        new_status: IndexStatus,
        *,
        expected_token: str | None = _UNSET,
        **changes: Any,
    ) -> bool:
        """Move the session's index status along the state machine.

        Returns:
            True if the transition was allowed and applied.
        """
        with self._lock:
            session = self.get(session_id)
            if session is None:
                return False
            current = session.index_status
            if new_status not in ALLOWED_TRANSITIONS[current]:
                logger.warning(
                    "Rejected index status transition %s -> %s for session %s",
                    current,
                    new_status,
                    session_id,
                )
                return False
            return self.update(
                session_id,
                expected_token=expected_token,
                index_status=new_status,
                **changes,
            )

    def record_error(
        self,
        session_id: str | None,
        error_type: ErrorType,
        message: str,
        *,
        expected_token: str | None = _UNSET,
    ) -> bool:
        """Append an entry to the session's error log.

        Returns:
            True if the session exists (and the token matched).
        """
        with self._lock:
            session = self.get(session_id)
            if session is None:
                return False
            if (
                expected_token is not _UNSET
                and session.ingestion_token != expected_token
            ):
                return False
            session.errors.append(ErrorRecord(type=error_type, message=message))
        return True

    def reset(self, session_id: str | None) -> bool:
        """Clear document-derived state while keeping the id valid.

        Returns:
            True if the session exists.
        """
        with self._lock:
            session = self.get(session_id)
            if session is None:
                return False
            session.document_name = None
            session.chunks = []
            session.index = None
            session.index_status = IndexStatus.NOT_CREATED
            session.errors = []
            session.indexed_chunk_count = 0
            session.index_complete = False
            session.ingestion_token = None
        logger.info("Reset session: %s", session_id)
        return True

    def delete(self, session_id: str | None) -> bool:
        """Remove a session entirely.

        Returns:
            True if a session was removed.
        """
        if not session_id:
            return False
        with self._lock:
            removed = self._sessions.pop(session_id, None)
            self._ingestion_locks.pop(session_id, None)
        if removed is not None:
            logger.info("Deleted session: %s", session_id)
        return removed is not None

    def sweep(self) -> int:
        """Evict sessions idle for longer than the configured threshold.

        Returns:
            Number of sessions removed.
        """
        now = self._clock()
        with self._lock:
            snapshot = list(self._sessions.items())
            self._last_sweep = now

        expired = [
            session_id
            for session_id, session in snapshot
            if now - session.last_accessed_at > self.idle_threshold
        ]

        removed = 0
        with self._lock:
            for session_id in expired:
                session = self._sessions.get(session_id)
                # Touched again since the snapshot was taken
                if session is None or now - session.last_accessed_at <= (
                    self.idle_threshold
                ):
                    continue
                del self._sessions[session_id]
                self._ingestion_locks.pop(session_id, None)
                removed += 1
                logger.info("Cleaned up idle session: %s", session_id)

        if removed:
            logger.info("Cleaned up %d idle sessions", removed)
        return removed

    def maybe_sweep(self) -> int:
        """Run sweep() if the sweep interval has elapsed since the last one.

        Returns:
            Number of sessions removed (0 when no sweep was due).
        """
        if self._clock() - self._last_sweep < self.sweep_interval:
            return 0
        return self.sweep()

    def ingestion_lock(self, session_id: str) -> asyncio.Lock:
        """Lock giving one ingestion call exclusive use of the index slot."""  # noqa: DOC201
        with self._lock:
            lock = self._ingestion_locks.get(session_id)
            if lock is None:
                lock = asyncio.Lock()
                self._ingestion_locks[session_id] = lock
            return lock

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def status(self, session_id: str | None) -> dict[str, Any]:
        """Describe a session for health/status reporting.

        Returns:
            Mapping with existence, index status, document, chunk counts,
            last-accessed time and the error log.
        """
        session = self.get(session_id)
        if session is None:
            return {
                "session_exists": False,
                "vectorstore_available": False,
                "pdf_uploaded": False,
                "current_pdf": None,
                "index_status": str(IndexStatus.NOT_CREATED),
                "chunk_count": 0,
                "indexed_chunk_count": 0,
                "index_complete": False,
                "last_accessed": None,
                "errors": [],
            }

        return {
            "session_exists": True,
            "vectorstore_available": session.index is not None,
            "pdf_uploaded": session.document_name is not None,
            "current_pdf": session.document_name,
            "index_status": str(session.index_status),
            "chunk_count": len(session.chunks),
            "indexed_chunk_count": session.indexed_chunk_count,
            "index_complete": session.index_complete,
            "last_accessed": session.last_accessed_at.isoformat(),
            "errors": [error.to_dict() for error in session.errors],
        }
