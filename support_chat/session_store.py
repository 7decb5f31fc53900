from __future__ import annotations

import json
import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .models import ConversationMessage, SessionSummary

DEFAULT_SESSION_ID = "default"

logger = logging.getLogger("support_chat.sessions")


class SessionStore:
    """Per-session conversation history seeded with the system prompt."""

    def __init__(
        self,
        seed_messages: Sequence[Tuple[str, str]],
        path: Optional[Path] = None,
        max_sessions: Optional[int] = None,
        max_messages: Optional[int] = None,
    ) -> None:
        """Purpose: Initialize the session store and hydrate from disk if available.
        Inputs/Outputs: Inputs are seed (role, content) pairs, optional file path,
            session cap, and per-session message cap; no return value.
        Side Effects / State: Loads sessions into memory when a file is present.
        Dependencies: Calls _load; relies on ConversationMessage/SessionSummary models.
        Failure Modes: JSON decode errors are logged and leave an empty store.
        If Removed: Conversations have no history and the LLM sees one turn at a time.
        Testing Notes: Verify new sessions start with exactly the seed messages.
        """
        # Keep configuration and preload persisted sessions if present.
        self._seed = [(role, content) for role, content in seed_messages]
        self._path = path
        self._max_sessions = max_sessions
        self._max_messages = max_messages
        self._sessions: Dict[str, List[ConversationMessage]] = {}
        self._summaries: Dict[str, SessionSummary] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._active: Dict[str, int] = {}
        self._guard = threading.RLock()
        self._load()

    @property
    def seed_size(self) -> int:
        return len(self._seed)

    def _load(self) -> None:
        """Purpose: Load persisted session data from disk into memory.
        Inputs/Outputs: Reads from self._path; no return value.
        Side Effects / State: Populates _sessions and _summaries.
        Dependencies: Uses json.loads and pydantic validation.
        Failure Modes: Missing file or JSONDecodeError results in an empty store.
        If Removed: Conversations are lost across restarts when a path is configured.
        Testing Notes: Corrupt JSON should not crash; valid JSON should hydrate.
        """
        # Read and decode persisted JSON if present.
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("session file unreadable path=%s", self._path)
            return
        for session_id, messages in data.get("sessions", {}).items():
            self._sessions[session_id] = [ConversationMessage(**msg) for msg in messages]
        for session_id, summary in data.get("summaries", {}).items():
            if session_id in self._sessions:
                self._summaries[session_id] = SessionSummary(**summary)
        for session_id, messages in self._sessions.items():
            if session_id not in self._summaries:
                self._summaries[session_id] = self._summary_for(session_id, messages)
        if self._prune_sessions():
            self._persist()

    def _persist(self) -> None:
        """Purpose: Write sessions and summaries to disk when a path is configured.
        Inputs/Outputs: Writes to self._path; no return value.
        Side Effects / State: Replaces the JSON file atomically via a temp file.
        Dependencies: Uses json.dumps and Path.replace.
        Failure Modes: IO errors raise (not caught here).
        If Removed: History is never saved across restarts.
        Testing Notes: Ensure the file round-trips through a new SessionStore.
        """
        # Serialize current state and swap the file in.
        if not self._path:
            return
        payload = {
            "sessions": {
                session_id: [msg.model_dump() for msg in messages]
                for session_id, messages in self._sessions.items()
            },
            "summaries": {session_id: summary.model_dump() for session_id, summary in self._summaries.items()},
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        """Purpose: Serialize whole chat turns for one session.
        Inputs/Outputs: Input is session_id; yields while the session lock is held.
        Side Effects / State: Creates the per-session lock on first use; marks the session
            active (holding or waiting) so pruning cannot evict it.
        Dependencies: threading.Lock; the registry itself is guarded by _guard.
        Failure Modes: None; the lock is released when the block exits.
        If Removed: Concurrent requests for one session interleave their turns.
        Testing Notes: Two threads appending under the lock keep user/assistant pairs adjacent.
        """
        # Fetch or create the session's lock and count the caller before waiting on it.
        with self._guard:
            session_lock = self._locks.setdefault(session_id, threading.Lock())
            self._active[session_id] = self._active.get(session_id, 0) + 1
        try:
            with session_lock:
                yield
        finally:
            with self._guard:
                remaining = self._active[session_id] - 1
                if remaining:
                    self._active[session_id] = remaining
                else:
                    del self._active[session_id]

    def ensure_session(self, session_id: str) -> None:
        """Create the session with the seed messages if it does not exist yet."""
        with self._guard:
            if session_id in self._sessions:
                return
            self._sessions[session_id] = self._seeded()
            self._summaries[session_id] = SessionSummary(
                session_id=session_id,
                title="New Chat",
                updated_at=time.time(),
                message_count=len(self._seed),
            )
            self._prune_sessions(keep=session_id)
            self._persist()

    def append(self, session_id: str, role: str, content: str) -> ConversationMessage:
        """Purpose: Append one turn to a session and refresh its summary.
        Inputs/Outputs: Inputs are session_id, role, content; output is the stored message.
        Side Effects / State: Mutates the session list, trims history, persists.
        Dependencies: ensure_session, _trim_history, _prune_sessions, _persist.
        Failure Modes: Invalid roles raise pydantic ValidationError.
        If Removed: Turns are not recorded and follow-up questions lose context.
        Testing Notes: Append user then assistant and check order after the seed.
        """
        # Create lazily, append, and keep the summary in sync.
        message = ConversationMessage(role=role, content=content, timestamp=time.time())
        with self._guard:
            self.ensure_session(session_id)
            messages = self._sessions[session_id]
            messages.append(message)
            self._trim_history(messages)
            summary = self._summaries[session_id]
            if role == "user" and summary.title == "New Chat":
                summary.title = content.strip().splitlines()[0][:48] if content.strip() else "New Chat"
            summary.updated_at = message.timestamp
            summary.message_count = len(messages)
            self._prune_sessions(keep=session_id)
            self._persist()
        return message

    def pop_last(self, session_id: str, role: str) -> Optional[ConversationMessage]:
        """Remove the newest message if it has the given role and is not a seed message."""
        with self._guard:
            messages = self._sessions.get(session_id)
            if not messages or len(messages) <= len(self._seed) or messages[-1].role != role:
                return None
            removed = messages.pop()
            self._summaries[session_id].message_count = len(messages)
            self._persist()
            return removed

    def clear(self, session_id: str) -> None:
        """Purpose: Reset one session back to its seed messages.
        Inputs/Outputs: Input is session_id; no return value.
        Side Effects / State: Replaces the message list and persists.
        Dependencies: _seeded and _persist.
        Failure Modes: Unknown sessions are created in the seed state.
        If Removed: Users cannot start over without a new session id.
        Testing Notes: After clear, get_messages equals the seed.
        """
        # Replace history with a fresh copy of the seed.
        with self._guard:
            self._sessions[session_id] = self._seeded()
            self._summaries[session_id] = SessionSummary(
                session_id=session_id,
                title="New Chat",
                updated_at=time.time(),
                message_count=len(self._seed),
            )
            self._persist()

    def get_messages(self, session_id: str) -> List[ConversationMessage]:
        with self._guard:
            return list(self._sessions.get(session_id, []))

    def list_sessions(self) -> List[SessionSummary]:
        with self._guard:
            return sorted(self._summaries.values(), key=lambda s: s.updated_at, reverse=True)

    def _seeded(self) -> List[ConversationMessage]:
        now = time.time()
        return [ConversationMessage(role=role, content=content, timestamp=now) for role, content in self._seed]

    def _summary_for(self, session_id: str, messages: List[ConversationMessage]) -> SessionSummary:
        first_user = next((msg.content for msg in messages if msg.role == "user"), "")
        return SessionSummary(
            session_id=session_id,
            title=first_user.strip().splitlines()[0][:48] if first_user.strip() else "New Chat",
            updated_at=messages[-1].timestamp if messages else time.time(),
            message_count=len(messages),
        )

    def _trim_history(self, messages: List[ConversationMessage]) -> None:
        # Seed messages always stay at the head of the list.
        if not self._max_messages:
            return
        seed_size = len(self._seed)
        overflow = len(messages) - seed_size - self._max_messages
        if overflow > 0:
            del messages[seed_size : seed_size + overflow]

    def _prune_sessions(self, keep: Optional[str] = None) -> bool:
        """Purpose: Enforce max_sessions by dropping least-recently updated sessions.
        Inputs/Outputs: Optional session id to always keep; returns True if any removed.
        Side Effects / State: Mutates _sessions, _summaries, _locks.
        Dependencies: Uses _max_sessions, _active, and updated_at ordering.
        Failure Modes: None; no-op when max_sessions is unset or not exceeded.
            Sessions inside lock() are never evicted, so the cap can be exceeded
            until their turns finish.
        If Removed: Session count grows without limit when a cap is configured.
        Testing Notes: Set max_sessions=2, touch three sessions, oldest disappears.
        """
        # Protected sessions fill the cap first; the most recent others fill the rest.
        if not self._max_sessions or len(self._summaries) <= self._max_sessions:
            return False
        protected = {session_id for session_id in self._active if session_id in self._summaries}
        if keep:
            protected.add(keep)
        ordered = sorted(self._summaries.values(), key=lambda s: s.updated_at, reverse=True)
        others = [summary.session_id for summary in ordered if summary.session_id not in protected]
        room = max(self._max_sessions - len(protected), 0)
        keep_ids = protected | set(others[:room])
        removed = [session_id for session_id in list(self._summaries) if session_id not in keep_ids]
        for session_id in removed:
            self._summaries.pop(session_id, None)
            self._sessions.pop(session_id, None)
            self._locks.pop(session_id, None)
        return bool(removed)
