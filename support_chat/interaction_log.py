from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger("support_chat.interactions")


class InteractionLog:
    """Append-only JSONL record of exchanges plus a plain-text error log."""

    def __init__(self, interactions_path: Path, errors_path: Path) -> None:
        """Purpose: Keep the two log file paths and make sure their folder exists.
        Inputs/Outputs: Inputs are the JSONL path and the error log path; no return value.
        Side Effects / State: Creates parent directories.
        Dependencies: pathlib; writes are serialized by a lock.
        Failure Modes: Directory creation errors raise at startup.
        If Removed: Exchanges leave no audit trail outside the process log.
        Testing Notes: Point both paths at tmp_path and read the files back.
        """
        # Remember paths and prepare the folders once.
        self._interactions_path = interactions_path
        self._errors_path = errors_path
        self._lock = threading.Lock()
        for path in (interactions_path, errors_path):
            path.parent.mkdir(parents=True, exist_ok=True)

    def record_exchange(self, session_id: str, route: str, user_message: str, response: str) -> None:
        """Purpose: Append one JSON line describing a completed exchange.
        Inputs/Outputs: Inputs are session, route, user text, reply text; no return value.
        Side Effects / State: Appends to interactions.jsonl.
        Dependencies: json.dumps.
        Failure Modes: IO errors are logged and not raised; the reply was already produced.
        If Removed: Support staff cannot review what the assistant said.
        Testing Notes: Each call adds exactly one parseable line.
        """
        # One object per line, newest at the end.
        entry = {
            "timestamp": _now_iso(),
            "session_id": session_id,
            "route": route,
            "user_message": user_message,
            "response": response,
        }
        self._append(self._interactions_path, json.dumps(entry, ensure_ascii=False))

    def record_error(self, session_id: str, error: BaseException) -> None:
        line = f"{_now_iso()} session={session_id} error={type(error).__name__}: {error}"
        self._append(self._errors_path, line.replace("\n", " "))

    def _append(self, path: Path, line: str) -> None:
        try:
            with self._lock, path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            logger.error("interaction log write failed path=%s error=%s", path, exc)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")
