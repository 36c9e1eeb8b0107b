"""
Session registry for per-session voice assignment.

Maps caller-supplied session ids to a display name, a voice and an enabled
flag. Voices are handed out round-robin so concurrent sessions sound
different. The map is persisted to a JSON file scoped to this process id
so assignments survive a registry rebuild within the same process.
"""

import json
import os
import random
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from shared import (
    NAME_POOL,
    SESSIONS_DIR_NAME,
    VOICE_POOL,
    Session,
    SessionValidationError,
    get_logger,
)

logger = get_logger("session-registry")


def sessions_path(storage_dir: Optional[Path] = None) -> Path:
    """Return the sessions file for the current process."""
    base = storage_dir or Path(tempfile.gettempdir()) / SESSIONS_DIR_NAME
    return Path(base) / f"sessions-{os.getpid()}.json"


def _read_sessions(path: Path) -> dict[str, Session]:
    """Read sessions from file. Missing or unreadable files yield an empty map."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            records = json.load(f)
        sessions = {}
        for record in records:
            for key in ("id", "name", "voice"):
                if not isinstance(record[key], str):
                    raise TypeError(f"session field '{key}' must be a string")
            if not isinstance(record["enabled"], bool):
                raise TypeError("session field 'enabled' must be a boolean")
            session = Session(
                id=record["id"],
                name=record["name"],
                voice=record["voice"],
                enabled=record["enabled"],
            )
            sessions[session.id] = session
        return sessions
    # ValueError covers both JSONDecodeError and UnicodeDecodeError
    except (ValueError, OSError, KeyError, TypeError) as e:
        logger.warning(f"Error loading sessions from {path}: {e}. Starting empty.")
        return {}


def _write_sessions(path: Path, sessions: dict[str, Session]) -> None:
    """Rewrite the whole sessions file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump([s.to_dict() for s in sessions.values()], f, indent=2)


class SessionRegistry:
    """Assigns and remembers a (name, voice, enabled) triple per session id."""

    def __init__(
        self,
        storage_path: Optional[Path] = None,
        voices: Sequence[str] = VOICE_POOL,
        names: Sequence[str] = NAME_POOL,
        rng: Optional[random.Random] = None,
    ):
        if not voices:
            raise ValueError("Voice pool must not be empty")
        if not names:
            raise ValueError("Name pool must not be empty")

        self._path = storage_path or sessions_path()
        self._voices = list(voices)
        self._names = list(names)
        self._rng = rng or random.Random()
        self._sessions: dict[str, Session] = {}
        self._voice_cursor = 0
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    def get_or_create(self, session_id: str) -> Session:
        """Return the session for `session_id`, creating it on first sight.

        New sessions get a random name, the next voice in rotation, and
        start disabled.

        Raises:
            SessionValidationError: If session_id is empty or not a string.
        """
        self._validate(session_id)

        session = self._sessions.get(session_id)
        if session is None:
            session = Session(
                id=session_id,
                name=self._rng.choice(self._names),
                voice=self._next_voice(),
                enabled=False,
            )
            self._sessions[session_id] = session
            logger.info(f"New session '{session_id}': {session.name} ({session.voice})")
            self.save()
        return replace(session)

    def set_enabled(self, session_id: str, enabled: bool) -> Session:
        """Enable or disable speech for a session, creating it if needed."""
        self.get_or_create(session_id)
        session = self._sessions[session_id]
        session.enabled = bool(enabled)
        logger.info(f"Session '{session_id}' {'enabled' if session.enabled else 'disabled'}")
        self.save()
        return replace(session)

    def get(self, session_id: str) -> Optional[Session]:
        """Return a known session without creating it."""
        session = self._sessions.get(session_id)
        return replace(session) if session is not None else None

    def get_all(self) -> dict[str, Session]:
        """Return a copy of all known sessions."""
        return {sid: replace(s) for sid, s in self._sessions.items()}

    @property
    def size(self) -> int:
        """Return number of known sessions."""
        return len(self._sessions)

    def load(self) -> None:
        """Load sessions from the backing file, replacing in-memory state."""
        self._sessions = _read_sessions(self._path)
        # Continue the rotation after the voices already handed out
        self._voice_cursor = len(self._sessions)
        if self._sessions:
            logger.debug(f"Loaded {self.size} session(s) from {self._path}")

    def save(self) -> None:
        """Persist every session. Write failures are logged, not raised."""
        try:
            _write_sessions(self._path, self._sessions)
            logger.debug(f"Saved {self.size} session(s) to {self._path}")
        except OSError as e:
            logger.error(f"Error saving sessions to {self._path}: {e}")

    def _next_voice(self) -> str:
        voice = self._voices[self._voice_cursor % len(self._voices)]
        self._voice_cursor += 1
        return voice

    @staticmethod
    def _validate(session_id: str) -> None:
        if not isinstance(session_id, str) or not session_id:
            raise SessionValidationError("Session ID must be a non-empty string")
