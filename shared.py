"""
Shared constants, types, and utilities for Talkback MCP Server.

This module is the single source of truth for:
- Speech and session defaults
- Voice and name pools used for session assignment
- Result dataclasses used across subsystems
- Custom exceptions
- Logging configuration
"""

import logging
import sys
from dataclasses import dataclass, asdict
from typing import Optional


# ─── Constants ────────────────────────────────────────────────────────────────

DEFAULT_MAX_MESSAGE_LENGTH = 500   # Messages longer than this are truncated (characters)
TRUNCATION_MARKER = "..."
DEFAULT_SPEECH_COMMAND = "say"     # macOS speech synthesizer
SESSIONS_DIR_NAME = ".talkback-sessions"
MESSAGE_ID_PREFIX = "msg_"


# ─── Voice & Name Pools ──────────────────────────────────────────────────────

# Voices handed out round-robin to new sessions, in order.
VOICE_POOL: list[str] = [
    "Alex", "Daniel", "Fred", "Karen",
    "Moira", "Samantha", "Victoria", "Fiona",
]

# Display names an LLM session introduces itself with.
NAME_POOL: list[str] = [
    "Alex", "Morgan", "Jordan", "Taylor", "Casey",
    "Riley", "Quinn", "Avery", "Parker", "Charlie",
    "Sam", "Jamie", "Sage", "Robin", "Dakota",
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class QueuedMessage:
    """A pending or in-flight speech request."""
    id: str
    text: str
    voice: Optional[str] = None
    enqueued_at: float = 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "message": self.text,
            "voice": self.voice,
            "timestamp": self.enqueued_at,
        }


@dataclass
class Session:
    """A logical caller identity with its assigned voice."""
    id: str
    name: str
    voice: str
    enabled: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SpeechOutcome:
    """Result of one external speech process run."""
    success: bool
    returncode: Optional[int] = None
    terminated: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class QueueStatus:
    """Snapshot of the message queue."""
    length: int
    is_processing: bool
    queue: tuple[QueuedMessage, ...] = ()


# ─── Exceptions ───────────────────────────────────────────────────────────────

class MessageValidationError(Exception):
    """Raised when a message cannot be queued."""
    pass


class SessionValidationError(Exception):
    """Raised when a session identifier is missing or invalid."""
    pass


class SpeechExecutorError(Exception):
    """Raised when the speech executor is misused."""
    pass


# ─── Logging ──────────────────────────────────────────────────────────────────

_LOGGER_NAMES: set[str] = set()


def get_logger(name: str = "talkback-mcp") -> logging.Logger:
    """Get a logger that outputs to stderr (MCP convention: stdout is reserved for protocol)."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s")
        )
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    _LOGGER_NAMES.add(name)
    return logger


def set_log_level(level: str) -> None:
    """Apply a level name (e.g. "debug") to every logger created by get_logger."""
    value = getattr(logging, level.upper(), None)
    if not isinstance(value, int):
        return
    for name in _LOGGER_NAMES:
        logging.getLogger(name).setLevel(value)
