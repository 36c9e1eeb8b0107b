"""
Talkback MCP Server

A Model Context Protocol server that lets LLM sessions queue short messages
to be spoken aloud by the system speech command, one at a time, with a
distinct voice per session. Runs over stdio transport.

Usage:
    python server.py          # Normal MCP server mode
    python server.py --emoji  # Human-readable emoji responses instead of JSON
    python server.py --test   # Quick smoke test
"""

import asyncio
import random
import signal
import sys
import tempfile
import time
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from shared import (
    NAME_POOL,
    MessageValidationError,
    SessionValidationError,
    get_logger,
    set_log_level,
)
from config import load_config, AppConfig
from session_registry import SessionRegistry, sessions_path

logger = get_logger("server")

# ─── Global State ─────────────────────────────────────────────────────────────

mcp = FastMCP("talkback")

# Components (initialized at startup)
_speech_executor = None
_message_queue = None
_session_registry: Optional[SessionRegistry] = None
_config: AppConfig = None

_startup_time = time.time()


# ─── Startup / Shutdown ──────────────────────────────────────────────────────

def _init_speech(config: AppConfig):
    """Initialize speech executor and message queue."""
    global _speech_executor, _message_queue

    from tts.speech_executor import SpeechExecutor
    from tts.message_queue import MessageQueue

    _speech_executor = SpeechExecutor(config.speech.command)
    _message_queue = MessageQueue(_speech_executor, config.speech.max_message_length)

    if not _speech_executor.is_available():
        logger.warning(f"Speech command '{config.speech.command}' not found; messages will fail to play")
    logger.info(f"Speech subsystem initialized ({config.speech.command}, max {config.speech.max_message_length} chars)")


def _init_registry(config: AppConfig):
    """Initialize session registry."""
    global _session_registry

    storage_dir = Path(config.sessions.storage_dir).expanduser() if config.sessions.storage_dir else None
    _session_registry = SessionRegistry(
        storage_path=sessions_path(storage_dir),
        voices=config.sessions.voices,
        names=config.sessions.names,
    )
    logger.info(f"Session registry initialized ({_session_registry.size} entries)")


def _shutdown():
    """Graceful shutdown: stop playback, save sessions."""
    logger.info("Shutting down...")

    if _message_queue is not None:
        _message_queue.reset()

    if _session_registry is not None:
        _session_registry.save()


# ─── Response Formatting ─────────────────────────────────────────────────────

def _respond(payload: dict, emoji: str, summary: str):
    """Return the payload, or a one-line summary when emoji responses are enabled."""
    if _config is not None and _config.response_style == "emoji":
        return f"{emoji} {summary}"
    return payload


def _failure(error: str, message: str):
    return _respond(
        {"success": False, "error": error, "message": message},
        "❌",
        message,
    )


def _instructions(name: str) -> str:
    return f"""Hello! I'm {name}, your voice assistant through the Talkback MCP server.

Here are my behavioral guidelines:

1. **Speak about everything**: I will use the 'speak' tool to verbally communicate all actions I'm taking, so you can stay informed without reading the screen.

2. **Always speak when prompting**: Whenever I ask you a question or wait for your response, I will always speak it aloud. I understand you might be busy with other tasks and need to hear the prompts rather than read them.

3. **Stay concise**: My spoken messages will be brief and to the point. I'll leave detailed information and technical output in the terminal for you to review later if needed.

4. **Regular updates**: I'll keep you informed of progress and next steps through speech, making it easier for you to multitask.

Ready to assist you!"""


# ─── MCP Tools ────────────────────────────────────────────────────────────────

@mcp.tool()
async def init(session_id: str = "") -> dict | str:
    """Initialize the session and get behavioral instructions for speaking to the user.

    Call this at the start of a session. Voice output for a session stays
    off until enable_voice is called.

    Args:
        session_id: Optional identifier of the calling session. Each session keeps its own name and voice.
    """
    if not session_id:
        names = _config.sessions.names if _config is not None else NAME_POOL
        name = random.choice(names)
        return _respond(
            {"success": True, "instructions": _instructions(name)},
            "👋",
            f"I'm {name}.",
        )

    if _session_registry is None:
        return _failure("registry_unavailable", "Session registry not initialized")

    try:
        session = _session_registry.get_or_create(session_id)
    except SessionValidationError as e:
        return _failure("invalid_session", str(e))

    return _respond(
        {
            "success": True,
            "instructions": _instructions(session.name),
            "session": session.to_dict(),
        },
        "👋",
        f"I'm {session.name} (voice {session.voice}, {'enabled' if session.enabled else 'disabled'}).",
    )


@mcp.tool()
async def speak(message: str, session_id: str = "") -> dict | str:
    """Add a message to the speech queue to be spoken aloud.

    Messages are spoken sequentially. Messages longer than the configured
    limit (500 characters by default) are truncated.

    Args:
        message: The message to speak aloud.
        session_id: Optional session identifier. Selects the session's voice; nothing is spoken while the session is disabled.
    """
    if _message_queue is None:
        return _failure("tts_unavailable", "Speech queue not initialized")

    voice = _config.speech.default_voice if _config is not None else None

    if session_id:
        if _session_registry is None:
            return _failure("registry_unavailable", "Session registry not initialized")
        try:
            session = _session_registry.get_or_create(session_id)
        except SessionValidationError as e:
            return _failure("invalid_session", str(e))
        if not session.enabled:
            return _respond(
                {
                    "success": False,
                    "error": "session_disabled",
                    "message": "Voice output is disabled for this session",
                    "session_id": session_id,
                },
                "🔇",
                f"Voice disabled for {session.name}; message not queued.",
            )
        voice = session.voice

    try:
        queued = _message_queue.enqueue(message, voice)
    except MessageValidationError as e:
        return _failure("invalid_message", str(e))

    position = _message_queue.depth
    return _respond(
        {
            "success": True,
            "message_id": queued.id,
            "message": queued.text,
            "voice": queued.voice,
            "queue_position": position,
        },
        "🔊",
        f"Queued {queued.id} at position {position}.",
    )


@mcp.tool()
async def cancel_message(message_id: str) -> dict | str:
    """Cancel a specific queued message by its ID before it is spoken.

    Args:
        message_id: The ID returned by speak.
    """
    if _message_queue is None:
        return _failure("tts_unavailable", "Speech queue not initialized")

    if not message_id:
        return _failure("invalid_message_id", "Message ID must be a non-empty string")

    cancelled = _message_queue.cancel(message_id)
    text = "Message cancelled successfully" if cancelled else "Message not found in queue"
    return _respond(
        {"success": cancelled, "message_id": message_id, "message": text},
        "🗑️" if cancelled else "🤷",
        f"{text} ({message_id}).",
    )


@mcp.tool()
async def reset_queue() -> dict | str:
    """Clear the speech queue and stop the message currently being spoken.

    Use this when the current action has been cancelled.
    """
    if _message_queue is not None:
        _message_queue.reset()
    return _respond(
        {"success": True, "message": "Queue reset successfully"},
        "🧹",
        "Queue reset successfully.",
    )


@mcp.tool()
async def get_queue_status() -> dict | str:
    """Report how many messages are queued and whether one is being spoken."""
    if _message_queue is None:
        return _failure("tts_unavailable", "Speech queue not initialized")

    status = _message_queue.status()
    return _respond(
        {
            "success": True,
            "queue_length": status.length,
            "is_processing": status.is_processing,
            "queue": [m.to_dict() for m in status.queue],
            "uptime_s": round(time.time() - _startup_time),
        },
        "📋",
        f"{status.length} queued, {'speaking' if status.is_processing else 'idle'}.",
    )


async def _set_session_enabled(session_id: str, enabled: bool) -> dict | str:
    if _session_registry is None:
        return _failure("registry_unavailable", "Session registry not initialized")
    try:
        session = _session_registry.set_enabled(session_id, enabled)
    except SessionValidationError as e:
        return _failure("invalid_session", str(e))
    return _respond(
        {"success": True, "session": session.to_dict()},
        "🔈" if enabled else "🔇",
        f"Voice {'enabled' if enabled else 'disabled'} for {session.name} ({session.voice}).",
    )


@mcp.tool()
async def enable_voice(session_id: str) -> dict | str:
    """Turn on spoken output for a session.

    Args:
        session_id: The session identifier passed to init.
    """
    return await _set_session_enabled(session_id, True)


@mcp.tool()
async def disable_voice(session_id: str) -> dict | str:
    """Turn off spoken output for a session. Its voice assignment is kept.

    Args:
        session_id: The session identifier passed to init.
    """
    return await _set_session_enabled(session_id, False)


@mcp.tool()
async def get_session(session_id: str) -> dict | str:
    """Get the name, voice and enabled state assigned to a session.

    Args:
        session_id: The session identifier passed to init.
    """
    if _session_registry is None:
        return _failure("registry_unavailable", "Session registry not initialized")
    try:
        session = _session_registry.get_or_create(session_id)
    except SessionValidationError as e:
        return _failure("invalid_session", str(e))
    return _respond(
        {"success": True, "session": session.to_dict()},
        "🪪",
        f"{session.name}: voice {session.voice}, {'enabled' if session.enabled else 'disabled'}.",
    )


# ─── Server Lifecycle ─────────────────────────────────────────────────────────

def _run_smoke_test():
    """Quick smoke test: check the speech command, exercise the registry, speak one line."""
    logger.info("Running smoke test...")
    config = load_config()
    results = []

    from tts.speech_executor import SpeechExecutor
    from tts.message_queue import MessageQueue

    executor = SpeechExecutor(config.speech.command)
    if executor.is_available():
        logger.info(f"Speech command: OK ({config.speech.command})")
        results.append("Speech command: OK")
    else:
        logger.error(f"Speech command: FAILED ('{config.speech.command}' not found)")
        results.append("Speech command: FAILED")

    with tempfile.TemporaryDirectory() as tmp:
        registry = SessionRegistry(
            storage_path=sessions_path(Path(tmp)),
            voices=config.sessions.voices,
            names=config.sessions.names,
        )
        session = registry.get_or_create("smoke-test")
        reloaded = SessionRegistry(storage_path=registry.path, voices=config.sessions.voices)
        if reloaded.get_or_create("smoke-test").voice == session.voice:
            logger.info(f"Registry: OK (smoke-test -> {session.name}, {session.voice})")
            results.append(f"Registry: OK ({session.voice})")
        else:
            logger.error("Registry: FAILED (voice not persisted)")
            results.append("Registry: FAILED")

    if executor.is_available():
        async def _speak_once():
            queue = MessageQueue(executor, config.speech.max_message_length)
            queue.enqueue("Hello, this is a Talkback smoke test.", config.speech.default_voice)
            await queue.wait_idle()

        try:
            asyncio.run(_speak_once())
            results.append("Speech: OK")
        except Exception as e:
            logger.error(f"Speech: FAILED ({e})")
            results.append("Speech: FAILED")

    print("\n".join(results), file=sys.stderr)


def main():
    """Entry point."""
    global _config

    if "--test" in sys.argv:
        _run_smoke_test()
        return

    _config = load_config()
    if "--emoji" in sys.argv:
        _config.response_style = "emoji"

    set_log_level(_config.log_level)

    logger.info("Starting Talkback MCP Server...")

    _init_speech(_config)
    _init_registry(_config)

    def handle_signal(signum, frame):
        _shutdown()
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    import atexit
    atexit.register(_shutdown)

    logger.info("Server ready")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
