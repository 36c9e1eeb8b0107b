"""
Configuration management for Talkback MCP Server.

Lookup order: $TALKBACK_CONFIG → ~/.local/share/talkback-mcp/config.json → defaults
Environment variables override individual config values.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from shared import (
    DEFAULT_MAX_MESSAGE_LENGTH,
    DEFAULT_SPEECH_COMMAND,
    NAME_POOL,
    TRUNCATION_MARKER,
    VOICE_POOL,
    get_logger,
)

logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path.home() / ".local" / "share" / "talkback-mcp" / "config.json"
RESPONSE_STYLES = ("json", "emoji")


@dataclass
class SpeechConfig:
    command: str = DEFAULT_SPEECH_COMMAND
    default_voice: Optional[str] = None
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH


@dataclass
class SessionConfig:
    storage_dir: Optional[str] = None
    voices: list[str] = field(default_factory=lambda: list(VOICE_POOL))
    names: list[str] = field(default_factory=lambda: list(NAME_POOL))


@dataclass
class AppConfig:
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    log_level: str = "info"
    response_style: str = "json"


def get_config_path() -> Path:
    """Return the config file path, respecting $TALKBACK_CONFIG."""
    env_path = os.environ.get("TALKBACK_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load configuration from JSON file with env var overrides.

    Lookup order:
    1. Explicit config_path argument
    2. $TALKBACK_CONFIG environment variable
    3. ~/.local/share/talkback-mcp/config.json
    4. Built-in defaults
    """
    path = config_path or get_config_path()
    config = AppConfig()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)

            if "speech" in data:
                speech = data["speech"]
                if "command" in speech:
                    config.speech.command = speech["command"]
                if "default_voice" in speech:
                    config.speech.default_voice = speech["default_voice"] or None
                if "max_message_length" in speech:
                    config.speech.max_message_length = int(speech["max_message_length"])

            if "sessions" in data:
                sessions = data["sessions"]
                if "storage_dir" in sessions:
                    config.sessions.storage_dir = sessions["storage_dir"]
                if sessions.get("voices"):
                    config.sessions.voices = list(sessions["voices"])
                if sessions.get("names"):
                    config.sessions.names = list(sessions["names"])

            if "log_level" in data:
                config.log_level = data["log_level"]
            if "response_style" in data:
                config.response_style = data["response_style"]

            logger.debug(f"Loaded config from {path}")
        except (OSError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Error reading config from {path}: {e}. Using defaults.")

    # Environment variable overrides
    if env_command := os.environ.get("TALKBACK_SPEECH_COMMAND"):
        config.speech.command = env_command
    if env_voice := os.environ.get("TALKBACK_DEFAULT_VOICE"):
        config.speech.default_voice = env_voice
    if env_length := os.environ.get("TALKBACK_MAX_MESSAGE_LENGTH"):
        try:
            config.speech.max_message_length = int(env_length)
        except ValueError:
            logger.warning(f"Ignoring invalid TALKBACK_MAX_MESSAGE_LENGTH '{env_length}'")
    if env_dir := os.environ.get("TALKBACK_SESSION_DIR"):
        config.sessions.storage_dir = str(Path(env_dir).expanduser())
    if env_level := os.environ.get("TALKBACK_LOG_LEVEL"):
        config.log_level = env_level
    if env_style := os.environ.get("TALKBACK_RESPONSE_STYLE"):
        config.response_style = env_style

    # Truncation needs room for the marker plus at least one character
    if config.speech.max_message_length <= len(TRUNCATION_MARKER):
        logger.warning(
            f"max_message_length must be greater than {len(TRUNCATION_MARKER)}, "
            f"got {config.speech.max_message_length}. Using {DEFAULT_MAX_MESSAGE_LENGTH}."
        )
        config.speech.max_message_length = DEFAULT_MAX_MESSAGE_LENGTH

    if config.response_style not in RESPONSE_STYLES:
        logger.warning(f"Unknown response style '{config.response_style}', using json")
        config.response_style = "json"

    return config


def save_config(config: AppConfig, config_path: Optional[Path] = None) -> None:
    """Save configuration to JSON file."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "speech": {
            "command": config.speech.command,
            "default_voice": config.speech.default_voice,
            "max_message_length": config.speech.max_message_length,
        },
        "sessions": {
            "storage_dir": config.sessions.storage_dir,
            "voices": config.sessions.voices,
            "names": config.sessions.names,
        },
        "log_level": config.log_level,
        "response_style": config.response_style,
    }

    with open(path, "w") as f:
        json.dump(data, f, indent=2)

    logger.debug(f"Saved config to {path}")
