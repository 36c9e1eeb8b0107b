"""Speech subsystem for Talkback MCP Server."""

from tts.speech_executor import SpeechExecutor, SpeechHandle
from tts.message_queue import MessageQueue

__all__ = ["SpeechExecutor", "SpeechHandle", "MessageQueue"]
