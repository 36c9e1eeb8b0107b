"""Message queue for serialized speech playback."""

import asyncio
import secrets
import time
from typing import Optional

from shared import (
    DEFAULT_MAX_MESSAGE_LENGTH,
    MESSAGE_ID_PREFIX,
    TRUNCATION_MARKER,
    MessageValidationError,
    QueuedMessage,
    QueueStatus,
    get_logger,
)
from tts.speech_executor import SpeechExecutor, SpeechHandle

logger = get_logger("tts.message_queue")


class MessageQueue:
    """Buffers messages and speaks them one at a time, in order."""

    def __init__(
        self,
        executor: SpeechExecutor,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
    ) -> None:
        if max_message_length <= len(TRUNCATION_MARKER):
            raise ValueError(f"max_message_length must be greater than {len(TRUNCATION_MARKER)}")
        self._executor = executor
        self._max_length = max_message_length
        self._queue: list[QueuedMessage] = []
        self._processing = False
        self._task: Optional[asyncio.Task] = None
        self._in_flight: Optional[QueuedMessage] = None
        self._handle: Optional[SpeechHandle] = None
        # Bumped on every reset so a process spawned during a reset can be caught.
        self._generation = 0

    @property
    def max_message_length(self) -> int:
        return self._max_length

    def enqueue(self, text: str, voice: Optional[str] = None) -> QueuedMessage:
        """Queue text to be spoken and return the stored entry.

        Starts the drain loop if it is idle. Never waits for speech.

        Raises:
            MessageValidationError: If text is empty or not a string.
        """
        if not isinstance(text, str) or not text:
            raise MessageValidationError("Message must be a non-empty string")

        message = QueuedMessage(
            id=self._generate_id(),
            text=self.truncate(text),
            voice=voice or None,
            enqueued_at=time.time(),
        )
        self._queue.append(message)
        logger.debug(f"Queued {message.id} ({len(message.text)} chars, depth {len(self._queue)})")

        if not self._processing:
            self._processing = True
            self._task = asyncio.get_running_loop().create_task(self._drain())

        return message

    def cancel(self, message_id: str) -> bool:
        """Remove a message that has not started playing yet.

        Returns:
            True if the message was removed, False if it is playing or unknown.
        """
        if self._in_flight is not None and self._in_flight.id == message_id:
            return False

        for index, message in enumerate(self._queue):
            if message.id == message_id:
                del self._queue[index]
                logger.info(f"Cancelled {message_id}")
                return True
        return False

    def reset(self) -> None:
        """Drop every waiting message and stop the one currently playing."""
        dropped = len(self._queue)
        self._queue = []
        self._generation += 1
        self._executor.cancel(self._handle)
        logger.info(f"Queue reset ({dropped} message(s) dropped)")

    def status(self) -> QueueStatus:
        """Return the queue length, processing flag and a snapshot of entries."""
        return QueueStatus(
            length=len(self._queue),
            is_processing=self._processing,
            queue=tuple(self._queue),
        )

    @property
    def depth(self) -> int:
        """Return the number of messages in the queue."""
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._processing

    async def wait_idle(self) -> None:
        """Wait until the drain loop has emptied the queue."""
        if self._task is not None:
            await asyncio.shield(self._task)

    def truncate(self, text: str) -> str:
        """Cut text to the configured maximum, ending in '...' when shortened."""
        if len(text) <= self._max_length:
            return text
        return text[: self._max_length - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER

    @staticmethod
    def _generate_id() -> str:
        return f"{MESSAGE_ID_PREFIX}{int(time.time() * 1000)}_{secrets.token_hex(6)}"

    async def _drain(self) -> None:
        """Speak queued messages sequentially until the queue is empty."""
        try:
            while self._queue:
                message = self._queue[0]
                generation = self._generation
                self._in_flight = message

                try:
                    handle = await self._executor.start(message.text, message.voice)
                    self._handle = handle
                    if generation != self._generation:
                        # Reset arrived while the process was being spawned
                        self._executor.cancel(handle)

                    outcome = await handle.wait()

                    if outcome.terminated:
                        logger.info(f"Playback of {message.id} was stopped")
                    elif not outcome.success:
                        logger.warning(f"Speaking {message.id} failed: {outcome.error}")
                except Exception as e:
                    logger.error(f"Speaking {message.id} failed: {e}")

                self._handle = None
                self._in_flight = None
                if self._queue and self._queue[0] is message:
                    self._queue.pop(0)
        finally:
            self._handle = None
            self._in_flight = None
            self._processing = False
