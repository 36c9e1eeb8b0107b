"""Speech output via an external speech command (macOS `say` by default)."""

import asyncio
import shutil
import time
from typing import Optional

from shared import (
    DEFAULT_SPEECH_COMMAND,
    SpeechExecutorError,
    SpeechOutcome,
    get_logger,
)

logger = get_logger("tts.executor")


class SpeechHandle:
    """A single run of the speech command."""

    def __init__(
        self,
        process: Optional[asyncio.subprocess.Process] = None,
        outcome: Optional[SpeechOutcome] = None,
    ) -> None:
        self._process = process
        self._outcome = outcome
        self._started = time.perf_counter()

    @property
    def process(self) -> Optional[asyncio.subprocess.Process]:
        return self._process

    @property
    def is_running(self) -> bool:
        """Return True while the process has not exited."""
        return self._process is not None and self._process.returncode is None

    async def wait(self) -> SpeechOutcome:
        """Wait for the process to exit and describe how it ended.

        Never raises for a non-zero exit; the queue treats every outcome
        as completion of the entry.
        """
        if self._outcome is not None:
            return self._outcome

        returncode = await self._process.wait()
        elapsed_ms = (time.perf_counter() - self._started) * 1000

        if returncode == 0:
            self._outcome = SpeechOutcome(success=True, returncode=0)
        elif returncode < 0:
            self._outcome = SpeechOutcome(
                success=False,
                returncode=returncode,
                terminated=True,
                error=f"Speech process terminated by signal {-returncode}",
            )
        else:
            self._outcome = SpeechOutcome(
                success=False,
                returncode=returncode,
                error=f"Speech command exited with code {returncode}",
            )
        logger.debug(f"Speech process finished in {elapsed_ms:.0f}ms ({returncode})")
        return self._outcome


class SpeechExecutor:
    """Runs the external speech command, one invocation at a time."""

    def __init__(self, command: str = DEFAULT_SPEECH_COMMAND) -> None:
        self._command = command
        self._current: Optional[SpeechHandle] = None

    @property
    def command(self) -> str:
        return self._command

    def is_available(self) -> bool:
        """Check if the speech command is available on the system."""
        return shutil.which(self._command) is not None

    def build_command(self, text: str, voice: Optional[str] = None) -> list[str]:
        """Build the argument list for speaking `text`."""
        if voice:
            return [self._command, "-v", voice, text]
        return [self._command, text]

    async def start(self, text: str, voice: Optional[str] = None) -> SpeechHandle:
        """Spawn the speech command for `text`.

        A launch failure (missing binary, permissions) is reported through
        the returned handle's outcome rather than raised.

        Raises:
            SpeechExecutorError: If a previous run is still in progress.
        """
        if self._current is not None and self._current.is_running:
            raise SpeechExecutorError("A speech process is already running")

        cmd = self.build_command(text, voice)
        logger.debug(f"Speaking with {self._command} (voice={voice or 'default'}, {len(text)} chars)")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Failed to launch '{self._command}': {e}")
            handle = SpeechHandle(
                outcome=SpeechOutcome(success=False, error=f"Failed to launch {self._command}: {e}")
            )
            self._current = None
            return handle

        handle = SpeechHandle(process=process)
        self._current = handle
        return handle

    def cancel(self, handle: Optional[SpeechHandle]) -> bool:
        """Terminate the handle's process if it is still running.

        Returns:
            True if a process was signalled, False if nothing was running.
        """
        if handle is None or not handle.is_running:
            return False
        try:
            handle.process.terminate()
            logger.info("Stopped speech playback")
            return True
        except ProcessLookupError:
            return False

    @property
    def is_speaking(self) -> bool:
        """Return True if a speech process is currently running."""
        return self._current is not None and self._current.is_running
