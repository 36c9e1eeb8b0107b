"""Shared pytest fixtures for Talkback MCP Server tests."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import pytest

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shared import SpeechOutcome


# ─── Speech Fixtures ─────────────────────────────────────────────────────────

class FakeHandle:
    """Stands in for a running speech process; finished by the test."""

    def __init__(self, text: str, voice: Optional[str]) -> None:
        self.text = text
        self.voice = voice
        self.cancelled = False
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def is_running(self) -> bool:
        return not self._future.done()

    def finish(self, returncode: int = 0) -> None:
        if self._future.done():
            return
        if returncode == 0:
            outcome = SpeechOutcome(success=True, returncode=0)
        else:
            outcome = SpeechOutcome(
                success=False,
                returncode=returncode,
                terminated=returncode < 0,
                error=f"exited with code {returncode}",
            )
        self._future.set_result(outcome)

    async def wait(self) -> SpeechOutcome:
        return await self._future


class FakeExecutor:
    """Records every start() and lets tests complete runs one by one."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.outstanding = 0
        self.max_outstanding = 0

    async def start(self, text: str, voice: Optional[str] = None) -> FakeHandle:
        handle = FakeHandle(text, voice)
        self.handles.append(handle)
        self.outstanding += 1
        self.max_outstanding = max(self.max_outstanding, self.outstanding)
        handle._future.add_done_callback(lambda _: self._done())
        return handle

    def _done(self) -> None:
        self.outstanding -= 1

    def cancel(self, handle) -> bool:
        if handle is None or not handle.is_running:
            return False
        handle.cancelled = True
        handle.finish(-15)
        return True

    @property
    def spoken(self) -> list[str]:
        return [h.text for h in self.handles]

    @property
    def current(self) -> Optional[FakeHandle]:
        return self.handles[-1] if self.handles else None


async def settle(rounds: int = 10) -> None:
    """Let pending tasks on the event loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def message_queue(fake_executor):
    """A MessageQueue wired to the fake executor."""
    from tts.message_queue import MessageQueue
    return MessageQueue(fake_executor, max_message_length=500)


# ─── Registry Fixtures ───────────────────────────────────────────────────────

@pytest.fixture
def sessions_file(tmp_path):
    return tmp_path / "sessions-test.json"


@pytest.fixture
def session_registry(sessions_file):
    from session_registry import SessionRegistry
    return SessionRegistry(storage_path=sessions_file)


# ─── Config Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def mock_config():
    """A default AppConfig for testing."""
    from config import AppConfig
    return AppConfig()
