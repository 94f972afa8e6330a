import asyncio
import os
import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# read once at import time by core.config
os.environ.setdefault("RESULTS_STORE_ENABLED", "false")
os.environ.setdefault("QA_MODE", "true")

from mockinterview.interview.questions import Question  # noqa: E402
from mockinterview.interview.media import MediaHandle, MediaTrack  # noqa: E402
from mockinterview.interview.models import TrackKind  # noqa: E402


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("QA_MODE", "true")
    monkeypatch.setenv("RESULTS_STORE_ENABLED", "false")


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += float(seconds)


class PendingCaptureDevice:
    """Capture request that stays open until the test resolves it."""

    def __init__(self):
        self.future: asyncio.Future | None = None
        self.requested = asyncio.Event()

    async def request(self, video: bool, audio: bool) -> MediaHandle:
        self.future = asyncio.get_running_loop().create_future()
        self.requested.set()
        return await self.future

    def grant(self) -> MediaHandle:
        handle = MediaHandle([MediaTrack(TrackKind.VIDEO), MediaTrack(TrackKind.AUDIO)])
        self.future.set_result(handle)
        return handle


class RecordingEvents:
    def __init__(self):
        self.items: list[dict] = []

    def __call__(self, payload: dict) -> None:
        self.items.append(payload)

    def of_type(self, event_type: str) -> list[dict]:
        return [item for item in self.items if item.get("type") == event_type]

    def notice_titles(self) -> list[str]:
        return [item["title"] for item in self.of_type("notice")]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> RecordingEvents:
    return RecordingEvents()


@pytest.fixture
def short_questions() -> tuple[Question, ...]:
    return (
        Question(id=1, text="First", time_limit_seconds=3),
        Question(id=2, text="Second", time_limit_seconds=2),
        Question(id=3, text="Third", time_limit_seconds=2),
    )
