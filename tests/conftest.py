"""
Pytest configuration and fixtures for SynapseBot tests.
"""

import sys
from pathlib import Path
from typing import List, Tuple

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from synapsebot.moderation.gateway import ModerationGateway  # noqa: E402
from synapsebot.notifications.sink import Notification, NotificationSink, NotificationTarget  # noqa: E402
from synapsebot.storage.file_store import FileStore  # noqa: E402


class FakeSink(NotificationSink):
    """Records every delivery; ``result`` decides what ``deliver`` returns."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.delivered: List[Tuple[NotificationTarget, Notification]] = []

    async def deliver(self, target: NotificationTarget, notification: Notification) -> bool:
        self.delivered.append((target, notification))
        return self.result


class FakeGateway(ModerationGateway):
    """Records unban and clear_timeout calls; set ``error`` to make them raise."""

    def __init__(self) -> None:
        self.unbans: List[Tuple[object, object, str]] = []
        self.cleared: List[Tuple[object, object, str]] = []
        self.error: Exception | None = None

    async def unban(self, user_id, guild_id=None, *, reason: str) -> bool:
        if self.error is not None:
            raise self.error
        self.unbans.append((user_id, guild_id, reason))
        return True

    async def clear_timeout(self, user_id, guild_id=None, *, reason: str) -> bool:
        if self.error is not None:
            raise self.error
        self.cleared.append((user_id, guild_id, reason))
        return True


@pytest.fixture()
def store(tmp_path: Path) -> FileStore:
    return FileStore(tmp_path / "data", tmp_path / "backups", backup_retention=5, snapshot_retention=3)


@pytest.fixture()
def fake_sink() -> FakeSink:
    return FakeSink()


@pytest.fixture()
def fake_gateway() -> FakeGateway:
    return FakeGateway()
