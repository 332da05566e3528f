from typing import Dict, List, Optional, Tuple

import pytest

from cita_monitor.bot.base import BaseMessenger
from cita_monitor.config import AppConfig
from cita_monitor.models import Menu, StatusSnapshot
from cita_monitor.source.base import BaseSource
from cita_monitor.storage import MemoryBackend, SubscriberStore


class FakeMessenger(BaseMessenger):
    """Records sent messages; raises the configured error per chat id"""

    def __init__(self, failures: Optional[Dict[int, Exception]] = None):
        self.sent: List[Tuple[int, str, Optional[Menu]]] = []
        self.failures = failures or {}

    async def send_message(self, chat_id: int, text: str, menu: Optional[Menu] = None) -> None:
        if chat_id in self.failures:
            raise self.failures[chat_id]
        self.sent.append((chat_id, text, menu))

    def recipients(self) -> List[int]:
        return [chat_id for chat_id, _, _ in self.sent]

    def texts_for(self, chat_id: int) -> List[str]:
        return [text for cid, text, _ in self.sent if cid == chat_id]


class FakeSource(BaseSource):
    def __init__(self, snapshot: Optional[StatusSnapshot] = None, error: Optional[Exception] = None):
        self.snapshot = snapshot or StatusSnapshot()
        self.error = error
        self.calls: List[str] = []

    def fetch(self, url: str) -> StatusSnapshot:
        self.calls.append(url)
        if self.error:
            raise self.error
        return self.snapshot

    def get_source_name(self) -> str:
        return "fake"


@pytest.fixture
def store() -> SubscriberStore:
    return SubscriberStore(MemoryBackend())


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(bot_token="TEST_TOKEN", page_url="https://example.test/citas.html")
