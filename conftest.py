"""Shared pytest fixtures for Zabbix Assistant tests."""

from typing import List, Tuple, Optional

import pytest

from zabbix_assistant.config import AssistantConfig
from zabbix_assistant.services.chat import UpstreamError
from zabbix_assistant.services.storage import MemoryStore


class FakeCompletionClient:
    """Stands in for CompletionClient; records calls and replays a script."""

    def __init__(self, reply: str = "All systems nominal.", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[Tuple[str, str]] = []
        self.closed = False

    async def complete(self, user_text: str, context: str) -> str:
        self.calls.append((user_text, context))
        if self.error is not None:
            raise self.error
        return self.reply

    async def close(self):
        self.closed = True


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def completion_client():
    return FakeCompletionClient()


@pytest.fixture
def failing_client():
    return FakeCompletionClient(error=UpstreamError("OpenAI API error: 500", status=500))


@pytest.fixture
def assistant_config():
    config = AssistantConfig()
    config.storage.backend = "memory"
    config.chat.poll_interval = 0.05
    config.openai.api_key = "test-key"
    return config


@pytest.fixture
def make_client():
    """Factory for FakeCompletionClient with a custom reply or error."""
    return FakeCompletionClient
