from __future__ import annotations

import itertools
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from mezon_mcp.config import clear_settings_cache
from mezon_mcp.errors import DirectoryError, EntityNotFound
from mezon_mcp.models import CHANNEL_TYPE_TEXT, CHANNEL_TYPE_VOICE, Channel, ChatMessage, Clan, SentMessage


class InMemoryDirectory:
    """A fixed directory snapshot implementing ``DirectoryClient``.

    ``fetch_messages`` returns newest first, like the live API. ``calls``
    records every directory operation in order; IDs in ``failing_ids`` make
    their fetch raise a transport-style ``DirectoryError``.
    """

    def __init__(self) -> None:
        self._clans: dict[str, Clan] = {}
        self._channels: dict[str, Channel] = {}
        self._messages: dict[str, list[ChatMessage]] = {}
        self._ids = itertools.count(1000)
        self.failing_ids: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.connected = False

    def add_clan(self, clan_id: str, name: str) -> Clan:
        clan = Clan(id=clan_id, name=name)
        self._clans[clan_id] = clan
        return clan

    def add_channel(self, channel_id: str, name: str, clan_id: str, channel_type: int = CHANNEL_TYPE_TEXT) -> Channel:
        channel = Channel(id=channel_id, name=name, clan_id=clan_id, channel_type=channel_type)
        self._channels[channel_id] = channel
        return channel

    def add_message(self, channel_id: str, author: str, content: str, created_at: Optional[datetime] = None) -> ChatMessage:
        message = ChatMessage(
            id=str(next(self._ids)),
            channel_id=channel_id,
            author=author,
            content=content,
            created_at=created_at or datetime.now(timezone.utc),
        )
        self._messages.setdefault(channel_id, []).append(message)
        return message

    def messages_in(self, channel_id: str) -> Sequence[ChatMessage]:
        return tuple(self._messages.get(channel_id, ()))

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def list_clans(self) -> list[Clan]:
        self.calls.append(("list_clans", ""))
        return list(self._clans.values())

    async def fetch_clan(self, clan_id: str) -> Clan:
        self.calls.append(("fetch_clan", clan_id))
        if clan_id in self.failing_ids:
            raise DirectoryError(f"transient failure fetching clan {clan_id}")
        try:
            return self._clans[clan_id]
        except KeyError:
            raise EntityNotFound(f"Clan {clan_id!r} not found", status_code=404) from None

    async def list_channels(self, clan_id: str) -> list[Channel]:
        self.calls.append(("list_channels", clan_id))
        return [channel for channel in self._channels.values() if channel.clan_id == clan_id]

    async def fetch_channel(self, channel_id: str) -> Channel:
        self.calls.append(("fetch_channel", channel_id))
        if channel_id in self.failing_ids:
            raise DirectoryError(f"transient failure fetching channel {channel_id}")
        try:
            return self._channels[channel_id]
        except KeyError:
            raise EntityNotFound(f"Channel {channel_id!r} not found", status_code=404) from None

    async def send_message(self, channel: Channel, text: str) -> SentMessage:
        self.calls.append(("send_message", channel.id))
        message = self.add_message(channel.id, "mezon-bot", text)
        return SentMessage(id=message.id, channel_id=channel.id)

    async def fetch_messages(self, channel: Channel, limit: int) -> list[ChatMessage]:
        self.calls.append(("fetch_messages", channel.id))
        history = self._messages.get(channel.id, [])
        return list(reversed(history))[:limit]


@pytest.fixture
def directory_factory():
    """Return the ``InMemoryDirectory`` class for tests that build their own snapshot."""
    return InMemoryDirectory


@pytest.fixture
def isolated_env(monkeypatch):
    """Provide deterministic settings for tests and reset the settings cache."""
    monkeypatch.setenv("APP_ENVIRONMENT", "test")
    monkeypatch.setenv("MEZON_TOKEN", "test-token")
    monkeypatch.setenv("MEZON_API_URL", "https://mezon.test")
    monkeypatch.setenv("HTTP_HOST", "127.0.0.1")
    monkeypatch.setenv("HTTP_PORT", "8765")
    monkeypatch.setenv("HTTP_PATH", "/mcp/")
    monkeypatch.setenv("TOOLS_LOG_ENABLED", "false")
    monkeypatch.setenv("LOG_RICH_ENABLED", "false")
    clear_settings_cache()
    try:
        yield
    finally:
        clear_settings_cache()


@pytest.fixture
def acme_directory() -> InMemoryDirectory:
    """One clan "Acme" with #general (C1), #random (C2) and a voice channel."""
    directory = InMemoryDirectory()
    directory.add_clan("S-ACME", "Acme")
    directory.add_channel("C1", "general", "S-ACME")
    directory.add_channel("C2", "random", "S-ACME")
    directory.add_channel("V1", "lounge", "S-ACME", channel_type=CHANNEL_TYPE_VOICE)
    start = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    for i in range(8):
        directory.add_message("C2", f"user{i}", f"random message {i}", start + timedelta(minutes=i))
    return directory


@pytest.fixture
def twin_directory() -> InMemoryDirectory:
    """Two clans both named "Test" (S1, S2), each with a #general channel."""
    directory = InMemoryDirectory()
    directory.add_clan("S1", "Test")
    directory.add_clan("S2", "Test")
    directory.add_clan("S3", "Other")
    directory.add_channel("G1", "general", "S1")
    directory.add_channel("G2", "general", "S2")
    directory.add_channel("G3", "general", "S3")
    return directory


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    yield
    clear_settings_cache()
