"""Directory clients: the live view of Mezon clans, channels and messages.

The resolvers and the tool dispatcher only depend on the ``DirectoryClient``
protocol. ``MezonDirectoryClient`` is the implementation backed by the Mezon
REST API.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx

from .config import MezonSettings
from .errors import DirectoryError, EntityNotFound
from .models import CHANNEL_TYPE_TEXT, Channel, ChatMessage, Clan, SentMessage

logger = logging.getLogger(__name__)


class DirectoryClient(Protocol):
    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def list_clans(self) -> list[Clan]: ...

    async def fetch_clan(self, clan_id: str) -> Clan: ...

    async def list_channels(self, clan_id: str) -> list[Channel]: ...

    async def fetch_channel(self, channel_id: str) -> Channel: ...

    async def send_message(self, channel: Channel, text: str) -> SentMessage: ...

    async def fetch_messages(self, channel: Channel, limit: int) -> list[ChatMessage]: ...


def _parse_timestamp(value: Any) -> datetime:
    """Parse a Mezon ``create_time`` (epoch seconds or ISO-8601) as an aware UTC datetime."""
    if value is None or value == "":
        raise DirectoryError("Mezon API returned a message without create_time")
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    except (ValueError, OverflowError, OSError) as exc:
        raise DirectoryError(f"Mezon API returned an invalid create_time: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _message_text(content: Any) -> str:
    """Extract the plain text of a Mezon message content blob.

    Mezon stores content as a JSON object (``{"t": "..."}``), sometimes
    serialized as a string.
    """
    if isinstance(content, str):
        try:
            decoded = json.loads(content)
        except ValueError:
            return content
        content = decoded
    if isinstance(content, dict):
        return str(content.get("t", ""))
    return "" if content is None else str(content)


class MezonDirectoryClient:
    """Directory client speaking to the Mezon REST API over httpx."""

    def __init__(self, settings: MezonSettings, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            if not self._settings.token:
                raise DirectoryError("MEZON_TOKEN is not configured.")
            self._client = httpx.AsyncClient(
                base_url=self._settings.api_url,
                headers={
                    "Authorization": f"Bearer {self._settings.token}",
                    "X-Mezon-Bot-Id": self._settings.bot_id,
                    "Accept": "application/json",
                },
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        client = self._http()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("directory.transport_error", extra={"method": method, "path": path, "error": str(exc)})
            raise DirectoryError(f"Mezon API request failed: {exc}") from exc
        if response.status_code == 404:
            raise EntityNotFound(f"Not found: {path}", status_code=404)
        if response.status_code >= 400:
            raise DirectoryError(
                f"Mezon API returned HTTP {response.status_code} for {method} {path}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise DirectoryError(f"Mezon API returned invalid JSON for {method} {path}") from exc
        return payload if isinstance(payload, dict) else {"items": payload}

    async def connect(self) -> None:
        """Log in by listing the clans visible to the bot token."""
        clans = await self.list_clans()
        logger.info("directory.connected", extra={"clans": len(clans), "api_url": self._settings.api_url})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _clan(item: dict[str, Any]) -> Clan:
        return Clan(id=str(item.get("clan_id", "")), name=str(item.get("clan_name", "")))

    @staticmethod
    def _channel(item: dict[str, Any]) -> Channel:
        raw_type = item.get("type", CHANNEL_TYPE_TEXT)
        try:
            channel_type = int(raw_type)
        except (TypeError, ValueError):
            channel_type = -1
        return Channel(
            id=str(item.get("channel_id", "")),
            name=str(item.get("channel_label", "")),
            clan_id=str(item.get("clan_id", "")),
            channel_type=channel_type,
        )

    async def list_clans(self) -> list[Clan]:
        payload = await self._request("GET", "/v2/clandesc")
        return [self._clan(item) for item in payload.get("clandesc", [])]

    async def fetch_clan(self, clan_id: str) -> Clan:
        payload = await self._request("GET", f"/v2/clandesc/{quote(clan_id, safe='')}")
        clan = self._clan(payload)
        if not clan.id:
            raise EntityNotFound(f"Clan {clan_id!r} not found", status_code=404)
        return clan

    async def list_channels(self, clan_id: str) -> list[Channel]:
        payload = await self._request("GET", "/v2/channeldesc", params={"clan_id": clan_id})
        return [self._channel(item) for item in payload.get("channeldesc", [])]

    async def fetch_channel(self, channel_id: str) -> Channel:
        payload = await self._request("GET", f"/v2/channeldesc/{quote(channel_id, safe='')}")
        channel = self._channel(payload)
        if not channel.id:
            raise EntityNotFound(f"Channel {channel_id!r} not found", status_code=404)
        return channel

    async def send_message(self, channel: Channel, text: str) -> SentMessage:
        payload = await self._request(
            "POST",
            f"/v2/channels/{quote(channel.id, safe='')}/messages",
            json={"clan_id": channel.clan_id, "is_public": True, "content": {"t": text}},
        )
        message_id = payload.get("message_id") or payload.get("id")
        if not message_id:
            raise DirectoryError("Mezon API did not return a message id")
        return SentMessage(id=str(message_id), channel_id=channel.id)

    async def fetch_messages(self, channel: Channel, limit: int) -> list[ChatMessage]:
        payload = await self._request(
            "GET",
            f"/v2/channels/{quote(channel.id, safe='')}/messages",
            params={"clan_id": channel.clan_id, "limit": limit},
        )
        messages: list[ChatMessage] = []
        for item in payload.get("messages", [])[:limit]:
            messages.append(
                ChatMessage(
                    id=str(item.get("message_id", "")),
                    channel_id=str(item.get("channel_id", channel.id)),
                    author=str(item.get("username") or item.get("display_name") or item.get("sender_id", "")),
                    content=_message_text(item.get("content")),
                    created_at=_parse_timestamp(item.get("create_time")),
                )
            )
        return messages
