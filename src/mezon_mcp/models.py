"""Data models for the Mezon directory view and the tool argument schemas."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

CHANNEL_TYPE_TEXT = 1
CHANNEL_TYPE_VOICE = 4
CHANNEL_TYPE_THREAD = 7

# Channel types that accept plain text messages.
TEXT_CHANNEL_TYPES: frozenset[int] = frozenset({CHANNEL_TYPE_TEXT, CHANNEL_TYPE_THREAD})

SERVER_FIELD_DESCRIPTION = "Clan name or ID (optional if bot is only in one server)"
CHANNEL_FIELD_DESCRIPTION = 'Channel name (e.g., "general") or ID'


@dataclass(slots=True, frozen=True)
class Clan:
    """A Mezon clan (server). Names are not unique, IDs are."""

    id: str
    name: str


@dataclass(slots=True, frozen=True)
class Channel:
    id: str
    name: str
    clan_id: str
    channel_type: int = CHANNEL_TYPE_TEXT

    @property
    def is_text(self) -> bool:
        return self.channel_type in TEXT_CHANNEL_TYPES

    @property
    def label(self) -> str:
        return f"#{self.name}"


@dataclass(slots=True, frozen=True)
class ChatMessage:
    id: str
    channel_id: str
    author: str
    content: str
    created_at: datetime


@dataclass(slots=True, frozen=True)
class SentMessage:
    id: str
    channel_id: str


def iso_timestamp(dt: datetime) -> str:
    """Return ISO-8601 in UTC with millisecond precision and a ``Z`` suffix.

    Naive datetimes are assumed to be UTC already.
    """
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _ToolArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SendMessageArgs(_ToolArguments):
    server: Optional[str] = Field(default=None, description=SERVER_FIELD_DESCRIPTION)
    channel: str = Field(description=CHANNEL_FIELD_DESCRIPTION)
    message: str = Field(description="Message content to send")


class ReadMessagesArgs(_ToolArguments):
    server: Optional[str] = Field(default=None, description=SERVER_FIELD_DESCRIPTION)
    channel: str = Field(description=CHANNEL_FIELD_DESCRIPTION)
    limit: int = Field(default=50, ge=1, le=100, description="Number of messages to fetch (max 100)")
