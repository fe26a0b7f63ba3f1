"""Resolve human-supplied clan and channel identifiers to directory entities."""

from __future__ import annotations

import logging
from typing import Optional

from .directory import DirectoryClient
from .errors import DirectoryError, ResolutionError, ResolutionKind
from .models import Channel, Clan

logger = logging.getLogger(__name__)


def _quoted(names: list[str]) -> str:
    return ", ".join(f'"{name}"' for name in names)


def normalize_channel_query(identifier: str) -> str:
    """Casefold a channel query, dropping one leading ``#``."""
    query = identifier[1:] if identifier.startswith("#") else identifier
    return query.casefold()


class DirectoryResolver:
    """Maps clan/channel identifiers onto exactly one entity or fails loudly.

    Lookups go by ID first and fall back to a case-insensitive name match.
    Name collisions are reported, never silently resolved. Nothing is cached
    between calls; every resolution reads the directory's current state.
    """

    def __init__(self, directory: DirectoryClient):
        self.directory = directory

    async def resolve_server(self, identifier: Optional[str] = None) -> Clan:
        if not identifier:
            clans = await self.directory.list_clans()
            if len(clans) == 1:
                return clans[0]
            names = [clan.name for clan in clans]
            if names:
                message = (
                    "Bot is in multiple servers. Please specify server name or ID. "
                    f"Available servers: {_quoted(names)}"
                )
            else:
                message = "Bot is not in any server. Invite the bot to a Mezon clan first."
            raise ResolutionError(
                ResolutionKind.MULTI_SERVER_NO_DEFAULT,
                message,
                entity="server",
                candidates=names,
            )

        try:
            return await self.directory.fetch_clan(identifier)
        except DirectoryError as exc:
            # Not-found and transport failures both fall back to the name search.
            logger.debug("resolver.clan_fetch_failed", extra={"identifier": identifier, "error": str(exc)})

        clans = await self.directory.list_clans()
        wanted = identifier.casefold()
        matches = [clan for clan in clans if clan.name.casefold() == wanted]
        if not matches:
            names = [clan.name for clan in clans]
            raise ResolutionError(
                ResolutionKind.NOT_FOUND,
                f'Server "{identifier}" not found. Available servers: {_quoted(names)}',
                entity="server",
                identifier=identifier,
                candidates=names,
            )
        if len(matches) > 1:
            labels = [f"{clan.name} ({clan.id})" for clan in matches]
            raise ResolutionError(
                ResolutionKind.AMBIGUOUS,
                f'Multiple servers found with name "{identifier}": {", ".join(labels)}. Please specify the server ID.',
                entity="server",
                identifier=identifier,
                candidates=labels,
            )
        return matches[0]

    async def resolve_channel(
        self, channel_identifier: str, server_identifier: Optional[str] = None
    ) -> tuple[Clan, Channel]:
        clan = await self.resolve_server(server_identifier)

        non_text_hit = False
        try:
            fetched = await self.directory.fetch_channel(channel_identifier)
        except DirectoryError as exc:
            logger.debug("resolver.channel_fetch_failed", extra={"identifier": channel_identifier, "error": str(exc)})
        else:
            if fetched.clan_id == clan.id:
                if fetched.is_text:
                    return clan, fetched
                non_text_hit = True

        channels = await self.directory.list_channels(clan.id)
        # The snapshot may hold channels of other clans; scope it again.
        channels = [channel for channel in channels if channel.clan_id == clan.id]
        wanted = normalize_channel_query(channel_identifier)
        named = [channel for channel in channels if channel.name.casefold() == wanted]
        matches = [channel for channel in named if channel.is_text]

        if len(matches) == 1:
            return clan, matches[0]
        if len(matches) > 1:
            labels = [f"{channel.label} ({channel.id})" for channel in matches]
            raise ResolutionError(
                ResolutionKind.AMBIGUOUS,
                f'Multiple channels found with name "{channel_identifier}" in server "{clan.name}": '
                f"{', '.join(labels)}. Please specify the channel ID.",
                entity="channel",
                identifier=channel_identifier,
                candidates=labels,
            )

        available = [channel.label for channel in channels if channel.is_text]
        if non_text_hit or named:
            raise ResolutionError(
                ResolutionKind.WRONG_TYPE,
                f'Channel "{channel_identifier}" in server "{clan.name}" is not a text channel. '
                f"Available channels: {_quoted(available)}",
                entity="channel",
                identifier=channel_identifier,
                candidates=available,
            )
        raise ResolutionError(
            ResolutionKind.NOT_FOUND,
            f'Channel "{channel_identifier}" not found in server "{clan.name}". Available channels: {_quoted(available)}',
            entity="channel",
            identifier=channel_identifier,
            candidates=available,
        )
