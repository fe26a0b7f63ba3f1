"""Tool registry and dispatcher for the Mezon messaging tools."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .directory import DirectoryClient
from .errors import DirectoryError, ToolExecutionError
from .models import ChatMessage, ReadMessagesArgs, SendMessageArgs, iso_timestamp
from .resolver import DirectoryResolver

logger = logging.getLogger(__name__)

SEND_MESSAGE = "send-message"
READ_MESSAGES = "read-messages"

ArgsT = TypeVar("ArgsT", bound=BaseModel)


@dataclass(slots=True, frozen=True)
class FieldError:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass(slots=True, frozen=True)
class ValidatedArguments(Generic[ArgsT]):
    value: ArgsT
    ok: bool = True


@dataclass(slots=True, frozen=True)
class ArgumentErrors:
    errors: list[FieldError] = field(default_factory=list)
    ok: bool = False

    def summary(self) -> str:
        return "Invalid arguments: " + ", ".join(str(error) for error in self.errors)


ValidationResult = Union[ValidatedArguments[ArgsT], ArgumentErrors]


def validate_arguments(model: type[ArgsT], arguments: Optional[Mapping[str, Any]]) -> ValidationResult[ArgsT]:
    """Validate raw tool arguments without raising.

    Returns the parsed model, or every field error found with its dotted path.
    """
    try:
        return ValidatedArguments(model.model_validate(dict(arguments or {})))
    except ValidationError as exc:
        errors = [
            FieldError(".".join(str(part) for part in err["loc"]) or "(root)", err["msg"])
            for err in exc.errors()
        ]
        return ArgumentErrors(errors)


def project_message(message: ChatMessage, *, channel_name: str, server_name: str) -> dict[str, str]:
    return {
        "channel": f"#{channel_name}",
        "server": server_name,
        "author": message.author,
        "content": message.content,
        "timestamp": iso_timestamp(message.created_at),
    }


@dataclass(slots=True, frozen=True)
class ToolSpec:
    name: str
    description: str
    arguments: type[BaseModel]
    handler: Callable[[Any], Awaitable[str]]


class ToolDispatcher:
    """Validates tool calls, resolves their targets and performs the action."""

    def __init__(self, directory: DirectoryClient, resolver: Optional[DirectoryResolver] = None):
        self.directory = directory
        self.resolver = resolver or DirectoryResolver(directory)
        self.registry: dict[str, ToolSpec] = {
            SEND_MESSAGE: ToolSpec(
                SEND_MESSAGE,
                "Send a message to a Mezon channel",
                SendMessageArgs,
                self._send_message,
            ),
            READ_MESSAGES: ToolSpec(
                READ_MESSAGES,
                "Read recent messages from a Mezon channel",
                ReadMessagesArgs,
                self._read_messages,
            ),
        }

    def validate(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> BaseModel:
        """Return the parsed arguments for ``name`` or raise ``UNKNOWN_TOOL``/``INVALID_ARGUMENT``."""
        spec = self.registry.get(name)
        if spec is None:
            raise ToolExecutionError(
                "UNKNOWN_TOOL",
                f"Unknown tool: {name}",
                recoverable=False,
                data={"tool": name, "available": sorted(self.registry)},
            )
        result = validate_arguments(spec.arguments, arguments)
        if isinstance(result, ArgumentErrors):
            raise ToolExecutionError(
                "INVALID_ARGUMENT",
                result.summary(),
                data={"tool": name, "errors": [{"path": e.path, "message": e.message} for e in result.errors]},
            )
        return result.value

    async def dispatch(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> str:
        args = self.validate(name, arguments)
        return await self.registry[name].handler(args)

    async def _send_message(self, args: SendMessageArgs) -> str:
        clan, channel = await self.resolver.resolve_channel(args.channel, args.server)
        try:
            sent = await self.directory.send_message(channel, args.message)
        except DirectoryError as exc:
            raise ToolExecutionError(
                "DIRECTORY_ERROR",
                f"Failed to send message to #{channel.name} in {clan.name}: {exc}",
                data={"channel_id": channel.id, "server_id": clan.id},
            ) from exc
        logger.info("message.sent", extra={"channel_id": channel.id, "clan_id": clan.id, "message_id": sent.id})
        return f"Message sent successfully to #{channel.name} in {clan.name}. Message ID: {sent.id}"

    async def _read_messages(self, args: ReadMessagesArgs) -> str:
        clan, channel = await self.resolver.resolve_channel(args.channel, args.server)
        try:
            messages = await self.directory.fetch_messages(channel, args.limit)
        except DirectoryError as exc:
            raise ToolExecutionError(
                "DIRECTORY_ERROR",
                f"Failed to read messages from #{channel.name} in {clan.name}: {exc}",
                data={"channel_id": channel.id, "server_id": clan.id},
            ) from exc
        projected = [
            project_message(message, channel_name=channel.name, server_name=clan.name)
            for message in messages[: args.limit]
        ]
        return json.dumps(projected, indent=2, ensure_ascii=False)
