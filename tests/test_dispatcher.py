"""Tool dispatcher: argument validation, actions and result formatting."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from mezon_mcp.errors import DirectoryError, ResolutionError, ToolExecutionError
from mezon_mcp.models import ChatMessage, ReadMessagesArgs, SendMessageArgs
from mezon_mcp.tools import (
    READ_MESSAGES,
    SEND_MESSAGE,
    ArgumentErrors,
    ToolDispatcher,
    ValidatedArguments,
    project_message,
    validate_arguments,
)

# ============================================================================
# Argument validation
# ============================================================================


def test_validate_arguments_applies_default_limit():
    result = validate_arguments(ReadMessagesArgs, {"channel": "general"})
    assert isinstance(result, ValidatedArguments)
    assert result.value.limit == 50
    assert result.value.server is None


@pytest.mark.parametrize("limit", [0, 150, -1])
def test_validate_arguments_rejects_out_of_range_limit(limit):
    result = validate_arguments(ReadMessagesArgs, {"channel": "general", "limit": limit})
    assert isinstance(result, ArgumentErrors)
    assert [error.path for error in result.errors] == ["limit"]


def test_validate_arguments_aggregates_every_field():
    result = validate_arguments(SendMessageArgs, {"server": 5})
    assert isinstance(result, ArgumentErrors)
    paths = sorted(error.path for error in result.errors)
    assert paths == ["channel", "message", "server"]
    summary = result.summary()
    assert summary.startswith("Invalid arguments: ")
    assert "channel: " in summary and "message: " in summary


def test_validate_arguments_accepts_missing_mapping():
    result = validate_arguments(ReadMessagesArgs, None)
    assert isinstance(result, ArgumentErrors)
    assert result.errors[0].path == "channel"


# ============================================================================
# Dispatch
# ============================================================================


@pytest.mark.asyncio
async def test_unknown_tool(acme_directory):
    dispatcher = ToolDispatcher(acme_directory)
    with pytest.raises(ToolExecutionError) as excinfo:
        await dispatcher.dispatch("delete-everything", {})
    assert excinfo.value.error_type == "UNKNOWN_TOOL"
    assert str(excinfo.value) == "Unknown tool: delete-everything"
    assert excinfo.value.recoverable is False


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, 150])
async def test_invalid_limit_fails_before_any_directory_call(acme_directory, limit):
    dispatcher = ToolDispatcher(acme_directory)
    with pytest.raises(ToolExecutionError) as excinfo:
        await dispatcher.dispatch(READ_MESSAGES, {"channel": "random", "limit": limit})
    assert excinfo.value.error_type == "INVALID_ARGUMENT"
    assert str(excinfo.value).startswith("Invalid arguments: limit: ")
    assert excinfo.value.data["errors"][0]["path"] == "limit"
    assert acme_directory.calls == []


@pytest.mark.asyncio
async def test_send_message_to_single_clan(acme_directory):
    dispatcher = ToolDispatcher(acme_directory)
    text = await dispatcher.dispatch(SEND_MESSAGE, {"channel": "general", "message": "hi"})
    sent = acme_directory.messages_in("C1")
    assert [m.content for m in sent] == ["hi"]
    assert text == f"Message sent successfully to #general in Acme. Message ID: {sent[0].id}"


@pytest.mark.asyncio
async def test_send_message_propagates_resolution_error(twin_directory):
    dispatcher = ToolDispatcher(twin_directory)
    with pytest.raises(ResolutionError) as excinfo:
        await dispatcher.dispatch(SEND_MESSAGE, {"channel": "general", "message": "hi"})
    assert excinfo.value.error_type == "MULTI_SERVER_NO_DEFAULT"
    assert not any(call[0] == "send_message" for call in twin_directory.calls)


@pytest.mark.asyncio
async def test_send_failure_is_reported_as_directory_error(acme_directory, monkeypatch):
    async def broken_send(channel, text):
        raise DirectoryError("socket closed")

    monkeypatch.setattr(acme_directory, "send_message", broken_send)
    dispatcher = ToolDispatcher(acme_directory)
    with pytest.raises(ToolExecutionError) as excinfo:
        await dispatcher.dispatch(SEND_MESSAGE, {"channel": "general", "message": "hi"})
    assert excinfo.value.error_type == "DIRECTORY_ERROR"
    assert "socket closed" in str(excinfo.value)


@pytest.mark.asyncio
async def test_read_messages_projects_recent_messages(acme_directory):
    dispatcher = ToolDispatcher(acme_directory)
    payload = json.loads(await dispatcher.dispatch(READ_MESSAGES, {"channel": "random", "limit": 5}))
    assert len(payload) == 5
    for item in payload:
        assert set(item) == {"channel", "server", "author", "content", "timestamp"}
        assert item["channel"] == "#random"
        assert item["server"] == "Acme"
    # Directory order (newest first) is preserved, not re-sorted
    assert [item["author"] for item in payload] == ["user7", "user6", "user5", "user4", "user3"]
    assert payload[0]["timestamp"] == "2024-05-01T12:07:00.000Z"


@pytest.mark.asyncio
async def test_read_messages_output_is_pretty_printed(acme_directory):
    dispatcher = ToolDispatcher(acme_directory)
    text = await dispatcher.dispatch(READ_MESSAGES, {"channel": "#random", "limit": 1})
    assert text.startswith("[\n  {\n")


@pytest.mark.asyncio
async def test_read_messages_empty_channel(acme_directory):
    dispatcher = ToolDispatcher(acme_directory)
    text = await dispatcher.dispatch(READ_MESSAGES, {"channel": "general"})
    assert json.loads(text) == []


def test_validate_returns_parsed_model(acme_directory):
    args = ToolDispatcher(acme_directory).validate(READ_MESSAGES, {"channel": "#random"})
    assert isinstance(args, ReadMessagesArgs)
    assert (args.channel, args.server, args.limit) == ("#random", None, 50)
    assert acme_directory.calls == []


def test_project_message_normalizes_naive_timestamp():
    message = ChatMessage("m1", "C1", "alice", "hello", datetime(2024, 1, 2, 3, 4, 5, 678000))
    assert project_message(message, channel_name="general", server_name="Acme") == {
        "channel": "#general",
        "server": "Acme",
        "author": "alice",
        "content": "hello",
        "timestamp": "2024-01-02T03:04:05.678Z",
    }


def test_project_message_converts_to_utc():
    tz = timezone(timedelta(hours=2))
    message = ChatMessage("m1", "C1", "bob", "hey", datetime(2024, 1, 2, 5, 0, tzinfo=tz))
    assert project_message(message, channel_name="x", server_name="y")["timestamp"] == "2024-01-02T03:00:00.000Z"
