"""Application factory for the Mezon MCP server."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import wraps
from typing import Annotated, Any, AsyncContextManager, Callable, Optional

from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from pydantic import Field

from . import rich_logger
from .config import Settings, get_settings
from .directory import DirectoryClient, MezonDirectoryClient
from .errors import DirectoryError, ToolExecutionError
from .models import CHANNEL_FIELD_DESCRIPTION, SERVER_FIELD_DESCRIPTION
from .tools import READ_MESSAGES, SEND_MESSAGE, ToolDispatcher

logger = logging.getLogger(__name__)

TOOL_METRICS: defaultdict[str, dict[str, int]] = defaultdict(lambda: {"calls": 0, "errors": 0})


def _record_tool_error(tool_name: str, exc: Exception) -> None:
    logger.warning(
        "tool_error",
        extra={
            "tool": tool_name,
            "error": type(exc).__name__,
            "error_message": str(exc),
        },
    )


def _instrument_tool(
    tool_name: str,
    *,
    server_arg: Optional[str] = "server",
    channel_arg: Optional[str] = "channel",
) -> Callable[[Any], Any]:
    def decorator(func: Any) -> Any:
        signature = inspect.signature(func)

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            metrics = TOOL_METRICS[tool_name]
            metrics["calls"] += 1
            bound = signature.bind_partial(*args, **kwargs)
            clean_kwargs = {k: v for k, v in bound.arguments.items() if k != "ctx"}

            settings = get_settings()
            log_ctx = None
            if settings.tools_log_enabled and settings.log_rich_enabled:
                log_ctx = rich_logger.ToolCallContext(
                    tool_name=tool_name,
                    kwargs=clean_kwargs,
                    server=clean_kwargs.get(server_arg) if server_arg else None,
                    channel=clean_kwargs.get(channel_arg) if channel_arg else None,
                )
                rich_logger.log_tool_call_start(log_ctx)

            def _failed(original: Exception, raised: ToolExecutionError) -> None:
                metrics["errors"] += 1
                _record_tool_error(tool_name, original)
                if log_ctx is not None:
                    log_ctx.success = False
                    log_ctx.error = raised
                    rich_logger.log_tool_call_end(log_ctx)

            try:
                result = await func(*args, **kwargs)
            except ToolExecutionError as exc:
                _failed(exc, exc)
                raise
            except DirectoryError as exc:
                wrapped_exc = ToolExecutionError(
                    "DIRECTORY_ERROR",
                    f"Mezon directory request failed: {exc}",
                    data={"tool": tool_name, "status_code": exc.status_code},
                )
                _failed(exc, wrapped_exc)
                raise wrapped_exc from exc
            except Exception as exc:
                error_type = type(exc).__name__
                wrapped_exc = ToolExecutionError(
                    "UNHANDLED_EXCEPTION",
                    f"Unexpected error ({error_type}): {exc}",
                    recoverable=False,
                    data={"tool": tool_name, "original_error": error_type, "error_detail": str(exc)},
                )
                _failed(exc, wrapped_exc)
                raise wrapped_exc from exc

            if log_ctx is not None:
                log_ctx.result = result
                rich_logger.log_tool_call_end(log_ctx)
            return result

        return wrapper

    return decorator


class ArgumentValidationMiddleware(Middleware):
    """Validate calls to dispatcher tools before FastMCP binds the function signature.

    Rejections carry the dispatcher's aggregated ``Invalid arguments: ...``
    message and never reach the tool body or the directory.
    """

    def __init__(self, dispatcher: ToolDispatcher):
        self.dispatcher = dispatcher

    async def on_call_tool(self, context: MiddlewareContext[Any], call_next: CallNext[Any, Any]) -> Any:
        name = context.message.name
        if name in self.dispatcher.registry:
            try:
                self.dispatcher.validate(name, context.message.arguments)
            except ToolExecutionError as exc:
                metrics = TOOL_METRICS[name]
                metrics["calls"] += 1
                metrics["errors"] += 1
                _record_tool_error(name, exc)
                raise ToolError(str(exc)) from exc
        return await call_next(context)


def _lifespan_factory(directory: DirectoryClient) -> Callable[[FastMCP], AsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastMCP) -> AsyncIterator[None]:
        await directory.connect()
        logger.info("mezon.ready")
        try:
            yield
        finally:
            await directory.close()

    return lifespan


def build_mcp_server(directory: Optional[DirectoryClient] = None, settings: Optional[Settings] = None) -> FastMCP:
    """Create and configure the FastMCP server instance.

    ``directory`` defaults to a ``MezonDirectoryClient`` built from settings;
    pass another implementation to run against a fixed snapshot.
    """
    settings = settings or get_settings()
    if directory is None:
        directory = MezonDirectoryClient(settings.mezon)
    dispatcher = ToolDispatcher(directory)

    instructions = (
        "You are the Mezon MCP server. Send messages to and read recent messages from Mezon channels. "
        "Servers (clans) and channels can be named or given by ID; the server may be omitted when the bot "
        "belongs to a single clan."
    )
    mcp = FastMCP(
        name="mezon",
        instructions=instructions,
        lifespan=_lifespan_factory(directory),
        middleware=[ArgumentValidationMiddleware(dispatcher)],
    )

    @mcp.tool(name=SEND_MESSAGE, description=dispatcher.registry[SEND_MESSAGE].description)
    @_instrument_tool(SEND_MESSAGE)
    async def send_message(
        ctx: Context,
        channel: Annotated[str, Field(description=CHANNEL_FIELD_DESCRIPTION)],
        message: Annotated[str, Field(description="Message content to send")],
        server: Annotated[Optional[str], Field(description=SERVER_FIELD_DESCRIPTION)] = None,
    ) -> str:
        result = await dispatcher.dispatch(SEND_MESSAGE, {"server": server, "channel": channel, "message": message})
        await ctx.info(result)
        return result

    @mcp.tool(name=READ_MESSAGES, description=dispatcher.registry[READ_MESSAGES].description)
    @_instrument_tool(READ_MESSAGES)
    async def read_messages(
        ctx: Context,
        channel: Annotated[str, Field(description=CHANNEL_FIELD_DESCRIPTION)],
        server: Annotated[Optional[str], Field(description=SERVER_FIELD_DESCRIPTION)] = None,
        limit: Annotated[int, Field(ge=1, le=100, description="Number of messages to fetch (max 100)")] = 50,
    ) -> str:
        return await dispatcher.dispatch(READ_MESSAGES, {"server": server, "channel": channel, "limit": limit})

    @mcp.tool(name="health_check", description="Return basic readiness information for the Mezon MCP server.")
    @_instrument_tool("health_check", server_arg=None, channel_arg=None)
    async def health_check(ctx: Context) -> dict[str, Any]:
        """
        Quick readiness probe.

        Reports the environment and API endpoint, and counts the clans the bot
        can currently see. A directory failure yields ``status: degraded``
        instead of an error.
        """
        status = "ok"
        clan_count: Optional[int] = None
        try:
            clan_count = len(await directory.list_clans())
        except DirectoryError as exc:
            status = "degraded"
            logger.warning("health_check.directory_unavailable", extra={"error_message": str(exc)})
        return {
            "status": status,
            "environment": settings.environment,
            "api_url": settings.mezon.api_url,
            "clans": clan_count,
            "tools": sorted(dispatcher.registry),
        }

    return mcp
