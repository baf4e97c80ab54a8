"""Protocol Bridge: the daemon's single MCP client connection.

Wraps mcp.ClientSession with the transport named in the config:
    stdio - spawn the server and speak MCP over its stdin/stdout
    http  - streamable HTTP endpoint
    sse   - server-sent events endpoint

The transport and session context managers live on one AsyncExitStack
that must be entered and closed from the same task (the daemon's bridge
task). Calls may come from any request task.
"""

import contextlib
import logging
import os
from typing import Any, Dict, Optional

from mcp import ClientSession, StdioServerParameters, types
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from mcpskill import __version__
from mcpskill.core.configs import ServerConfig

logger = logging.getLogger(__name__)

CLIENT_INFO = types.Implementation(name="mcpskill", version=__version__)


class ProtocolBridge:
    """One MCP client session, connected once and reused for every call."""

    def __init__(self, config: ServerConfig):
        self.config = config
        self.session: Optional[ClientSession] = None
        self._exit_stack: Optional[contextlib.AsyncExitStack] = None

    async def connect(self) -> None:
        """
        Open the transport and perform the MCP handshake.

        Raises:
            Exception: Whatever the transport or handshake raised. The
                exit stack is unwound before re-raising.
        """
        self._exit_stack = contextlib.AsyncExitStack()
        try:
            read_stream, write_stream = await self._open_transport()
            self.session = await self._exit_stack.enter_async_context(
                ClientSession(read_stream, write_stream, client_info=CLIENT_INFO)
            )
            await self.session.initialize()
        except BaseException:
            try:
                await self.close()
            except Exception as e:
                logger.debug(f"Error unwinding failed connection: {e}")
            raise

    async def _open_transport(self):
        config = self.config
        if config.transport == "stdio":
            logger.info(f"Starting server: {config.command} {' '.join(config.args)}")
            params = StdioServerParameters(
                command=config.command,
                args=config.args,
                env={**os.environ, **config.env},
            )
            return await self._exit_stack.enter_async_context(stdio_client(params))

        if config.transport == "sse":
            logger.info(f"Connecting to {config.url} (sse)")
            return await self._exit_stack.enter_async_context(sse_client(config.url))

        logger.info(f"Connecting to {config.url} (http)")
        read_stream, write_stream, _ = await self._exit_stack.enter_async_context(
            streamablehttp_client(config.url)
        )
        return read_stream, write_stream

    async def list_tools(self) -> Dict[str, Any]:
        result = await self._require_session().list_tools()
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._require_session().call_tool(name, arguments)
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)

    async def close(self) -> None:
        """Close the session and transport (terminates a stdio server)."""
        stack, self._exit_stack = self._exit_stack, None
        self.session = None
        if stack is not None:
            await stack.aclose()

    def _require_session(self) -> ClientSession:
        if self.session is None:
            raise RuntimeError("MCP session is not connected")
        return self.session
