"""Loopback HTTP control plane for an mcpskill daemon.

This module implements the long-running daemon process that:
1. Binds /status, /tools and /call on 127.0.0.1
2. Connects to the MCP server once, in the background
3. Stays up (and inspectable) while the handshake runs or after it failed

Usage:
    python -m mcpskill.daemon.server --config CONFIG --session NAME --port PORT

    Normally spawned by:
    mcp_skill --config CONFIG start NAME
"""

import asyncio
import json
import logging
import signal
import sys
from typing import Callable, Optional

from aiohttp import web

from mcpskill.core.configs import ServerConfig, load_config
from mcpskill.core.errors import ConfigError
from mcpskill.daemon.bridge import ProtocolBridge
from mcpskill.daemon.ports import LOOPBACK
from mcpskill.daemon.protocol import NOT_CONNECTED, error_body, parse_call_request
from mcpskill.daemon.state import ConnectionState

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def describe_error(error: BaseException) -> str:
    """Readable message for an exception, unwrapping exception groups."""
    nested = getattr(error, "exceptions", None)
    if nested:
        return "; ".join(describe_error(e) for e in nested)
    return str(error) or error.__class__.__name__


class DaemonServer:
    """
    aiohttp server owning one ProtocolBridge.

    Each request is handled as its own task, so /status answers while a
    /call is still waiting on the MCP server. Concurrent /call requests
    are passed to the bridge as they arrive.
    """

    def __init__(
        self,
        config: ServerConfig,
        session_name: str,
        port: int,
        host: str = LOOPBACK,
        bridge_factory: Callable[[ServerConfig], ProtocolBridge] = ProtocolBridge,
    ):
        self.config = config
        self.session_name = session_name
        self.port = port
        self.host = host
        self.bridge_factory = bridge_factory

        self.state = ConnectionState(server=config.name, session=session_name)
        self.bridge: Optional[ProtocolBridge] = None
        self.runner: Optional[web.AppRunner] = None
        self._shutdown_event = asyncio.Event()
        self._release_bridge = asyncio.Event()
        self._bridge_task: Optional[asyncio.Task] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/status", self._handle_status)
        app.router.add_get("/tools", self._handle_tools)
        app.router.add_post("/call", self._handle_call)
        return app

    async def connect_bridge(self) -> None:
        """
        Connect the Protocol Bridge.

        A failure is recorded in the connection state instead of raised;
        the daemon keeps serving so the failure can be inspected via
        /status and the session can still be stopped.
        """
        bridge = self.bridge_factory(self.config)
        try:
            await bridge.connect()
        except Exception as e:
            message = describe_error(e)
            logger.error(f"Failed to connect: {message}")
            self.state.mark_failed(message)
            return

        self.bridge = bridge
        self.state.mark_connected()
        logger.info(f"Connected via {self.config.transport}")

    async def start(self) -> None:
        """Bind, connect in the background, serve until SIGTERM/SIGINT, clean up."""
        logger.info(
            f"Starting daemon for {self.config.name} (session '{self.session_name}')"
        )

        try:
            self.runner = web.AppRunner(self.build_app(), access_log=None)
            await self.runner.setup()
            site = web.TCPSite(self.runner, self.host, self.port)
            await site.start()
            logger.info(f"Daemon listening on http://{self.host}:{self.port}")

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self._signal_handler)

            self._bridge_task = asyncio.create_task(self._run_bridge())
            await self._shutdown_event.wait()
        finally:
            await self._cleanup()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def _run_bridge(self) -> None:
        # The bridge's exit stack is entered and closed in this one task.
        await self.connect_bridge()
        if self.bridge is None:
            return

        try:
            await self._release_bridge.wait()
        finally:
            try:
                await self.bridge.close()
            except Exception as e:
                logger.warning(f"Error closing MCP session: {describe_error(e)}")
            self.bridge = None

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.state.to_status())

    async def _handle_tools(self, request: web.Request) -> web.Response:
        if not self.state.connected:
            return web.json_response(error_body(NOT_CONNECTED), status=503)

        try:
            result = await self.bridge.list_tools()
        except Exception as e:
            logger.exception(f"Error listing tools: {e}")
            return web.json_response(error_body(describe_error(e)), status=500)

        return web.json_response(result)

    async def _handle_call(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except json.JSONDecodeError as e:
            return web.json_response(error_body(f"Invalid JSON: {e}"), status=400)

        try:
            tool, arguments = parse_call_request(body)
        except ValueError as e:
            return web.json_response(error_body(str(e)), status=400)

        if not self.state.connected:
            return web.json_response(error_body(NOT_CONNECTED), status=503)

        logger.info(f"Calling tool: {tool} {json.dumps(arguments)}")
        try:
            result = await self.bridge.call_tool(tool, arguments)
        except Exception as e:
            logger.error(f"Error calling {tool}: {describe_error(e)}")
            return web.json_response(error_body(describe_error(e)), status=500)

        return web.json_response(result)

    def _signal_handler(self) -> None:
        logger.info("Received shutdown signal")
        self.request_shutdown()

    async def _cleanup(self) -> None:
        logger.info("Shutting down...")

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        task, self._bridge_task = self._bridge_task, None
        if task is not None:
            if self.bridge is None:
                # Still in the handshake.
                task.cancel()
            self._release_bridge.set()
            try:
                await task
            except asyncio.CancelledError:
                logger.info("Abandoned MCP handshake")

        logger.info("Daemon stopped")


def run_daemon(config_path: str, session_name: str, port: int) -> None:
    """
    Run the daemon in the foreground until terminated.

    Args:
        config_path: Path to the server config file
        session_name: Session this daemon serves
        port: Loopback port to listen on
    """
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATEFMT)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    server = DaemonServer(config, session_name=session_name, port=port)
    asyncio.run(server.start())


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="mcpskill daemon server")
    parser.add_argument("--config", required=True, help="Path to server config file")
    parser.add_argument("--session", default="default", help="Session name")
    parser.add_argument("--port", type=int, required=True, help="Loopback port")

    args = parser.parse_args()

    run_daemon(
        config_path=args.config,
        session_name=args.session,
        port=args.port,
    )
