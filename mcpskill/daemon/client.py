"""Lightweight client for the daemon's loopback HTTP API.

Usage:
    client = DaemonClient(port=8940)
    status = client.status()
    result = client.call("echo", {"text": "hello"})
"""

from typing import Any, Dict, Optional

import requests

from mcpskill.core.errors import DaemonHTTPError, UnreachableError
from mcpskill.daemon.ports import LOOPBACK
from mcpskill.daemon.protocol import build_call_request


class DaemonClient:
    """
    One daemon, addressed by port.

    Status checks use a short timeout; tools and calls have none, so a
    slow tool blocks the request for as long as the MCP server takes.
    """

    def __init__(
        self,
        port: int,
        host: str = LOOPBACK,
        status_timeout: float = 2.0,
    ):
        self.base_url = f"http://{host}:{port}"
        self.status_timeout = status_timeout

    def status(self) -> Dict[str, Any]:
        return self._request("GET", "/status", timeout=self.status_timeout)

    def tools(self) -> Dict[str, Any]:
        return self._request("GET", "/tools")

    def call(self, tool: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request(
            "POST", "/call", json=build_call_request(tool, arguments or {})
        )

    def _request(
        self,
        method: str,
        path: str,
        timeout: Optional[float] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Send one request and decode the JSON reply.

        Raises:
            UnreachableError: If the daemon does not accept the connection
                or does not answer within the timeout
            DaemonHTTPError: If the daemon answers with a status >= 400
        """
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, json=json, timeout=timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise UnreachableError(f"Daemon at {self.base_url} is not responding: {e}") from e

        if response.status_code >= 400:
            raise DaemonHTTPError(response.status_code, _error_message(response))

        try:
            return response.json()
        except ValueError as e:
            raise DaemonHTTPError(response.status_code, f"Invalid JSON from daemon: {e}") from e


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text
