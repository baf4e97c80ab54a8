"""JSON protocol for the daemon's loopback HTTP API.

Endpoints:
    GET  /status   -> {"connected": bool, "lastError": str | None,
                       "server": str, "session": str, "pid": int}
    GET  /tools    -> {"tools": [{"name": str, "description": str, ...}]}
    POST /call     <- {"tool": str, "arguments": {...}}
                   -> {"content": [...], "structuredContent": ..., "isError": bool}

Errors are returned as {"error": str} with a non-2xx status:
    400 malformed request, 503 not connected to the MCP server,
    500 the MCP server call failed.
"""

import json
from typing import Any, Dict, Iterable, Tuple

NOT_CONNECTED = "Not connected to MCP server"


def parse_cli_value(value: str) -> Any:
    """
    Interpret a command line value as JSON when possible.

    'count=3' yields 3, 'flags=[1,2]' a list, 'text=hello' the string.
    """
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def parse_tool_arguments(pairs: Iterable[str]) -> Dict[str, Any]:
    """
    Turn 'key=value' pairs into an argument map.

    Raises:
        ValueError: If a pair has no '=' or an empty key
    """
    arguments: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid argument '{pair}', expected key=value")
        arguments[key] = parse_cli_value(value)
    return arguments


def build_call_request(tool: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Body for POST /call."""
    return {"tool": tool, "arguments": arguments}


def parse_call_request(body: Any) -> Tuple[str, Dict[str, Any]]:
    """
    Validate a decoded /call body.

    Returns:
        (tool name, argument map)

    Raises:
        ValueError: If 'tool' is missing or 'arguments' is not an object
    """
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")

    tool = body.get("tool")
    if not isinstance(tool, str) or not tool:
        raise ValueError("Missing 'tool' parameter")

    arguments = body.get("arguments")
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ValueError("'arguments' must be a JSON object")

    return tool, arguments


def error_body(message: str) -> Dict[str, str]:
    return {"error": message}
