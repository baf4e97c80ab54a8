"""Daemon architecture for mcpskill.

A long-running background process per session keeps one MCP server
connection open, so short CLI invocations do not pay for spawning and
handshaking with the server each time.

Architecture:
- SessionRegistry: JSON file mapping session name -> pid, port, start time
- Supervisor: spawns, probes and stops daemons; reaps stale entries
- DaemonServer: aiohttp control plane on 127.0.0.1 (runs in the daemon)
- DaemonClient: thin HTTP client used by the CLI
"""

from mcpskill.daemon.client import DaemonClient
from mcpskill.daemon.ports import find_free_port
from mcpskill.daemon.registry import Session, SessionRegistry, is_process_alive
from mcpskill.daemon.supervisor import Supervisor

__all__ = [
    "DaemonClient",
    "Session",
    "SessionRegistry",
    "Supervisor",
    "find_free_port",
    "is_process_alive",
]
