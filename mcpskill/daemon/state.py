"""Connection state owned by the daemon process.

The daemon holds exactly one Protocol Bridge for its lifetime. Whether it
connected, and why not, is kept here and handed to every request handler
so /status can always answer.
"""

import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ConnectionState:
    """Daemon-local connection state, exposed read-only via /status."""
    server: str
    session: str
    connected: bool = False
    last_error: Optional[str] = None
    start_time: float = field(default_factory=time.time)

    def mark_connected(self) -> None:
        self.connected = True
        self.last_error = None

    def mark_failed(self, error: str) -> None:
        self.connected = False
        self.last_error = error

    def to_status(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "lastError": self.last_error,
            "server": self.server,
            "session": self.session,
            "pid": os.getpid(),
            "uptime_seconds": round(time.time() - self.start_time, 3),
        }
