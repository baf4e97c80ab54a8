"""Error taxonomy shared by the CLI and the daemon."""

from typing import Optional


class McpSkillError(Exception):
    """Base class for all mcpskill errors."""


class ConfigError(McpSkillError):
    """Missing or invalid server configuration. Fatal for the CLI."""


class PortExhaustedError(McpSkillError):
    """No free loopback port in the scanned range."""

    def __init__(self, start: int, span: int):
        self.start = start
        self.span = span
        super().__init__(
            f"No free port in range {start}-{start + span - 1}"
        )


class NotRunningError(McpSkillError):
    """No live daemon is registered under the session name."""

    def __init__(self, session_name: str):
        self.session_name = session_name
        super().__init__(f"Session '{session_name}' is not running")


class UnreachableError(McpSkillError):
    """A registered daemon did not answer on its port."""


class DaemonHTTPError(McpSkillError):
    """The daemon answered with a non-2xx status."""

    def __init__(self, status: int, message: Optional[str] = None):
        self.status = status
        self.message = message or f"HTTP {status}"
        super().__init__(self.message)

    @property
    def unavailable(self) -> bool:
        """True when the daemon is up but not connected to its server."""
        return self.status == 503
