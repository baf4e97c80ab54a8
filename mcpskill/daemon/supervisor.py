"""Daemon lifecycle: start, stop, status and stale-entry reconciliation.

The registry file is the only state shared between CLI invocations and
daemons. Every operation reconciles it against actual process liveness
before acting.
"""

import logging
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from mcpskill.core.configs import ServerConfig
from mcpskill.core.errors import McpSkillError, NotRunningError
from mcpskill.daemon.client import DaemonClient
from mcpskill.daemon.ports import DEFAULT_PORT, find_free_port
from mcpskill.daemon.registry import Session, SessionRegistry, is_process_alive

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"
STARTUP_WAIT = 2.0

# Outcomes
STARTED = "started"
ALREADY_RUNNING = "already_running"
FAILED = "failed"
STOPPED = "stopped"
NOT_RUNNING = "not_running"
NOT_RESPONDING = "not_responding"
RUNNING = "running"


@dataclass
class StartResult:
    status: str
    session: Optional[Session] = None
    log_path: Optional[Path] = None
    error: Optional[str] = None


@dataclass
class StopResult:
    status: str
    session: Optional[Session] = None
    signalled: bool = False


@dataclass
class StatusResult:
    status: str
    session: Optional[Session] = None
    daemon: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class Supervisor:
    """
    Manages named daemons for one server config.

    Args:
        config: Loaded server config (defines the state directory)
        registry: Session registry (defaults to the config's registry file)
        client_factory: Builds a DaemonClient for a port
        startup_wait: Seconds to wait before the single readiness probe
    """

    def __init__(
        self,
        config: ServerConfig,
        registry: Optional[SessionRegistry] = None,
        client_factory: Callable[[int], DaemonClient] = DaemonClient,
        startup_wait: float = STARTUP_WAIT,
    ):
        self.config = config
        self.registry = registry or SessionRegistry(config.registry_path)
        self.client_factory = client_factory
        self.startup_wait = startup_wait

    def start(self, name: str = DEFAULT_SESSION, port: int = DEFAULT_PORT) -> StartResult:
        """
        Start a daemon for the session unless a live one exists.

        The session is registered right after spawn. If the daemon does not
        answer /status after startup_wait, the entry is removed and the
        result is FAILED; the spawned process is left running so its log
        can be inspected.

        Raises:
            PortExhaustedError: If no port is free (nothing is registered)
        """
        existing = self.registry.get(name)
        if existing is not None:
            if is_process_alive(existing.pid):
                return StartResult(ALREADY_RUNNING, session=existing)
            logger.info(f"Removing stale session '{name}' (pid {existing.pid})")
            self.registry.delete(name)

        chosen_port = find_free_port(self.registry, start=port)
        log_path = self.config.log_path(name)
        pid = self._spawn(name, chosen_port, log_path)

        session = Session.new(name, pid, chosen_port)
        self.registry.set(session)

        time.sleep(self.startup_wait)
        try:
            self.client_factory(chosen_port).status()
        except McpSkillError as e:
            logger.warning(f"Daemon for '{name}' did not become ready: {e}")
            self.registry.delete(name)
            return StartResult(FAILED, session=session, log_path=log_path, error=str(e))

        return StartResult(STARTED, session=session, log_path=log_path)

    def _spawn(self, name: str, port: int, log_path: Path) -> int:
        """Launch the daemon detached, output appended to its log file."""
        log_path.parent.mkdir(parents=True, exist_ok=True)
        command = [
            sys.executable,
            "-m",
            "mcpskill.daemon.server",
            "--config",
            str(self.config.config_path),
            "--session",
            name,
            "--port",
            str(port),
        ]
        with open(log_path, "ab") as log_file:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                env={**os.environ, **self.config.env},
                cwd=str(self.config.config_dir),
                start_new_session=True,
            )
        logger.debug(f"Spawned daemon pid {process.pid} on port {port}")
        return process.pid

    def stop(self, name: str = DEFAULT_SESSION) -> StopResult:
        """Send SIGTERM to the session's daemon and forget the session."""
        session = self.registry.get(name)
        if session is None:
            return StopResult(NOT_RUNNING)

        signalled = True
        try:
            os.kill(session.pid, signal.SIGTERM)
        except ProcessLookupError:
            signalled = False
        except PermissionError as e:
            logger.warning(f"Cannot signal pid {session.pid}: {e}")
            signalled = False

        self.registry.delete(name)
        return StopResult(STOPPED, session=session, signalled=signalled)

    def status(self, name: str = DEFAULT_SESSION) -> StatusResult:
        """
        Report one of three disjoint states:
        NOT_RUNNING, NOT_RESPONDING (registered but unreachable) or RUNNING.
        """
        session = self.registry.get(name)
        if session is None:
            return StatusResult(NOT_RUNNING)

        if not is_process_alive(session.pid):
            return StatusResult(NOT_RESPONDING, session=session, error="process not found")

        try:
            payload = self.client_factory(session.port).status()
        except McpSkillError as e:
            return StatusResult(NOT_RESPONDING, session=session, error=str(e))

        return StatusResult(RUNNING, session=session, daemon=payload)

    def resolve(self, name: str = DEFAULT_SESSION) -> Session:
        """
        Return the live session, reaping a dead entry first.

        Raises:
            NotRunningError: If no live daemon is registered under name
        """
        session = self.registry.get(name)
        if session is None:
            raise NotRunningError(name)
        if not is_process_alive(session.pid):
            logger.info(f"Removing stale session '{name}' (pid {session.pid})")
            self.registry.delete(name)
            raise NotRunningError(name)
        return session

    def client(self, name: str = DEFAULT_SESSION) -> DaemonClient:
        """Client for a live session. Raises NotRunningError otherwise."""
        return self.client_factory(self.resolve(name).port)

    def sessions(self) -> List[Tuple[Session, bool]]:
        return self.registry.list()
