"""Durable session registry shared by CLI invocations and daemons.

The registry is a single JSON file in the config's state directory:

    {
        "sessions": {
            "default": {"pid": 4242, "port": 8940, "started_at": "..."}
        }
    }

Every mutation re-reads the file, applies the change and writes it back
atomically, under an advisory lock on a sibling '.lock' file.
"""

import fcntl
import json
import logging
import os
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """A named daemon instance."""
    name: str
    pid: int
    port: int
    started_at: str

    @classmethod
    def new(cls, name: str, pid: int, port: int) -> "Session":
        return cls(
            name=name,
            pid=pid,
            port=port,
            started_at=datetime.now(timezone.utc).isoformat(),
        )

    def to_record(self) -> Dict:
        record = asdict(self)
        record.pop("name")
        return record


def is_process_alive(pid: int) -> bool:
    """
    Probe a pid with signal 0 (existence check, nothing is delivered).

    A PermissionError means the process exists but belongs to someone else.
    """
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class SessionRegistry:
    """
    Mapping of session name to Session, persisted to one JSON file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")

    def get(self, name: str) -> Optional[Session]:
        return self._read().get(name)

    def set(self, session: Session) -> None:
        with self._locked():
            sessions = self._read()
            sessions[session.name] = session
            self._write(sessions)

    def delete(self, name: str) -> bool:
        """Remove a session. Returns False if it was not registered."""
        with self._locked():
            sessions = self._read()
            if name not in sessions:
                return False
            del sessions[name]
            self._write(sessions)
            return True

    def list(self) -> List[Tuple[Session, bool]]:
        """All sessions with a liveness flag, sorted by name."""
        return [
            (session, is_process_alive(session.pid))
            for _, session in sorted(self._read().items())
        ]

    def live_ports(self) -> List[int]:
        """Ports held by sessions whose process is alive."""
        return [session.port for session, alive in self.list() if alive]

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "a") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read(self) -> Dict[str, Session]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable registry {self.path}: {e}")
            return {}

        sessions: Dict[str, Session] = {}
        for name, record in (data.get("sessions") or {}).items():
            try:
                sessions[name] = Session(
                    name=name,
                    pid=int(record["pid"]),
                    port=int(record["port"]),
                    started_at=str(record.get("started_at", "")),
                )
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed registry entry '{name}'")
        return sessions

    def _write(self, sessions: Dict[str, Session]) -> None:
        payload = {
            "sessions": {
                name: session.to_record() for name, session in sorted(sessions.items())
            }
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, self.path)
