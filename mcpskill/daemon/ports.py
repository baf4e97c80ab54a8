"""Loopback port allocation for new daemons."""

import socket
from typing import Optional

from mcpskill.core.errors import PortExhaustedError
from mcpskill.daemon.registry import SessionRegistry

DEFAULT_PORT = 8940
PORT_SPAN = 1000
LOOPBACK = "127.0.0.1"


def is_port_bindable(port: int, host: str = LOOPBACK) -> bool:
    """Check whether a TCP listener could bind the port right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_free_port(
    registry: Optional[SessionRegistry] = None,
    start: int = DEFAULT_PORT,
    span: int = PORT_SPAN,
    host: str = LOOPBACK,
) -> int:
    """
    Return the first port >= start that no live session holds and that
    is bindable on loopback.

    The registry check keeps two live sessions from sharing a port even
    while one is between spawn and bind; the bind probe skips ports taken
    by unrelated processes or by daemons the registry no longer knows.

    Raises:
        PortExhaustedError: If no port in [start, start + span) qualifies
    """
    claimed = set(registry.live_ports()) if registry else set()

    for port in range(start, min(start + span, 65536)):
        if port in claimed:
            continue
        if is_port_bindable(port, host):
            return port

    raise PortExhaustedError(start, span)
