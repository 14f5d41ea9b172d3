"""Network reachability gate checked before an authorization starts."""

from __future__ import annotations

import logging
import socket
from typing import Protocol

from dbxauth.constants import DEFAULT_HOST

logger = logging.getLogger(__name__)


class Reachability(Protocol):
    """Reports whether the network is currently usable."""

    def is_connected(self) -> bool: ...


class SocketReachability:
    """Reachability probe that opens a TCP connection to the auth host.

    Note:
        The check blocks the calling thread for up to ``timeout`` seconds
        and runs inside ``authorize``. Hosts driving an event loop should
        pass a ``Reachability`` that answers from cached network state.
    """

    def __init__(self, host: str = DEFAULT_HOST, port: int = 443, timeout: float = 1.0):
        self.host = host
        self.port = port
        self.timeout = timeout

    def is_connected(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError as e:
            logger.debug(f"{self.host}:{self.port} is not reachable: {e}")
            return False
