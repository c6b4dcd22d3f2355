from __future__ import annotations

import socket
from typing import Iterator

from t2.utils import get_logger

logger = get_logger(__name__)


class UdpReceiver:
    """Yields one Heimdall record per datagram."""

    def __init__(self, host: str = "127.0.0.1", port: int = 12345, bufsize: int = 512):
        self.host = host
        self.port = port
        self.bufsize = bufsize
        self._sock = None

    def open(self) -> "UdpReceiver":
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.bind((self.host, self.port))
        logger.info("receiver listening udp=%s:%d", self.host, self.port)
        return self

    @property
    def address(self):
        if self._sock is None:
            return (self.host, self.port)
        return self._sock.getsockname()

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "UdpReceiver":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def __iter__(self) -> Iterator[bytes]:
        if self._sock is None:
            raise RuntimeError("receiver is not open")
        while True:
            data, _ = self._sock.recvfrom(self.bufsize)
            yield data
