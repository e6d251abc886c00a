"""Socket transport for X display connections."""

from __future__ import annotations

import glob
import logging
import os
import re
import socket
from dataclasses import dataclass
from typing import Any

import psutil

from .errors import TransportError
from .models import DisplayAddress, LocalDisplay

logger = logging.getLogger(__name__)

X_TCP_PORT_BASE = 6000
X_TCP_PORT_LAST = 6063
X_UNIX_SOCKET_DIR = "/tmp/.X11-unix"
_UNIX_SOCKET_RE = re.compile(r"X(\d+)$")


@dataclass
class SocketConfig:
    family: str
    endpoint: str


class DisplayTransport:
    """Blocking byte stream to a display server.

    ``write`` and ``read`` loop until the whole buffer has moved; an
    interrupted system call is retried, end of stream and socket errors
    become :class:`TransportError`.
    """

    def __init__(self, sock: Any | None = None) -> None:
        self._socket: Any | None = sock
        self.config: SocketConfig | None = None

    @classmethod
    def from_socket(cls, sock: Any) -> "DisplayTransport":
        return cls(sock)

    @property
    def is_open(self) -> bool:
        return self._socket is not None

    def open(self, address: DisplayAddress) -> None:
        if self.is_open:
            return
        if address.is_unix_transport:
            self._socket = self._open_unix(address.socket_path)
            self.config = SocketConfig(family="unix", endpoint=address.socket_path)
        else:
            host = address.host or "localhost"
            self._socket = self._open_tcp(host, address.tcp_port)
            self.config = SocketConfig(family="tcp", endpoint=f"{host}:{address.tcp_port}")
        logger.info(
            "connected to %s", self.config.endpoint, extra={"event": "transport_open"}
        )

    @staticmethod
    def _open_unix(path: str) -> socket.socket:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(path)
        except OSError as exc:
            sock.close()
            raise TransportError(f"failed to connect to {path}: {exc}") from exc
        return sock

    @staticmethod
    def _open_tcp(host: str, port: int) -> socket.socket:
        try:
            infos = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except socket.gaierror as exc:
            raise TransportError(f"failed to resolve display host {host!r}: {exc}") from exc

        last_error: OSError | None = None
        for family, socktype, proto, _canon, sockaddr in infos:
            try:
                sock = socket.socket(family, socktype, proto)
            except OSError as exc:
                last_error = exc
                continue
            try:
                sock.connect(sockaddr)
            except OSError as exc:
                last_error = exc
                sock.close()
                continue
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            return sock
        raise TransportError(f"failed to connect to {host}:{port}: {last_error}")

    def close(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    def write(self, payload: bytes | bytearray | memoryview) -> int:
        if not self.is_open:
            raise TransportError("display socket is not open")
        view = memoryview(payload)
        total = 0
        while total < len(view):
            try:
                sent = self._socket.send(view[total:])
            except InterruptedError:
                continue
            except OSError as exc:
                raise TransportError(f"write failed after {total} of {len(view)} bytes: {exc}") from exc
            if sent <= 0:
                raise TransportError(f"write failed after {total} of {len(view)} bytes")
            total += sent
        return total

    def read(self, size: int) -> bytes:
        if not self.is_open:
            raise TransportError("display socket is not open")
        buf = bytearray(size)
        view = memoryview(buf)
        total = 0
        while total < size:
            try:
                received = self._socket.recv_into(view[total:], size - total)
            except InterruptedError:
                continue
            except OSError as exc:
                raise TransportError(f"read failed after {total} of {size} bytes: {exc}") from exc
            if received == 0:
                raise TransportError(f"unexpected end of stream after {total} of {size} bytes")
            total += received
        return bytes(buf)

    @staticmethod
    def discover() -> list[LocalDisplay]:
        """List display servers listening on this machine."""
        try:
            return _discover_with_psutil()
        except (psutil.Error, OSError) as exc:
            logger.info("socket enumeration unavailable: %s", exc, extra={"event": "discover_fallback"})
            return _discover_socket_dir()


def _discover_with_psutil() -> list[LocalDisplay]:
    found: dict[str, LocalDisplay] = {}
    for conn in psutil.net_connections(kind="unix"):
        path = conn.laddr if isinstance(conn.laddr, str) else ""
        if not path.startswith(X_UNIX_SOCKET_DIR + "/"):
            continue
        match = _UNIX_SOCKET_RE.search(path)
        if match is None:
            continue
        name = f":{int(match.group(1))}"
        found.setdefault(name, LocalDisplay(name=name, transport="unix", endpoint=path, pid=conn.pid))

    for conn in psutil.net_connections(kind="tcp"):
        if conn.status != psutil.CONN_LISTEN or not conn.laddr:
            continue
        port = conn.laddr.port
        if not X_TCP_PORT_BASE <= port <= X_TCP_PORT_LAST:
            continue
        name = f"localhost:{port - X_TCP_PORT_BASE}"
        found.setdefault(name, LocalDisplay(name=name, transport="tcp", endpoint=f"{conn.laddr.ip}:{port}", pid=conn.pid))

    if not found:
        return _discover_socket_dir()
    return sorted(found.values(), key=lambda d: (d.transport, d.name))


def _discover_socket_dir() -> list[LocalDisplay]:
    displays: list[LocalDisplay] = []
    for path in sorted(glob.glob(os.path.join(X_UNIX_SOCKET_DIR, "X*"))):
        match = _UNIX_SOCKET_RE.search(path)
        if match is None:
            continue
        displays.append(LocalDisplay(name=f":{int(match.group(1))}", transport="unix", endpoint=path))
    return displays
