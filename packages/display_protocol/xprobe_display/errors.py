"""Error types raised while talking to an X display server."""

from __future__ import annotations


class XProbeError(Exception):
    """Base error for display probing failures."""


class InputError(XProbeError, ValueError):
    """Malformed display name or other user-supplied input."""


class CredentialError(XProbeError):
    """The credential cache could not be used."""


class CredentialNotFound(CredentialError):
    """No credential cache, or no record for the requested display."""


class TransportError(XProbeError):
    """Socket failure or unexpected end of stream."""


class ProtocolError(XProbeError):
    """The server sent something that does not decode."""


class HandshakeRejected(ProtocolError):
    """The server refused the connection setup request."""

    def __init__(self, reason: str, status: int = 0) -> None:
        super().__init__(f"connection refused by server: {reason}" if reason else "connection refused by server")
        self.reason = reason
        self.status = status


class ExtensionQueryError(XProbeError):
    """A single extension version query failed."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(f"{name}: {message}")
        self.name = name
