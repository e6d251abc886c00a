"""X11 wire codec, credential cache and extension introspection."""

from .connection import Connection
from .directory import get_font_path, list_extension_names, max_request_bytes, query_extension, resolve_opcode
from .errors import (
    CredentialError,
    CredentialNotFound,
    ExtensionQueryError,
    HandshakeRejected,
    InputError,
    ProtocolError,
    TransportError,
    XProbeError,
)
from .handshake import decode_setup, decode_setup_reply, encode_setup_request, perform_handshake
from .locator import default_display_name, parse_display
from .models import (
    ByteOrder,
    ConnectionSetup,
    Credential,
    Depth,
    DisplayAddress,
    ExtensionInfo,
    ExtensionRecord,
    LocalDisplay,
    PixmapFormat,
    ProtocolState,
    Screen,
    VisualType,
)
from .replay import ReplayEvent, ReplayReport, ReplayRunner
from .transport import DisplayTransport
from .versions import describe_extensions, iter_extensions, query_version
from .xauth import credential_path, resolve_credential

__all__ = [
    "ByteOrder",
    "Connection",
    "ConnectionSetup",
    "Credential",
    "CredentialError",
    "CredentialNotFound",
    "Depth",
    "DisplayAddress",
    "DisplayTransport",
    "ExtensionInfo",
    "ExtensionQueryError",
    "ExtensionRecord",
    "HandshakeRejected",
    "InputError",
    "LocalDisplay",
    "PixmapFormat",
    "ProtocolError",
    "ProtocolState",
    "ReplayEvent",
    "ReplayReport",
    "ReplayRunner",
    "Screen",
    "TransportError",
    "VisualType",
    "XProbeError",
    "credential_path",
    "decode_setup",
    "decode_setup_reply",
    "default_display_name",
    "describe_extensions",
    "encode_setup_request",
    "get_font_path",
    "iter_extensions",
    "list_extension_names",
    "max_request_bytes",
    "parse_display",
    "perform_handshake",
    "query_extension",
    "query_version",
    "resolve_credential",
    "resolve_opcode",
]
