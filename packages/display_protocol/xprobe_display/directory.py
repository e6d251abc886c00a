"""Core requests that enumerate extensions and other server-wide lists."""

from __future__ import annotations

import logging
import struct
from enum import IntEnum

from .connection import Connection
from .errors import ProtocolError
from .handshake import pad_length
from .models import ExtensionInfo, Reply

logger = logging.getLogger(__name__)

BIG_REQUESTS = "BIG-REQUESTS"
BIG_REQUESTS_ENABLE = 0


class CoreOpcode(IntEnum):
    GET_FONT_PATH = 52
    QUERY_EXTENSION = 98
    LIST_EXTENSIONS = 99


def _struct(conn: Connection, fmt: str) -> struct.Struct:
    return struct.Struct(conn.byte_order.struct_prefix + fmt)


def _expect_reply(reply: Reply, what: str) -> Reply:
    if not reply.is_reply:
        code = reply.data[1] if len(reply.data) > 1 else 0
        raise ProtocolError(f"{what} failed: status {reply.status}, code {code}")
    return reply


def _parse_strings(data: bytes, count: int, what: str) -> list[str]:
    """Decode ``count`` length-prefixed strings (1-byte length, no per-string pad)."""
    names: list[str] = []
    offset = 0
    for index in range(count):
        if offset >= len(data):
            raise ProtocolError(f"{what} reply ends before string {index} of {count}")
        length = data[offset]
        offset += 1
        if offset + length > len(data):
            raise ProtocolError(f"{what} string {index} overruns the reply")
        names.append(data[offset : offset + length].decode("latin-1"))
        offset += length
    return names


def list_extension_names(conn: Connection) -> list[str]:
    request = _struct(conn, "BxH").pack(CoreOpcode.LIST_EXTENSIONS, 1)
    reply = _expect_reply(conn.round_trip(request), "ListExtensions")
    count = reply.data[1]
    names = _parse_strings(reply.data[32:], count, "ListExtensions")
    logger.info("server lists %d extensions", len(names), extra={"event": "extensions_listed"})
    return names


def query_extension(conn: Connection, name: str) -> ExtensionInfo:
    encoded = name.encode("latin-1")
    pad = pad_length(len(encoded))
    header = _struct(conn, "BxHH2x").pack(CoreOpcode.QUERY_EXTENSION, 2 + (len(encoded) + pad) // 4, len(encoded))
    reply = _expect_reply(conn.round_trip(header + encoded + b"\0" * pad), f"QueryExtension({name})")
    present, major_opcode, first_event, first_error = struct.unpack_from("BBBB", reply.data, 8)
    return ExtensionInfo(
        present=bool(present),
        major_opcode=major_opcode,
        first_event=first_event,
        first_error=first_error,
    )


def resolve_opcode(conn: Connection, name: str) -> int:
    """Major opcode of ``name``, or 0 when the server says it is not present.

    Absence comes from the reply's ``present`` flag, never from the opcode
    byte itself.
    """
    try:
        info = query_extension(conn, name)
    except ProtocolError as exc:
        logger.warning("opcode lookup failed: %s", exc, extra={"event": "query_extension_failed"})
        return 0
    return info.major_opcode if info.present else 0


def get_font_path(conn: Connection) -> list[str]:
    request = _struct(conn, "BxH").pack(CoreOpcode.GET_FONT_PATH, 1)
    reply = _expect_reply(conn.round_trip(request), "GetFontPath")
    (count,) = _struct(conn, "H").unpack_from(reply.data, 8)
    return _parse_strings(reply.data[32:], count, "GetFontPath")


def max_request_bytes(conn: Connection, use_big_requests: bool = True) -> int:
    """Largest request the server accepts, in bytes.

    When BIG-REQUESTS is present the limit from BigReqEnable replaces the
    16-bit value carried in the setup data.
    """
    limit = 4 * conn.setup.max_request_length
    if not use_big_requests:
        return limit
    opcode = resolve_opcode(conn, BIG_REQUESTS)
    if not opcode:
        return limit
    reply = conn.round_trip(_struct(conn, "BBH").pack(opcode, BIG_REQUESTS_ENABLE, 1))
    if not reply.is_reply:
        logger.warning("BigReqEnable failed with status %d", reply.status, extra={"event": "big_requests_failed"})
        return limit
    (words,) = _struct(conn, "I").unpack_from(reply.data, 8)
    return 4 * words
