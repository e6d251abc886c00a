"""Per-extension version queries.

Extensions standardised their QueryVersion requests independently, so the
field widths and the presence of client version fields differ. Each known
extension maps to one variant below; anything not in the table is reported
as an unknown version rather than decoded by guesswork.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Union

from .connection import Connection
from .directory import list_extension_names, resolve_opcode
from .errors import ExtensionQueryError, TransportError
from .models import ExtensionRecord

logger = logging.getLogger(__name__)


class RequestShape(str, Enum):
    NONE = "none"
    CARD8 = "card8"
    CARD16 = "card16"
    CARD32 = "card32"
    XTEST = "xtest"


class ReplyShape(str, Enum):
    CARD8 = "card8"
    CARD16 = "card16"
    CARD32 = "card32"
    XTEST = "xtest"


@dataclass(frozen=True)
class FixedVersion:
    major: int
    minor: int


@dataclass(frozen=True)
class WireQuery:
    request: RequestShape
    reply: ReplyShape
    sub_opcode: int = 0


@dataclass(frozen=True)
class AliasOf:
    target: str
    use_target_opcode: bool = False


@dataclass(frozen=True)
class Unsupported:
    reason: str = "no version request"


VersionQuery = Union[FixedVersion, WireQuery, AliasOf, Unsupported]

_Q8 = WireQuery(RequestShape.CARD8, ReplyShape.CARD8)
_Q8_16 = WireQuery(RequestShape.CARD8, ReplyShape.CARD16)
_Q16 = WireQuery(RequestShape.CARD16, ReplyShape.CARD16)
_Q16_NOPARAM = WireQuery(RequestShape.NONE, ReplyShape.CARD16)
_Q32 = WireQuery(RequestShape.CARD32, ReplyShape.CARD32)
_Q32_NOPARAM = WireQuery(RequestShape.NONE, ReplyShape.CARD32)

EXTENSION_VERSION_QUERIES: dict[str, VersionQuery] = {
    "Apple-DRI": _Q16_NOPARAM,
    "Apple-WM": _Q16_NOPARAM,
    "BIG-REQUESTS": FixedVersion(2, 0),
    "Composite": _Q32,
    "DAMAGE": _Q32,
    "DOUBLE-BUFFER": _Q8,
    "DPMS": _Q16,
    "DMX": _Q32_NOPARAM,
    "DRI2": _Q32,
    "DRI3": _Q32,
    "Extended-Visual-Information": _Q16_NOPARAM,
    "FontCache": _Q16_NOPARAM,
    "GLX": WireQuery(RequestShape.CARD32, ReplyShape.CARD32, sub_opcode=7),
    "Generic Event Extension": _Q16,
    "LBX": _Q16_NOPARAM,
    "LGE": _Q32_NOPARAM,
    "MIT-SCREEN-SAVER": _Q8_16,
    "MIT-SHM": _Q16_NOPARAM,
    "NV-CONTROL": _Q16_NOPARAM,
    "NV-GLX": AliasOf("GLX", use_target_opcode=True),
    "Present": _Q32,
    "RANDR": _Q32,
    "RECORD": _Q16,
    "RENDER": _Q32,
    "SECURITY": _Q16,
    "SELinux": _Q8_16,
    "SGI-GLX": AliasOf("GLX"),
    "SHAPE": _Q16_NOPARAM,
    "SYNC": _Q8,
    "TOG-CUP": _Q16,
    "Windows-WM": _Q16_NOPARAM,
    "X-Resource": _Q8_16,
    "XC-APPGROUP": _Q16,
    "XC-MISC": _Q16,
    "XC-VidModeExtension": AliasOf("XFree86-VidModeExtension"),
    "XCALIBRATE": _Q32,
    "XFIXES": _Q32,
    "XFree86-Bigfont": _Q16_NOPARAM,
    "XFree86-DGA": _Q16_NOPARAM,
    "XFree86-DRI": _Q16_NOPARAM,
    "XFree86-Misc": _Q16_NOPARAM,
    "XFree86-Rush": _Q16_NOPARAM,
    "XFree86-VidModeExtension": _Q16_NOPARAM,
    "XINERAMA": _Q8_16,
    "XInputExtension": WireQuery(RequestShape.CARD16, ReplyShape.CARD16, sub_opcode=47),
    "XKEYBOARD": _Q16,
    "XpExtension": _Q16_NOPARAM,
    "XTEST": WireQuery(RequestShape.XTEST, ReplyShape.XTEST),
    "XVideo": _Q16_NOPARAM,
    "XVideo-MotionCompensation": _Q32_NOPARAM,
}


def lookup(name: str) -> VersionQuery:
    return EXTENSION_VERSION_QUERIES.get(name, Unsupported(f"{name} is not in the version table"))


def query_target(name: str) -> str:
    """Name whose opcode should be resolved for ``name``."""
    entry = lookup(name)
    if isinstance(entry, AliasOf) and entry.use_target_opcode:
        return entry.target
    return name


def encode_request(query: WireQuery, opcode: int, prefix: str = "<") -> bytes:
    """Build the version request; probe fields carry the highest value their width allows."""
    if query.request is RequestShape.NONE:
        return struct.pack(prefix + "BBH", opcode, query.sub_opcode, 1)
    if query.request is RequestShape.CARD8:
        return struct.pack(prefix + "BBHBB2x", opcode, query.sub_opcode, 2, 0xFF, 0xFF)
    if query.request is RequestShape.CARD16:
        return struct.pack(prefix + "BBHHH", opcode, query.sub_opcode, 2, 0xFFFF, 0xFFFF)
    if query.request is RequestShape.CARD32:
        return struct.pack(prefix + "BBHII", opcode, query.sub_opcode, 3, 0xFFFFFFFF, 0xFFFFFFFF)
    if query.request is RequestShape.XTEST:
        return struct.pack(prefix + "BBHBxH", opcode, query.sub_opcode, 2, 0xFF, 0xFFFF)
    raise ValueError(f"unhandled request shape {query.request!r}")


def decode_reply(query: WireQuery, data: bytes, prefix: str = "<") -> tuple[int, int]:
    if query.reply is ReplyShape.CARD8:
        return struct.unpack_from("BB", data, 8)
    if query.reply is ReplyShape.CARD16:
        return struct.unpack_from(prefix + "HH", data, 8)
    if query.reply is ReplyShape.CARD32:
        return struct.unpack_from(prefix + "II", data, 8)
    if query.reply is ReplyShape.XTEST:
        (minor,) = struct.unpack_from(prefix + "H", data, 8)
        return data[1], minor
    raise ValueError(f"unhandled reply shape {query.reply!r}")


def _run_wire_query(conn: Connection, name: str, query: WireQuery, opcode: int) -> tuple[int, int]:
    prefix = conn.byte_order.struct_prefix
    try:
        reply = conn.round_trip(encode_request(query, opcode, prefix))
    except TransportError as exc:
        raise ExtensionQueryError(name, f"transport failure: {exc}") from exc
    if not reply.is_reply:
        raise ExtensionQueryError(name, f"server answered with status {reply.status}")
    return decode_reply(query, reply.data, prefix)


def _dispatch(conn: Connection, name: str, opcode: int, seen: frozenset[str] = frozenset()) -> tuple[int, int]:
    entry = lookup(name)
    if isinstance(entry, FixedVersion):
        return entry.major, entry.minor
    if isinstance(entry, WireQuery):
        return _run_wire_query(conn, name, entry, opcode)
    if isinstance(entry, AliasOf):
        if entry.target in seen:
            raise ExtensionQueryError(name, f"alias loop through {entry.target}")
        return _dispatch(conn, entry.target, opcode, seen | {name})
    if isinstance(entry, Unsupported):
        raise ExtensionQueryError(name, entry.reason)
    raise TypeError(f"unhandled version query variant {entry!r}")


def query_version(conn: Connection, name: str, opcode: int) -> tuple[int, int] | None:
    """Version of one extension, or ``None`` when it cannot be determined."""
    try:
        return _dispatch(conn, name, opcode)
    except ExtensionQueryError as exc:
        logger.warning("version query failed: %s", exc, extra={"event": "version_query_failed"})
        return None


def iter_extensions(conn: Connection) -> Iterator[ExtensionRecord]:
    """Yield a record per present extension, sorted by name.

    A ``TransportError`` from a lookup propagates after every earlier record
    has been yielded.
    """
    for name in sorted(list_extension_names(conn)):
        opcode = resolve_opcode(conn, query_target(name))
        if not opcode:
            logger.info("extension %s is not present", name, extra={"event": "extension_absent"})
            continue
        version = query_version(conn, name, opcode)
        if version is None:
            yield ExtensionRecord(name=name, opcode=opcode)
        else:
            yield ExtensionRecord(name=name, opcode=opcode, version_major=version[0], version_minor=version[1])


def describe_extensions(conn: Connection) -> list[ExtensionRecord]:
    """List, sort, resolve and version every extension the server advertises.

    When the stream breaks part way the records gathered so far are returned.
    """
    records: list[ExtensionRecord] = []
    try:
        for record in iter_extensions(conn):
            records.append(record)
    except TransportError as exc:
        logger.warning(
            "extension enumeration stopped after %d records: %s",
            len(records),
            exc,
            extra={"event": "extensions_truncated"},
        )
    return records
