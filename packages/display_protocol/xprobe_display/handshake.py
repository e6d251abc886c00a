"""Connection setup request encoding and setup reply decoding."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import IntEnum
from functools import lru_cache

from .errors import HandshakeRejected, ProtocolError, TransportError
from .models import (
    BackingStores,
    ByteOrder,
    ConnectionSetup,
    Depth,
    EventMask,
    ImageByteOrder,
    PixmapFormat,
    Screen,
    VisualClass,
    VisualType,
)

logger = logging.getLogger(__name__)

X_PROTOCOL_MAJOR = 11
X_PROTOCOL_MINOR = 0

SETUP_REQUEST_SIZE = 12
SETUP_REPLY_HEADER_SIZE = 8
SETUP_FIXED_SIZE = 32
FORMAT_SIZE = 8
SCREEN_SIZE = 40
DEPTH_SIZE = 8
VISUAL_SIZE = 24

_ALL_EVENTS = 0x01FFFFFF


class SetupStatus(IntEnum):
    FAILED = 0
    SUCCESS = 1
    AUTHENTICATE = 2


@dataclass(frozen=True)
class SetupReplyHeader:
    status: int
    reason_length: int
    protocol_major: int
    protocol_minor: int
    additional_words: int

    @property
    def body_size(self) -> int:
        return 4 * self.additional_words


def pad_length(n: int) -> int:
    return -n % 4


@lru_cache(maxsize=None)
def _layouts(byte_order: ByteOrder) -> dict[str, struct.Struct]:
    p = byte_order.struct_prefix
    return {
        "request": struct.Struct(p + "BxHHHHxx"),
        "header": struct.Struct(p + "BBHHH"),
        "fixed": struct.Struct(p + "IIIIHHBBBBBBBB4x"),
        "format": struct.Struct(p + "BBB5x"),
        "screen": struct.Struct(p + "IIIIIHHHHHHIBBBB"),
        "depth": struct.Struct(p + "BxH4x"),
        "visual": struct.Struct(p + "IBBHIII4x"),
    }


def encode_setup_request(
    byte_order: ByteOrder = ByteOrder.LITTLE,
    auth_name: str | bytes = b"",
    auth_data: bytes | bytearray = b"",
    major: int = X_PROTOCOL_MAJOR,
    minor: int = X_PROTOCOL_MINOR,
) -> bytearray:
    """Build the connection setup request.

    Returns a mutable buffer so the caller can zero the embedded auth data
    once it has been written.
    """
    name = auth_name.encode("latin-1") if isinstance(auth_name, str) else bytes(auth_name)
    name_pad = pad_length(len(name))
    data_pad = pad_length(len(auth_data))

    request = bytearray(SETUP_REQUEST_SIZE + len(name) + name_pad + len(auth_data) + data_pad)
    _layouts(byte_order)["request"].pack_into(request, 0, byte_order.tag, major, minor, len(name), len(auth_data))
    offset = SETUP_REQUEST_SIZE
    request[offset : offset + len(name)] = name
    offset += len(name) + name_pad
    request[offset : offset + len(auth_data)] = auth_data
    return request


class _Reader:
    """Bounds-checked cursor over a setup reply body."""

    def __init__(self, data: bytes) -> None:
        self._view = memoryview(data)
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self._view) - self.offset

    def take(self, size: int, what: str) -> memoryview:
        if size > self.remaining:
            raise TransportError(
                f"setup reply truncated in {what}: need {size} bytes at offset {self.offset}, have {self.remaining}"
            )
        chunk = self._view[self.offset : self.offset + size]
        self.offset += size
        return chunk

    def unpack(self, layout: struct.Struct, what: str) -> tuple:
        return layout.unpack(self.take(layout.size, what))


def _enum(cls, value: int, what: str):
    try:
        return cls(value)
    except ValueError as exc:
        raise ProtocolError(f"invalid {what} value {value} in setup reply") from exc


def decode_reply_header(raw: bytes, byte_order: ByteOrder = ByteOrder.LITTLE) -> SetupReplyHeader:
    if len(raw) < SETUP_REPLY_HEADER_SIZE:
        raise TransportError(f"setup reply header truncated: {len(raw)} of {SETUP_REPLY_HEADER_SIZE} bytes")
    status, reason_length, major, minor, words = _layouts(byte_order)["header"].unpack_from(raw, 0)
    return SetupReplyHeader(status, reason_length, major, minor, words)


def rejection_reason(header: SetupReplyHeader, body: bytes) -> str:
    if header.status == SetupStatus.FAILED:
        text = body[: header.reason_length]
    else:
        text = body.rstrip(b"\0")
    return bytes(text).decode("latin-1").strip()


def _decode_visual(reader: _Reader, layouts: dict[str, struct.Struct]) -> VisualType:
    visual_id, cls, bits, entries, red, green, blue = reader.unpack(layouts["visual"], "visual type")
    return VisualType(
        visual_id=visual_id,
        visual_class=_enum(VisualClass, cls, "visual class"),
        bits_per_rgb_value=bits,
        colormap_entries=entries,
        red_mask=red,
        green_mask=green,
        blue_mask=blue,
    )


def _decode_depth(reader: _Reader, layouts: dict[str, struct.Struct]) -> Depth:
    depth, num_visuals = reader.unpack(layouts["depth"], "depth")
    visuals = [_decode_visual(reader, layouts) for _ in range(num_visuals)]
    return Depth(depth=depth, visuals=tuple(visuals))


def _decode_screen(reader: _Reader, layouts: dict[str, struct.Struct]) -> Screen:
    (
        root,
        colormap,
        white,
        black,
        input_mask,
        width,
        height,
        width_mm,
        height_mm,
        min_maps,
        max_maps,
        root_visual,
        backing_stores,
        save_unders,
        root_depth,
        num_depths,
    ) = reader.unpack(layouts["screen"], "screen")
    depths = [_decode_depth(reader, layouts) for _ in range(num_depths)]
    return Screen(
        root=root,
        default_colormap=colormap,
        white_pixel=white,
        black_pixel=black,
        current_input_mask=EventMask(input_mask & _ALL_EVENTS),
        width_pixels=width,
        height_pixels=height,
        width_mm=width_mm,
        height_mm=height_mm,
        min_installed_maps=min_maps,
        max_installed_maps=max_maps,
        root_visual_id=root_visual,
        backing_stores=_enum(BackingStores, backing_stores, "backing stores"),
        save_unders=bool(save_unders),
        root_depth=root_depth,
        allowed_depths=tuple(depths),
    )


def decode_setup(
    header: SetupReplyHeader,
    body: bytes,
    byte_order: ByteOrder = ByteOrder.LITTLE,
) -> ConnectionSetup:
    """Decode a successful setup reply body into a :class:`ConnectionSetup`.

    Sections are read strictly in wire order: fixed block, vendor (plus pad),
    pixmap formats, then each screen with its depths and visuals. The body
    must be consumed exactly.
    """
    if header.status != SetupStatus.SUCCESS:
        raise HandshakeRejected(rejection_reason(header, body), header.status)
    if len(body) < header.body_size:
        raise TransportError(f"setup reply truncated: {len(body)} of {header.body_size} bytes")

    layouts = _layouts(byte_order)
    reader = _Reader(body[: header.body_size])
    (
        release,
        id_base,
        id_mask,
        motion_buffer,
        vendor_length,
        max_request,
        num_roots,
        num_formats,
        image_order,
        bitmap_order,
        scanline_unit,
        scanline_pad,
        min_keycode,
        max_keycode,
    ) = reader.unpack(layouts["fixed"], "setup header")

    vendor = bytes(reader.take(vendor_length, "vendor name")).decode("latin-1")
    reader.take(pad_length(vendor_length), "vendor padding")

    formats = []
    for _ in range(num_formats):
        depth, bpp, pad = reader.unpack(layouts["format"], "pixmap format")
        formats.append(PixmapFormat(depth=depth, bits_per_pixel=bpp, scanline_pad=pad))

    screens = [_decode_screen(reader, layouts) for _ in range(num_roots)]

    if reader.remaining:
        raise ProtocolError(f"setup reply has {reader.remaining} unexpected trailing bytes")

    return ConnectionSetup(
        protocol_major=header.protocol_major,
        protocol_minor=header.protocol_minor,
        release_number=release,
        resource_id_base=id_base,
        resource_id_mask=id_mask,
        motion_buffer_size=motion_buffer,
        max_request_length=max_request,
        vendor_name=vendor,
        image_byte_order=_enum(ImageByteOrder, image_order, "image byte order"),
        bitmap_bit_order=_enum(ImageByteOrder, bitmap_order, "bitmap bit order"),
        scanline_unit=scanline_unit,
        scanline_pad=scanline_pad,
        min_keycode=min_keycode,
        max_keycode=max_keycode,
        pixmap_formats=tuple(formats),
        screens=tuple(screens),
    )


def decode_setup_reply(buffer: bytes, byte_order: ByteOrder = ByteOrder.LITTLE) -> ConnectionSetup:
    header = decode_reply_header(buffer, byte_order)
    body = buffer[SETUP_REPLY_HEADER_SIZE:]
    if len(body) < header.body_size:
        raise TransportError(f"setup reply truncated: {len(body)} of {header.body_size} bytes")
    return decode_setup(header, body[: header.body_size], byte_order)


def perform_handshake(transport, request: bytes | bytearray, byte_order: ByteOrder = ByteOrder.LITTLE) -> ConnectionSetup:
    """Send the setup request and decode the server's answer."""
    transport.write(request)
    header = decode_reply_header(transport.read(SETUP_REPLY_HEADER_SIZE), byte_order)
    body = transport.read(header.body_size)

    if header.status != SetupStatus.SUCCESS:
        reason = rejection_reason(header, body)
        logger.error(
            "server rejected connection setup (status %d): %s",
            header.status,
            reason,
            extra={"event": "handshake_rejected"},
        )
        raise HandshakeRejected(reason, header.status)

    setup = decode_setup(header, body, byte_order)
    logger.info(
        "setup complete: protocol %d.%d vendor=%r screens=%d",
        setup.protocol_major,
        setup.protocol_minor,
        setup.vendor_name,
        len(setup.screens),
        extra={"event": "handshake_ok"},
    )
    return setup
