"""Typed models for display addressing, connection setup data and extensions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum, IntFlag


class ProtocolState(str, Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    SOCKET_OPEN = "SocketOpen"
    AUTHENTICATING = "Authenticating"
    SETUP_RECEIVED = "SetupReceived"
    READY = "Ready"
    CLOSED = "Closed"
    FAILED = "Failed"


class ByteOrder(str, Enum):
    LITTLE = "little"
    BIG = "big"

    @property
    def tag(self) -> int:
        return 0x6C if self is ByteOrder.LITTLE else 0x42

    @property
    def struct_prefix(self) -> str:
        return "<" if self is ByteOrder.LITTLE else ">"


class ImageByteOrder(IntEnum):
    LSB_FIRST = 0
    MSB_FIRST = 1


class BackingStores(IntEnum):
    NEVER = 0
    WHEN_MAPPED = 1
    ALWAYS = 2


class VisualClass(IntEnum):
    STATIC_GRAY = 0
    GRAY_SCALE = 1
    STATIC_COLOR = 2
    PSEUDO_COLOR = 3
    TRUE_COLOR = 4
    DIRECT_COLOR = 5


class EventMask(IntFlag):
    KEY_PRESS = 0x00000001
    KEY_RELEASE = 0x00000002
    BUTTON_PRESS = 0x00000004
    BUTTON_RELEASE = 0x00000008
    ENTER_WINDOW = 0x00000010
    LEAVE_WINDOW = 0x00000020
    POINTER_MOTION = 0x00000040
    POINTER_MOTION_HINT = 0x00000080
    BUTTON1_MOTION = 0x00000100
    BUTTON2_MOTION = 0x00000200
    BUTTON3_MOTION = 0x00000400
    BUTTON4_MOTION = 0x00000800
    BUTTON5_MOTION = 0x00001000
    BUTTON_MOTION = 0x00002000
    KEYMAP_STATE = 0x00004000
    EXPOSURE = 0x00008000
    VISIBILITY_CHANGE = 0x00010000
    STRUCTURE_NOTIFY = 0x00020000
    RESIZE_REDIRECT = 0x00040000
    SUBSTRUCTURE_NOTIFY = 0x00080000
    SUBSTRUCTURE_REDIRECT = 0x00100000
    FOCUS_CHANGE = 0x00200000
    PROPERTY_CHANGE = 0x00400000
    COLORMAP_CHANGE = 0x00800000
    OWNER_GRAB_BUTTON = 0x01000000


@dataclass(frozen=True)
class DisplayAddress:
    host: str
    sequence_number: int
    screen_number: int = 0
    is_unix_transport: bool = False

    @property
    def tcp_port(self) -> int:
        return 6000 + self.sequence_number

    @property
    def socket_path(self) -> str:
        return f"/tmp/.X11-unix/X{self.sequence_number}"

    def __str__(self) -> str:
        host = f"{self.host}/unix" if self.is_unix_transport and self.host else self.host
        return f"{host}:{self.sequence_number}.{self.screen_number}"


class Credential:
    """Auth protocol name plus a secret that is zeroed by ``wipe()``."""

    __slots__ = ("protocol_name", "secret")

    def __init__(self, protocol_name: str, secret: bytes | bytearray) -> None:
        self.protocol_name = protocol_name
        self.secret = bytearray(secret)

    def wipe(self) -> None:
        for i in range(len(self.secret)):
            self.secret[i] = 0

    @property
    def is_wiped(self) -> bool:
        return not any(self.secret)

    def __enter__(self) -> "Credential":
        return self

    def __exit__(self, *_exc) -> None:
        self.wipe()

    def __repr__(self) -> str:
        return f"Credential(protocol_name={self.protocol_name!r}, secret=<{len(self.secret)} bytes>)"


@dataclass(frozen=True)
class PixmapFormat:
    depth: int
    bits_per_pixel: int
    scanline_pad: int


@dataclass(frozen=True)
class VisualType:
    visual_id: int
    visual_class: VisualClass
    bits_per_rgb_value: int
    colormap_entries: int
    red_mask: int
    green_mask: int
    blue_mask: int


@dataclass(frozen=True)
class Depth:
    depth: int
    visuals: tuple[VisualType, ...]


@dataclass(frozen=True)
class Screen:
    root: int
    default_colormap: int
    white_pixel: int
    black_pixel: int
    current_input_mask: EventMask
    width_pixels: int
    height_pixels: int
    width_mm: int
    height_mm: int
    min_installed_maps: int
    max_installed_maps: int
    root_visual_id: int
    backing_stores: BackingStores
    save_unders: bool
    root_depth: int
    allowed_depths: tuple[Depth, ...]


@dataclass(frozen=True)
class ConnectionSetup:
    protocol_major: int
    protocol_minor: int
    release_number: int
    resource_id_base: int
    resource_id_mask: int
    motion_buffer_size: int
    max_request_length: int
    vendor_name: str
    image_byte_order: ImageByteOrder
    bitmap_bit_order: ImageByteOrder
    scanline_unit: int
    scanline_pad: int
    min_keycode: int
    max_keycode: int
    pixmap_formats: tuple[PixmapFormat, ...]
    screens: tuple[Screen, ...]


@dataclass(frozen=True)
class ExtensionInfo:
    present: bool
    major_opcode: int
    first_event: int
    first_error: int


@dataclass(frozen=True)
class ExtensionRecord:
    name: str
    opcode: int = 0
    version_major: int | None = None
    version_minor: int | None = None

    @property
    def has_version(self) -> bool:
        return self.version_major is not None and self.version_minor is not None

    @property
    def version_text(self) -> str:
        if not self.has_version:
            return "unknown version"
        return f"v{self.version_major}.{self.version_minor}"


@dataclass(frozen=True)
class Reply:
    status: int
    data: bytes

    @property
    def is_reply(self) -> bool:
        return self.status == 1


@dataclass(frozen=True)
class LocalDisplay:
    name: str
    transport: str
    endpoint: str
    pid: int | None = None
