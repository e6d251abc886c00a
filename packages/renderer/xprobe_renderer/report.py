"""Text and JSON rendering of a probe report."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

from xprobe_display.models import (
    BackingStores,
    ConnectionSetup,
    EventMask,
    ExtensionRecord,
    ImageByteOrder,
    Screen,
)

from .models import ProbeReport

HEADER = "xprobe - X server information printer"
FIELD_WIDTH = 45
EXTENSION_WIDTH = 41

EVENT_MASK_LABELS: tuple[tuple[str, EventMask], ...] = (
    ("Key press", EventMask.KEY_PRESS),
    ("Key release", EventMask.KEY_RELEASE),
    ("Button press", EventMask.BUTTON_PRESS),
    ("Button release", EventMask.BUTTON_RELEASE),
    ("Enter window", EventMask.ENTER_WINDOW),
    ("Leave window", EventMask.LEAVE_WINDOW),
    ("Pointer motion", EventMask.POINTER_MOTION),
    ("Pointer motion hint", EventMask.POINTER_MOTION_HINT),
    ("Button 1 motion", EventMask.BUTTON1_MOTION),
    ("Button 2 motion", EventMask.BUTTON2_MOTION),
    ("Button 3 motion", EventMask.BUTTON3_MOTION),
    ("Button 4 motion", EventMask.BUTTON4_MOTION),
    ("Button 5 motion", EventMask.BUTTON5_MOTION),
    ("Button motion", EventMask.BUTTON_MOTION),
    ("Keymap state", EventMask.KEYMAP_STATE),
    ("Exposure", EventMask.EXPOSURE),
    ("Visibility change", EventMask.VISIBILITY_CHANGE),
    ("Structure notify", EventMask.STRUCTURE_NOTIFY),
    ("Resize redirect", EventMask.RESIZE_REDIRECT),
    ("Substructure notify", EventMask.SUBSTRUCTURE_NOTIFY),
    ("Substructure redirect", EventMask.SUBSTRUCTURE_REDIRECT),
    ("Focus change", EventMask.FOCUS_CHANGE),
    ("Property change", EventMask.PROPERTY_CHANGE),
    ("Colormap change", EventMask.COLORMAP_CHANGE),
    ("Owner grab button", EventMask.OWNER_GRAB_BUTTON),
)

_BACKING_STORES_TEXT = {
    BackingStores.NEVER: "never",
    BackingStores.WHEN_MAPPED: "when mapped",
    BackingStores.ALWAYS: "always",
}


def format_release_number(release: int) -> str:
    """Vendor release as ``major.minor.patch[.build]``; build is omitted when zero."""
    major = release // 10_000_000
    minor = (release // 100_000) % 100
    patch = (release // 1000) % 100
    build = release % 1000
    if build:
        return f"{major}.{minor}.{patch}.{build}"
    return f"{major}.{minor}.{patch}"


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


def _field(name: str, value: object, indent: int = 0) -> str:
    width = FIELD_WIDTH - indent
    return f"{' ' * indent}{name.ljust(width, '.')[:width]} {value}"


def _setup_lines(setup: ConnectionSetup, max_request_bytes: int) -> list[str]:
    image_order = "little endian" if setup.image_byte_order is ImageByteOrder.LSB_FIRST else "big endian"
    bit_order = "least significant" if setup.bitmap_bit_order is ImageByteOrder.LSB_FIRST else "most significant"
    return [
        _field("Vendor", setup.vendor_name),
        _field("Version", f"{setup.protocol_major}.{setup.protocol_minor}"),
        _field("Release number", format_release_number(setup.release_number)),
        "",
        _field("Resource ID base", f"0x{setup.resource_id_base:08x}"),
        _field("Resource ID mask", f"0x{setup.resource_id_mask:08x}"),
        _field("Motion buffer size", setup.motion_buffer_size),
        _field("Maximum request length", f"{max_request_bytes} bytes"),
        _field("Image byte order", image_order),
        _field("Bitmap format bit order", f"{bit_order} first"),
        _field("Bitmap format scanline unit", setup.scanline_unit),
        _field("Bitmap format scanline pad", setup.scanline_pad),
        _field("Max keycode", setup.max_keycode),
        _field("Min keycode", setup.min_keycode),
        _field("Number of pixmap formats", len(setup.pixmap_formats)),
        _field("Number of screens", len(setup.screens)),
    ]


def _screen_lines(index: int, screen: Screen) -> list[str]:
    lines = [
        f"  Screen #{index}",
        _field("Root", f"0x{screen.root:08x}", 4),
        _field("Default colormap", f"0x{screen.default_colormap:08x}", 4),
        _field("White pixel", f"0x{screen.white_pixel:08x}", 4),
        _field("Black pixel", f"0x{screen.black_pixel:08x}", 4),
        _field("Current input mask", f"0x{int(screen.current_input_mask):08x}", 4),
    ]
    for label, flag in EVENT_MASK_LABELS:
        lines.append(_field(label, _yes_no(bool(screen.current_input_mask & flag)), 6))
    lines.extend(
        [
            _field(
                "Size",
                f"{screen.width_pixels}x{screen.height_pixels} pixels ({screen.width_mm}x{screen.height_mm} mm)",
                4,
            ),
            _field("Installed maps", f"min = {screen.min_installed_maps}, max = {screen.max_installed_maps}", 4),
            _field("Root visual id", f"0x{screen.root_visual_id:08x}", 4),
            _field("Backing stores", _BACKING_STORES_TEXT[screen.backing_stores], 4),
            _field("Save unders", _yes_no(screen.save_unders), 4),
            _field("Root depth", screen.root_depth, 4),
            _field("Number of allowed depths", len(screen.allowed_depths), 4),
            "    Allowed depths:",
        ]
    )
    for depth in screen.allowed_depths:
        lines.append(f"      * depth = {depth.depth:2d}, number of visuals: {len(depth.visuals)}")
    return lines


def extension_line(record: ExtensionRecord) -> str:
    fill = "." * max(0, EXTENSION_WIDTH - len(record.name))
    return f"  * {record.name}{fill} {record.version_text}"


def render_text(report: ProbeReport) -> str:
    setup = report.setup
    lines = [HEADER, ""]
    lines.extend(_setup_lines(setup, report.max_request_bytes))

    lines.extend(["", "Pixmap formats:"])
    for fmt in setup.pixmap_formats:
        lines.append(
            f"  * depth = {fmt.depth:2d}, bits per pixel = {fmt.bits_per_pixel:2d}, scanline pad = {fmt.scanline_pad}"
        )

    lines.extend(["", "Screens:"])
    for index, screen in enumerate(setup.screens):
        lines.extend(_screen_lines(index, screen))

    lines.extend(["", "Font search paths:"])
    lines.extend(f"  * {path}" for path in report.font_paths)

    lines.extend(["", f"Supported extensions: {len(report.extensions)}"])
    lines.extend(extension_line(record) for record in report.extensions)
    return "\n".join(lines) + "\n"


def report_to_dict(report: ProbeReport) -> dict[str, Any]:
    payload = asdict(report)
    payload["address"]["display"] = str(report.address)
    payload["setup"]["release_text"] = format_release_number(report.setup.release_number)
    for raw, screen in zip(payload["setup"]["screens"], report.setup.screens):
        raw["current_input_mask"] = int(screen.current_input_mask)
        raw["events"] = [label for label, flag in EVENT_MASK_LABELS if screen.current_input_mask & flag]
    for raw, record in zip(payload["extensions"], report.extensions):
        raw["version"] = record.version_text if record.has_version else None
    return payload


def render_json(report: ProbeReport) -> str:
    return json.dumps(report_to_dict(report), indent=2, sort_keys=True, default=str)
