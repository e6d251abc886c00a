"""Typed renderer models."""

from __future__ import annotations

from dataclasses import dataclass, field

from xprobe_display.models import ConnectionSetup, DisplayAddress, ExtensionRecord


@dataclass
class ProbeReport:
    address: DisplayAddress
    setup: ConnectionSetup
    max_request_bytes: int
    font_paths: list[str] = field(default_factory=list)
    extensions: list[ExtensionRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
