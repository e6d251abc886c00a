"""Replay/analysis utilities for captured protocol transcripts."""

from __future__ import annotations

import json
import re
import struct
from dataclasses import dataclass, field
from pathlib import Path

from .directory import CoreOpcode
from .errors import ProtocolError, TransportError
from .handshake import SETUP_REPLY_HEADER_SIZE, SETUP_REQUEST_SIZE, decode_reply_header, decode_setup_reply
from .models import ByteOrder

_HEX_CLEAN = re.compile(r"[^0-9a-fA-F]")

CLIENT_TO_SERVER = "client_to_server"
SERVER_TO_CLIENT = "server_to_client"


@dataclass(frozen=True)
class ReplayEvent:
    line: int
    direction: str
    payload: bytes


@dataclass
class ReplayReport:
    total_events: int = 0
    client_to_server_events: int = 0
    server_to_client_events: int = 0
    raw_bytes_total: int = 0
    byte_order: str | None = None
    auth_protocol: str | None = None
    setup_status: int | None = None
    vendor: str | None = None
    screen_count: int = 0
    pixmap_format_count: int = 0
    request_counts: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)


def _opcode_name(opcode: int) -> str:
    try:
        return CoreOpcode(opcode).name
    except ValueError:
        return f"EXTENSION_{opcode}" if opcode >= 128 else f"CORE_{opcode}"


class ReplayRunner:
    @staticmethod
    def _decode_hex(value: str) -> bytes:
        cleaned = _HEX_CLEAN.sub("", value)
        if len(cleaned) % 2 == 1:
            cleaned = cleaned[:-1]
        if not cleaned:
            return b""
        return bytes.fromhex(cleaned)

    def _parse_line(self, line_no: int, line: str) -> ReplayEvent | None:
        stripped = line.strip()
        if not stripped:
            return None
        obj = json.loads(stripped)
        if not isinstance(obj, dict):
            raise ValueError(f"expected an object, got {type(obj).__name__}")
        direction = obj.get("dir") or obj.get("direction") or "unknown"
        hex_value = obj.get("payload_hex") or obj.get("hex") or ""
        return ReplayEvent(line=line_no, direction=direction, payload=self._decode_hex(str(hex_value)))

    def parse(self, transcript_path: Path, errors: list[str] | None = None) -> list[ReplayEvent]:
        """Events in file order. Malformed lines are skipped and noted in ``errors``."""
        events: list[ReplayEvent] = []
        for idx, line in enumerate(transcript_path.read_text(encoding="utf-8").splitlines(), start=1):
            try:
                event = self._parse_line(idx, line)
            except ValueError as exc:
                if errors is not None:
                    errors.append(f"invalid_event_line:{idx}: {exc}")
                continue
            if event is not None:
                events.append(event)
        return events

    @staticmethod
    def _read_setup_request(payload: bytes, report: ReplayReport) -> ByteOrder | None:
        if len(payload) < SETUP_REQUEST_SIZE or payload[0] not in (0x6C, 0x42):
            report.errors.append("invalid_setup_request")
            return None
        order = ByteOrder.LITTLE if payload[0] == 0x6C else ByteOrder.BIG
        (name_len,) = struct.unpack_from(order.struct_prefix + "H", payload, 6)
        report.byte_order = order.value
        name = payload[SETUP_REQUEST_SIZE : SETUP_REQUEST_SIZE + name_len]
        report.auth_protocol = name.decode("latin-1") if name else ""
        return order

    @staticmethod
    def _count_requests(payload: bytes, order: ByteOrder, report: ReplayReport) -> None:
        offset = 0
        length_field = struct.Struct(order.struct_prefix + "H")
        while offset + 4 <= len(payload):
            opcode = payload[offset]
            (words,) = length_field.unpack_from(payload, offset + 2)
            name = _opcode_name(opcode)
            report.request_counts[name] = report.request_counts.get(name, 0) + 1
            if words == 0:
                break
            offset += 4 * words

    @staticmethod
    def _setup_reply_size(buffer: bytes, order: ByteOrder) -> int | None:
        if len(buffer) < SETUP_REPLY_HEADER_SIZE:
            return None
        return SETUP_REPLY_HEADER_SIZE + decode_reply_header(buffer, order).body_size

    def run(self, transcript_path: Path, strict: bool = True) -> ReplayReport:
        report = ReplayReport()
        events = self.parse(transcript_path, report.errors)
        report.total_events = len(events)

        order: ByteOrder | None = None
        request_seen = False
        setup_buffer = b""
        setup_done = False

        for event in events:
            payload = event.payload
            report.raw_bytes_total += len(payload)

            if event.direction == CLIENT_TO_SERVER:
                report.client_to_server_events += 1
                if not request_seen:
                    request_seen = True
                    order = self._read_setup_request(payload, report)
                elif order is not None:
                    self._count_requests(payload, order, report)
            elif event.direction == SERVER_TO_CLIENT:
                report.server_to_client_events += 1
                if order is None or setup_done:
                    continue
                setup_buffer += payload
                size = self._setup_reply_size(setup_buffer, order)
                if size is None or len(setup_buffer) < size:
                    continue
                setup_done = True
                self._decode_setup(setup_buffer[:size], order, report)

        if strict:
            if not request_seen:
                report.errors.append("missing_setup_request")
            if not setup_done:
                report.errors.append("missing_setup_reply")

        return report

    @staticmethod
    def _decode_setup(buffer: bytes, order: ByteOrder, report: ReplayReport) -> None:
        report.setup_status = buffer[0]
        try:
            setup = decode_setup_reply(buffer, order)
        except (ProtocolError, TransportError) as exc:
            report.errors.append(f"setup_decode_failed: {exc}")
            return
        report.vendor = setup.vendor_name
        report.screen_count = len(setup.screens)
        report.pixmap_format_count = len(setup.pixmap_formats)
