"""One-shot probe session that connects to a display and collects its report."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

from xprobe_display import (
    ByteOrder,
    Connection,
    Credential,
    DisplayAddress,
    DisplayTransport,
    ProtocolError,
    TransportError,
    XProbeError,
    credential_path,
    default_display_name,
    get_font_path,
    iter_extensions,
    max_request_bytes,
    parse_display,
    resolve_credential,
)
from xprobe_display.models import ProtocolState
from xprobe_renderer import ProbeReport

from .config import AppConfig

logger = logging.getLogger(__name__)

MAX_EVENTS = 1000


class ProbeSession:
    def __init__(
        self,
        config: AppConfig | None = None,
        env: Mapping[str, str] | None = None,
        transport_factory: Callable[[], DisplayTransport] = DisplayTransport,
    ) -> None:
        self.config = config or AppConfig()
        self.env = os.environ if env is None else env
        self.state = ProtocolState.DISCONNECTED
        self._transport_factory = transport_factory
        self._events: list[dict[str, Any]] = []

    def recent_events(self, limit: int = 200) -> list[dict[str, Any]]:
        return self._events[-limit:]

    def _log_event(self, event: str, **fields: Any) -> None:
        row = {
            "ts_utc": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "state": self.state.value,
        }
        row.update(fields)
        self._events.append(row)
        if len(self._events) > MAX_EVENTS:
            self._events = self._events[-MAX_EVENTS:]

    def _enter_state(self, state: ProtocolState) -> None:
        self.state = state
        self._log_event("state_changed")

    def resolve_address(self, display_name: str | None = None) -> DisplayAddress:
        name = display_name or default_display_name(self.env, self.config.display.fallback_name)
        return parse_display(name)

    def auth_file(self, auth_path: str | Path | None = None) -> Path:
        if auth_path:
            return Path(auth_path).expanduser()
        if self.config.display.auth_file:
            return Path(self.config.display.auth_file).expanduser()
        return credential_path(self.env)

    def _credential(self, address: DisplayAddress, auth_path: str | Path | None, anonymous: bool) -> Credential | None:
        if anonymous:
            self._log_event("credential_skipped")
            return None
        path = self.auth_file(auth_path)
        credential = resolve_credential(address, path)
        self._log_event("credential_resolved", protocol=credential.protocol_name, path=str(path))
        return credential

    def _connect(self, address: DisplayAddress, credential: Credential | None) -> Connection:
        byte_order = ByteOrder(self.config.probe.byte_order)
        self.state = ProtocolState.CONNECTING
        self._log_event("connect_start", display=str(address), byte_order=byte_order.value)
        try:
            conn = Connection.open(
                address,
                credential,
                byte_order=byte_order,
                transport=self._transport_factory(),
                on_state=self._enter_state,
            )
        except XProbeError as exc:
            self.state = ProtocolState.FAILED
            self._log_event("connect_failed", error=str(exc), error_type=type(exc).__name__)
            raise
        self.state = ProtocolState.READY
        self._log_event("connect_ok", vendor=conn.setup.vendor_name, screens=len(conn.setup.screens))
        return conn

    def _soft_failure(self, report: ProbeReport, what: str, exc: XProbeError) -> None:
        message = f"{what}: {exc}"
        report.errors.append(message)
        self._log_event("query_failed", what=what, error=str(exc))
        logger.error("%s failed: %s", what, exc, extra={"event": "query_failed"})

    def run(
        self,
        display_name: str | None = None,
        auth_path: str | Path | None = None,
        anonymous: bool = False,
        query_extensions: bool = True,
    ) -> ProbeReport:
        """Connect, collect setup data and extension versions, then close.

        Errors before the handshake completes propagate. Later failures are
        collected in ``report.errors`` and stop the remaining queries only
        when the stream itself broke.
        """
        address = self.resolve_address(display_name)
        credential = self._credential(address, auth_path, anonymous)
        probe_cfg = self.config.probe

        with self._connect(address, credential) as conn:
            report = ProbeReport(
                address=address,
                setup=conn.setup,
                max_request_bytes=4 * conn.setup.max_request_length,
            )
            try:
                report.max_request_bytes = max_request_bytes(conn, use_big_requests=probe_cfg.big_requests)
                if probe_cfg.query_font_path:
                    try:
                        report.font_paths = get_font_path(conn)
                    except ProtocolError as exc:
                        self._soft_failure(report, "font path", exc)
                if query_extensions and probe_cfg.query_extensions:
                    try:
                        for record in iter_extensions(conn):
                            report.extensions.append(record)
                    except ProtocolError as exc:
                        self._soft_failure(report, "extensions", exc)
            except TransportError as exc:
                self._soft_failure(report, "connection", exc)

        self.state = ProtocolState.CLOSED
        self._log_event(
            "probe_complete",
            extensions=len(report.extensions),
            font_paths=len(report.font_paths),
            errors=len(report.errors),
        )
        return report
