"""Diagnostics export helpers for local support bundles."""

from __future__ import annotations

import json
import os
import platform
import re
import socket
import tempfile
import zipfile
from contextlib import closing
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from xprobe_display import DisplayTransport, InputError, parse_display
from xprobe_display.errors import CredentialNotFound
from xprobe_display.locator import default_display_name
from xprobe_display.xauth import credential_path, iter_records

from .config import AppConfig, config_path
from .logging_setup import FAULT_FILE, log_dir


_SECRET_RE = re.compile(r"(token|secret|password|cookie|auth)", re.IGNORECASE)
REDACTED = "***REDACTED***"


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, Path):
        return str(value)
    return value


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if _SECRET_RE.search(k):
                out[k] = REDACTED
            else:
                out[k] = redact(v)
        return out
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def _display_section(cfg: AppConfig, env: Mapping[str, str]) -> dict[str, Any]:
    name = default_display_name(env, cfg.display.fallback_name)
    section: dict[str, Any] = {"name": name, "from_env": bool(env.get("DISPLAY"))}
    try:
        address = parse_display(name)
    except InputError as exc:
        section["error"] = str(exc)
        return section
    section["address"] = asdict(address)
    section["transport"] = "unix" if address.is_unix_transport else "tcp"
    section["endpoint"] = address.socket_path if address.is_unix_transport else f"{address.host}:{address.tcp_port}"
    return section


def _credential_section(cfg: AppConfig, env: Mapping[str, str], display: dict[str, Any]) -> dict[str, Any]:
    if cfg.display.auth_file:
        path = Path(cfg.display.auth_file).expanduser()
    else:
        path = credential_path(env)
    section: dict[str, Any] = {"file": str(path), "file_exists": path.exists(), "records": 0, "match": None}
    address = display.get("address")
    if not section["file_exists"]:
        return section

    host = address["host"] if address else ""
    seq = address["sequence_number"] if address else -1
    try:
        with closing(iter_records(path)) as records:
            for record in records:
                section["records"] += 1
                if section["match"] is None and address and record.matches(host or socket.gethostname(), seq):
                    section["match"] = record.protocol_name
    except CredentialNotFound as exc:
        section["error"] = str(exc)
    return section


def build_doctor_payload(cfg: AppConfig, env: Mapping[str, str] | None = None) -> dict[str, Any]:
    env = os.environ if env is None else env
    display = _display_section(cfg, env)
    servers = DisplayTransport.discover()
    return {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "config": redact(asdict(cfg)),
        "display": display,
        "credentials": _credential_section(cfg, env, display),
        "local_displays": [asdict(s) for s in servers],
    }


class DiagnosticsExporter:
    def __init__(self, app_name: str = "xprobe") -> None:
        self.app_name = app_name

    def bundle(
        self,
        cfg: AppConfig,
        doctor_payload: dict[str, Any],
        recent_probe_events: list[dict[str, Any]] | None = None,
        output_dir: Path | None = None,
    ) -> Path:
        output_base = output_dir or Path(tempfile.gettempdir())
        output_base.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        zip_path = output_base / f"xprobe-diagnostics-{stamp}.zip"

        config_file = config_path()
        logs = sorted(log_dir().glob("*.log*"))
        budget = cfg.diagnostics.max_bundle_mb * 1024 * 1024

        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            manifest = {
                "app": self.app_name,
                "created_utc": datetime.now(timezone.utc).isoformat(),
                "host": platform.platform(),
                "python": platform.python_version(),
                "config_path": str(config_file),
                "log_dir": str(log_dir()),
            }
            zf.writestr("manifest.json", json.dumps(manifest, indent=2, sort_keys=True))
            zf.writestr("doctor.json", json.dumps(redact(doctor_payload), indent=2, sort_keys=True, default=_jsonable))
            zf.writestr("config.redacted.json", json.dumps(redact(asdict(cfg)), indent=2, sort_keys=True))
            zf.writestr(
                "probe_events.json",
                json.dumps(redact(recent_probe_events or []), indent=2, sort_keys=True, default=_jsonable),
            )

            # Newest logs first until the size budget runs out.
            used = 0
            for item in sorted(logs, key=lambda p: p.stat().st_mtime, reverse=True):
                size = item.stat().st_size
                if used + size > budget:
                    continue
                used += size
                zf.write(item, arcname=f"logs/{item.name}")

            fault_file = log_dir() / FAULT_FILE
            if fault_file.exists() and fault_file not in logs:
                zf.write(fault_file, arcname=f"logs/{FAULT_FILE}")

        return zip_path
