"""Persistent probe settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


CONFIG_VERSION = 1
CONFIG_DIR_ENV = "XPROBE_CONFIG_DIR"

OUTPUT_FORMATS = ("text", "json")
BYTE_ORDERS = ("little", "big")
SECTIONS = ("display", "probe", "output", "diagnostics")


@dataclass
class DisplayConfig:
    fallback_name: str = ":0"
    auth_file: str | None = None


@dataclass
class ProbeConfig:
    query_extensions: bool = True
    query_font_path: bool = True
    big_requests: bool = True
    byte_order: str = "little"


@dataclass
class OutputConfig:
    format: str = "text"


@dataclass
class DiagnosticsConfig:
    keep_log_files: int = 7
    max_bundle_mb: int = 20


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    display: DisplayConfig = field(default_factory=DisplayConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)


DEFAULT_CONFIG = AppConfig()


def config_root() -> Path:
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "xprobe"


def config_path() -> Path:
    return config_root() / "config.json"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _normalize_display(cfg: AppConfig) -> None:
    if not isinstance(cfg.display.fallback_name, str) or ":" not in cfg.display.fallback_name:
        cfg.display.fallback_name = ":0"
    if cfg.display.auth_file is not None and not str(cfg.display.auth_file).strip():
        cfg.display.auth_file = None


def _normalize_probe(cfg: AppConfig) -> None:
    if cfg.probe.byte_order not in BYTE_ORDERS:
        cfg.probe.byte_order = "little"
    cfg.probe.query_extensions = bool(cfg.probe.query_extensions)
    cfg.probe.query_font_path = bool(cfg.probe.query_font_path)
    cfg.probe.big_requests = bool(cfg.probe.big_requests)


def _normalize_output(cfg: AppConfig) -> None:
    if cfg.output.format not in OUTPUT_FORMATS:
        cfg.output.format = "text"


def _normalize_diagnostics(cfg: AppConfig) -> None:
    cfg.diagnostics.keep_log_files = max(2, int(cfg.diagnostics.keep_log_files))
    cfg.diagnostics.max_bundle_mb = max(1, int(cfg.diagnostics.max_bundle_mb))


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    """Bring ``raw`` to the current schema.

    Only one schema exists so far. Files written without a version, or with a
    section that is not an object, load with that section's defaults.
    """
    data = dict(raw)
    for section in SECTIONS:
        if not isinstance(data.get(section), dict):
            data[section] = {}
    data["config_version"] = CONFIG_VERSION
    return data


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()

    data = _migrate(raw)
    cfg = AppConfig(
        config_version=int(data.get("config_version", CONFIG_VERSION)),
        display=_merge(DisplayConfig, data.get("display", {})),
        probe=_merge(ProbeConfig, data.get("probe", {})),
        output=_merge(OutputConfig, data.get("output", {})),
        diagnostics=_merge(DiagnosticsConfig, data.get("diagnostics", {})),
    )

    _normalize_display(cfg)
    _normalize_probe(cfg)
    _normalize_output(cfg)
    _normalize_diagnostics(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
