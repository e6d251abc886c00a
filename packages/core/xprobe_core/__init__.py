"""Core services for settings, logging, probe sessions, and diagnostics."""

from .config import AppConfig, load_config, save_config
from .diagnostics import DiagnosticsExporter, build_doctor_payload
from .session import ProbeSession

__all__ = [
    "AppConfig",
    "DiagnosticsExporter",
    "ProbeSession",
    "build_doctor_payload",
    "load_config",
    "save_config",
]
