"""Renderer package for probe report output."""

from .models import ProbeReport
from .report import extension_line, format_release_number, render_json, render_text, report_to_dict

__all__ = [
    "ProbeReport",
    "extension_line",
    "format_release_number",
    "render_json",
    "render_text",
    "report_to_dict",
]
