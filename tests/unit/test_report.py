import json
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "display_protocol"))
sys.path.insert(0, str(ROOT / "packages" / "renderer"))

from xprobe_display.handshake import decode_setup_reply
from xprobe_display.locator import parse_display
from xprobe_display.models import ExtensionRecord
from xprobe_renderer import ProbeReport, extension_line, format_release_number, render_json, render_text

from x11_fixtures import setup_reply


def _report():
    return ProbeReport(
        address=parse_display(":0"),
        setup=decode_setup_reply(setup_reply()),
        max_request_bytes=16777212,
        font_paths=["/usr/share/fonts/X11/misc", "built-ins"],
        extensions=[
            ExtensionRecord("BIG-REQUESTS", 133, 2, 0),
            ExtensionRecord("DAMAGE", 143),
        ],
    )


class ReleaseNumberTests(unittest.TestCase):
    def test_build_omitted_when_zero(self):
        self.assertEqual(format_release_number(12101004), "1.21.1.4")
        self.assertEqual(format_release_number(12013000), "1.20.13")
        self.assertEqual(format_release_number(11804000), "1.18.4")

    def test_zero(self):
        self.assertEqual(format_release_number(0), "0.0.0")


class TextReportTests(unittest.TestCase):
    def test_fields_are_dot_filled(self):
        text = render_text(_report())
        lines = text.splitlines()
        self.assertEqual(lines[0], "xprobe - X server information printer")
        vendor = next(line for line in lines if line.startswith("Vendor"))
        self.assertEqual(vendor, "Vendor" + "." * 39 + " The X.Org Foundation")
        self.assertIn("Release number" + "." * 31 + " 1.21.1.4", lines)
        self.assertIn("Maximum request length" + "." * 23 + " 16777212 bytes", lines)

    def test_sections(self):
        text = render_text(_report())
        self.assertIn("  * depth = 24, bits per pixel = 32, scanline pad = 32", text)
        self.assertIn("  Screen #0", text)
        self.assertIn("      * depth = 24, number of visuals: 576", text)
        self.assertIn("      * depth = 32, number of visuals: 24", text)
        self.assertIn("  * built-ins", text)
        self.assertIn("Supported extensions: 2", text)

    def test_event_mask_lines(self):
        lines = render_text(_report()).splitlines()
        key_press = next(line for line in lines if line.startswith("      Key press"))
        self.assertTrue(key_press.endswith(" yes"))
        owner = next(line for line in lines if line.startswith("      Owner grab button"))
        self.assertTrue(owner.endswith(" no"))
        self.assertEqual(len(key_press), 6 + 39 + 4)

    def test_extension_line(self):
        self.assertEqual(extension_line(ExtensionRecord("RANDR", 140, 1, 6)), "  * RANDR" + "." * 36 + " v1.6")
        self.assertTrue(extension_line(ExtensionRecord("DAMAGE", 143)).endswith(" unknown version"))


class JsonReportTests(unittest.TestCase):
    def test_json_payload(self):
        payload = json.loads(render_json(_report()))
        self.assertEqual(payload["address"]["display"], ":0.0")
        self.assertEqual(payload["setup"]["release_text"], "1.21.1.4")
        self.assertEqual(len(payload["setup"]["pixmap_formats"]), 7)
        self.assertIn("Key press", payload["setup"]["screens"][0]["events"])
        self.assertEqual(payload["extensions"][0]["version"], "v2.0")
        self.assertIsNone(payload["extensions"][1]["version"])


if __name__ == "__main__":
    unittest.main()
