import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "display_protocol"))

from xprobe_display.errors import InputError
from xprobe_display.locator import default_display_name, parse_display


class ParseDisplayTests(unittest.TestCase):
    def test_local_display_uses_unix_socket(self):
        addr = parse_display(":0")
        self.assertEqual(addr.host, "")
        self.assertEqual(addr.sequence_number, 0)
        self.assertEqual(addr.screen_number, 0)
        self.assertTrue(addr.is_unix_transport)
        self.assertEqual(addr.socket_path, "/tmp/.X11-unix/X0")

    def test_remote_display_with_screen(self):
        addr = parse_display("host:1.2")
        self.assertEqual(addr.host, "host")
        self.assertEqual(addr.sequence_number, 1)
        self.assertEqual(addr.screen_number, 2)
        self.assertFalse(addr.is_unix_transport)
        self.assertEqual(addr.tcp_port, 6001)

    def test_unix_suffix_is_stripped(self):
        addr = parse_display("host/unix:3")
        self.assertEqual(addr.host, "host")
        self.assertEqual(addr.sequence_number, 3)
        self.assertTrue(addr.is_unix_transport)

    def test_bare_unix_suffix(self):
        addr = parse_display("/unix:7.1")
        self.assertEqual(addr.host, "")
        self.assertEqual(addr.screen_number, 1)
        self.assertTrue(addr.is_unix_transport)

    def test_host_is_text_before_last_colon(self):
        addr = parse_display("::1:0")
        self.assertEqual(addr.host, "::1")
        self.assertEqual(addr.sequence_number, 0)
        self.assertFalse(addr.is_unix_transport)

    def test_screen_requires_dot_separator(self):
        with self.assertRaises(InputError):
            parse_display(":0x")

    def test_rejects_bad_names(self):
        for text in ("", "host", "host:", ":a", ":1.", ":1.b", ":-1", ":1.2.3"):
            with self.subTest(text=text):
                with self.assertRaises(InputError):
                    parse_display(text)

    def test_input_error_is_value_error(self):
        with self.assertRaises(ValueError):
            parse_display("nocolon")

    def test_str_round_trips(self):
        self.assertEqual(str(parse_display("host/unix:3")), "host/unix:3.0")
        self.assertEqual(str(parse_display("host:1.2")), "host:1.2")


class DefaultDisplayTests(unittest.TestCase):
    def test_prefers_environment(self):
        self.assertEqual(default_display_name({"DISPLAY": "host:5"}), "host:5")

    def test_falls_back_with_warning(self):
        with self.assertLogs("xprobe_display.locator", level="WARNING") as logs:
            name = default_display_name({}, fallback=":9")
        self.assertEqual(name, ":9")
        self.assertIn("DISPLAY", logs.output[0])


if __name__ == "__main__":
    unittest.main()
