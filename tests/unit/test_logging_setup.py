import io
import json
import logging
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "display_protocol"))
sys.path.insert(0, str(ROOT / "packages" / "renderer"))

from xprobe_core.logging_setup import LOG_FILE, configure_logging, log_dir, reset_logging
from xprobe_display.locator import default_display_name


class LoggingSetupTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        env = mock.patch.dict(os.environ, {"XPROBE_CONFIG_DIR": self._tmp.name})
        env.start()
        self.addCleanup(env.stop)
        reset_logging()
        self.addCleanup(reset_logging)
        self.stderr = io.StringIO()

    def tearDown(self):
        self._tmp.cleanup()

    def _file_rows(self):
        reset_logging()
        lines = (log_dir() / LOG_FILE).read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines]

    def test_display_fallback_reaches_stderr_and_file(self):
        configure_logging(stream=self.stderr)
        default_display_name({})

        self.assertIn("WARNING: no DISPLAY environment variable found", self.stderr.getvalue())
        events = [row.get("event") for row in self._file_rows()]
        self.assertIn("display_fallback", events)

    def test_info_stays_out_of_stderr(self):
        configure_logging(stream=self.stderr)
        logging.getLogger("xprobe_display.directory").info("server lists 3 extensions", extra={"event": "extensions_listed"})

        self.assertEqual(self.stderr.getvalue(), "")
        rows = self._file_rows()
        self.assertEqual(rows[-1]["event"], "extensions_listed")
        self.assertEqual(rows[-1]["level"], "INFO")

    def test_errors_the_cli_prints_are_not_echoed(self):
        configure_logging(stream=self.stderr)
        logging.getLogger("xprobe").error("info failed: boom", extra={"event": "command_failed"})
        logging.getLogger("xprobe_core.session").error("font path failed", extra={"event": "query_failed"})

        self.assertEqual(self.stderr.getvalue(), "")
        self.assertEqual([row["event"] for row in self._file_rows()][-2:], ["command_failed", "query_failed"])

    def test_console_can_be_disabled(self):
        configure_logging(console_level=None, stream=self.stderr)
        default_display_name({})
        self.assertEqual(self.stderr.getvalue(), "")

    def test_second_call_keeps_existing_handlers(self):
        first = configure_logging(stream=self.stderr)
        count = len(first.handlers)
        configure_logging(stream=io.StringIO())
        self.assertEqual(len(logging.getLogger("xprobe").handlers), count)


if __name__ == "__main__":
    unittest.main()
