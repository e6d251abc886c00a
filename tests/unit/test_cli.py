import io
import json
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "apps" / "cli"))
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "display_protocol"))
sys.path.insert(0, str(ROOT / "packages" / "renderer"))

from xprobe_app import cli
from xprobe_app.cli import build_parser, main
from xprobe_display.errors import CredentialNotFound
from xprobe_display.handshake import decode_setup_reply
from xprobe_display.locator import parse_display
from xprobe_display.models import ExtensionRecord
from xprobe_renderer import ProbeReport

from x11_fixtures import setup_reply


def _report(errors=None):
    return ProbeReport(
        address=parse_display(":0"),
        setup=decode_setup_reply(setup_reply()),
        max_request_bytes=262140,
        font_paths=["built-ins"],
        extensions=[ExtensionRecord("XTEST", 132, 2, 2)],
        errors=list(errors or []),
    )


class CliParserTests(unittest.TestCase):
    def test_info_command(self):
        parser = build_parser()
        args = parser.parse_args(["info", "--display", "host:1", "--auth-file", "/tmp/a", "--json"])
        self.assertEqual(args.command, "info")
        self.assertEqual(args.display, "host:1")
        self.assertEqual(args.auth_file, "/tmp/a")
        self.assertTrue(args.json)
        self.assertFalse(args.anonymous)
        self.assertFalse(args.no_extensions)

    def test_extensions_command(self):
        args = build_parser().parse_args(["extensions", "--anonymous"])
        self.assertEqual(args.command, "extensions")
        self.assertTrue(args.anonymous)

    def test_doctor_command(self):
        args = build_parser().parse_args(["doctor", "--export", "--out-dir", "/tmp/x"])
        self.assertTrue(args.export)
        self.assertEqual(args.out_dir, "/tmp/x")

    def test_replay_command(self):
        args = build_parser().parse_args(["replay", "--transcript", "sample.jsonl"])
        self.assertEqual(args.command, "replay")
        self.assertEqual(args.transcript, "sample.jsonl")


class CliMainTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        env = mock.patch.dict(os.environ, {"XPROBE_CONFIG_DIR": self._tmp.name})
        env.start()
        self.addCleanup(env.stop)
        logging_patch = mock.patch.object(cli, "configure_logging")
        logging_patch.start()
        self.addCleanup(logging_patch.stop)
        hooks_patch = mock.patch.object(cli, "install_crash_hooks")
        hooks_patch.start()
        self.addCleanup(hooks_patch.stop)

    def tearDown(self):
        self._tmp.cleanup()

    def _run(self, argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            rc = main(argv)
        return rc, out.getvalue(), err.getvalue()

    def test_info_prints_text_report(self):
        with mock.patch.object(cli, "ProbeSession") as session_cls:
            session_cls.return_value.run.return_value = _report()
            rc, out, err = self._run(["info", "--anonymous"])
        self.assertEqual(rc, 0)
        self.assertIn("Supported extensions: 1", out)
        self.assertEqual(err, "")
        session_cls.return_value.run.assert_called_once_with(
            display_name=None, auth_path=None, anonymous=True, query_extensions=True
        )

    def test_main_keeps_stderr_console_logging(self):
        with mock.patch.object(cli, "ProbeSession") as session_cls:
            session_cls.return_value.run.return_value = _report()
            self._run(["info", "--anonymous"])
        cli.configure_logging.assert_called_once_with(keep_files=7)

    def test_info_json_and_soft_errors(self):
        with mock.patch.object(cli, "ProbeSession") as session_cls:
            session_cls.return_value.run.return_value = _report(errors=["font path: failed"])
            rc, out, err = self._run(["info", "--json"])
        self.assertEqual(rc, 0)
        self.assertEqual(json.loads(out)["extensions"][0]["name"], "XTEST")
        self.assertIn("ERROR: font path: failed", err)

    def test_unrecoverable_error_exits_one(self):
        with mock.patch.object(cli, "ProbeSession") as session_cls:
            session_cls.return_value.run.side_effect = CredentialNotFound("no record for box:0")
            rc, out, err = self._run(["info"])
        self.assertEqual(rc, 1)
        self.assertEqual(out, "")
        self.assertIn("ERROR: no record for box:0", err)

    def test_extensions_lines(self):
        with mock.patch.object(cli, "ProbeSession") as session_cls:
            session_cls.return_value.run.return_value = _report()
            rc, out, _err = self._run(["extensions"])
        self.assertEqual(rc, 0)
        self.assertIn("  * XTEST", out)
        self.assertIn(" v2.2", out)

    def test_replay_exit_codes(self):
        transcript = ROOT / "tests" / "transcripts" / "x11_setup_and_queries.jsonl"
        rc, out, _err = self._run(["replay", "--transcript", str(transcript)])
        self.assertEqual(rc, 0)
        self.assertTrue(json.loads(out)["success"])

        empty = Path(self._tmp.name) / "empty.jsonl"
        empty.write_text("", encoding="utf-8")
        rc, _out, _err = self._run(["replay", "--transcript", str(empty)])
        self.assertEqual(rc, 2)
        rc, _out, _err = self._run(["replay", "--transcript", str(empty), "--no-strict"])
        self.assertEqual(rc, 0)

    def test_replay_malformed_transcript_reports_instead_of_crashing(self):
        broken = Path(self._tmp.name) / "broken.jsonl"
        broken.write_text("{not json\n", encoding="utf-8")
        rc, out, _err = self._run(["replay", "--transcript", str(broken), "--no-strict"])
        self.assertEqual(rc, 2)
        payload = json.loads(out)
        self.assertFalse(payload["success"])
        self.assertTrue(payload["errors"][0].startswith("invalid_event_line:1"))

    def test_list_displays(self):
        with mock.patch.object(cli.DisplayTransport, "discover", return_value=[]):
            rc, out, _err = self._run(["list-displays"])
        self.assertEqual(rc, 0)
        self.assertEqual(json.loads(out), [])


if __name__ == "__main__":
    unittest.main()
