import json
import os
import sys
import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "display_protocol"))
sys.path.insert(0, str(ROOT / "packages" / "renderer"))

from xprobe_core.config import load_config
from xprobe_core.diagnostics import REDACTED, DiagnosticsExporter, build_doctor_payload, redact

from x11_fixtures import xauth_record


class DiagnosticsTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        patcher = mock.patch.dict(os.environ, {"XPROBE_CONFIG_DIR": str(self.tmp / "cfg")})
        patcher.start()
        self.addCleanup(patcher.stop)
        discover = mock.patch("xprobe_core.diagnostics.DisplayTransport.discover", return_value=[])
        discover.start()
        self.addCleanup(discover.stop)

    def tearDown(self):
        self._tmp.cleanup()

    def test_doctor_payload_reports_display_and_credential(self):
        auth = self.tmp / "xauth"
        auth.write_bytes(xauth_record(0, "box", "3", "MIT-MAGIC-COOKIE-1", b"\x42" * 16))
        cfg = load_config(self.tmp / "missing.json")
        payload = build_doctor_payload(cfg, env={"DISPLAY": "box:3", "XAUTHORITY": str(auth)})

        self.assertEqual(payload["display"]["name"], "box:3")
        self.assertEqual(payload["display"]["transport"], "tcp")
        self.assertEqual(payload["display"]["endpoint"], "box:6003")
        self.assertTrue(payload["credentials"]["file_exists"])
        self.assertEqual(payload["credentials"]["records"], 1)
        self.assertEqual(payload["credentials"]["match"], "MIT-MAGIC-COOKIE-1")
        self.assertNotIn("42424242", json.dumps(payload))

    def test_doctor_payload_reports_parse_error(self):
        cfg = load_config(self.tmp / "missing.json")
        payload = build_doctor_payload(cfg, env={"DISPLAY": "bogus", "XAUTHORITY": str(self.tmp / "none")})
        self.assertIn("error", payload["display"])
        self.assertFalse(payload["credentials"]["file_exists"])

    def test_redaction(self):
        data = {"auth_file": "/x", "nested": [{"cookie": "abc", "name": "ok"}], "password": 1}
        out = redact(data)
        self.assertEqual(out["auth_file"], REDACTED)
        self.assertEqual(out["nested"][0]["cookie"], REDACTED)
        self.assertEqual(out["nested"][0]["name"], "ok")
        self.assertEqual(out["password"], REDACTED)

    def test_bundle_exports_zip(self):
        cfg = load_config(self.tmp / "missing.json")
        doctor = build_doctor_payload(cfg, env={"DISPLAY": ":0", "XAUTHORITY": str(self.tmp / "none")})
        exporter = DiagnosticsExporter()
        events = [{"event": "connect_start", "secret": "hidden"}]

        bundle = exporter.bundle(cfg=cfg, doctor_payload=doctor, recent_probe_events=events, output_dir=self.tmp / "out")
        self.assertTrue(bundle.exists())

        with zipfile.ZipFile(bundle, "r") as zf:
            names = set(zf.namelist())
            self.assertIn("manifest.json", names)
            self.assertIn("doctor.json", names)
            self.assertIn("config.redacted.json", names)
            self.assertIn("probe_events.json", names)
            probe_events = json.loads(zf.read("probe_events.json"))
            self.assertEqual(probe_events[0]["secret"], REDACTED)
            config = json.loads(zf.read("config.redacted.json"))
            self.assertEqual(config["display"]["auth_file"], REDACTED)


if __name__ == "__main__":
    unittest.main()
