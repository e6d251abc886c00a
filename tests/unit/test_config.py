import json
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "core"))

from xprobe_core.config import CONFIG_VERSION, AppConfig, config_path, load_config, save_config


class ConfigTests(unittest.TestCase):
    def test_load_default_when_missing(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "missing.json"
            cfg = load_config(path)
            self.assertIsInstance(cfg, AppConfig)
            self.assertEqual(cfg.display.fallback_name, ":0")
            self.assertIsNone(cfg.display.auth_file)
            self.assertTrue(cfg.probe.query_extensions)
            self.assertEqual(cfg.output.format, "text")

    def test_save_and_reload(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            cfg = load_config(path)
            cfg.display.fallback_name = ":2"
            cfg.probe.byte_order = "big"
            cfg.output.format = "json"
            save_config(cfg, path)
            reloaded = load_config(path)
            self.assertEqual(reloaded.display.fallback_name, ":2")
            self.assertEqual(reloaded.probe.byte_order, "big")
            self.assertEqual(reloaded.output.format, "json")

    def test_unparsable_file_gives_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text("{not json", encoding="utf-8")
            self.assertEqual(load_config(path), AppConfig())

    def test_invalid_values_are_normalized(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            raw = {
                "config_version": 1,
                "display": {"fallback_name": "nocolon"},
                "probe": {"byte_order": "middle"},
                "output": {"format": "xml"},
                "diagnostics": {"keep_log_files": 0},
            }
            path.write_text(json.dumps(raw), encoding="utf-8")
            cfg = load_config(path)
            self.assertEqual(cfg.display.fallback_name, ":0")
            self.assertEqual(cfg.probe.byte_order, "little")
            self.assertEqual(cfg.output.format, "text")
            self.assertEqual(cfg.diagnostics.keep_log_files, 2)

    def test_unversioned_file_is_stamped(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"output": {"format": "json"}}), encoding="utf-8")
            cfg = load_config(path)
            self.assertEqual(cfg.config_version, CONFIG_VERSION)
            self.assertEqual(cfg.output.format, "json")

    def test_non_object_section_uses_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            raw = {"config_version": 1, "display": ":1", "probe": ["big_requests"], "output": {"format": "json"}}
            path.write_text(json.dumps(raw), encoding="utf-8")
            cfg = load_config(path)
            self.assertEqual(cfg.display.fallback_name, ":0")
            self.assertTrue(cfg.probe.big_requests)
            self.assertEqual(cfg.output.format, "json")

    def test_config_dir_override(self):
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch.dict(os.environ, {"XPROBE_CONFIG_DIR": tmp}):
                self.assertEqual(config_path(), Path(tmp) / "config.json")


if __name__ == "__main__":
    unittest.main()
