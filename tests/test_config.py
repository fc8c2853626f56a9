import os
import unittest
from datetime import datetime
from pathlib import Path
from tempfile import TemporaryDirectory

from thesis_assembler import config


class ConfigPathTests(unittest.TestCase):
    def test_output_files(self) -> None:
        self.assertEqual(config.DEFAULT_OUTPUT_PATH, config.OUTPUT_DIR / "thesis.docx")
        self.assertEqual(config.MAPPING_OUTPUT_PATH, config.OUTPUT_DIR / "template_mapping.json")
        self.assertEqual(config.TITLE_PROFILES_PATH, config.OUTPUT_DIR / "title_profiles.json")

    def test_project_root_holds_package(self) -> None:
        self.assertTrue((config.PROJECT_ROOT / "thesis_assembler" / "config.py").is_file())
        self.assertEqual(config.LOG_DIR.parent, config.PROJECT_ROOT)

    def test_engine_defaults(self) -> None:
        self.assertEqual(config.DEFAULT_HEADING_STYLE_IDS, {1: "2", 2: "4", 3: "5"})
        self.assertEqual(config.DEFAULT_TITLE_PROFILE, "zh_cn")
        self.assertEqual(config.BOOKMARK_ID_START, 60000)
        self.assertEqual(config.FIELD_PLACEHOLDER_TEXT, "1")

    def test_placeholder_texts(self) -> None:
        self.assertEqual(config.IMAGE_PLACEHOLDER_TEXT, "[图片占位]")
        self.assertEqual(config.CONTENT_PLACEHOLDER_TEXT, "[内容待生成]")
        self.assertEqual(config.TABLE_PLACEHOLDER_TEXT, "[表格占位]")
        self.assertEqual((config.FIGURE_LABEL, config.TABLE_LABEL), ("图", "表"))


class RunLogFileTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = TemporaryDirectory()
        self._original = (config.LOG_DIR, config.OUTPUT_DIR)
        config.LOG_DIR = Path(self._tmpdir.name) / "logs"
        config.OUTPUT_DIR = Path(self._tmpdir.name) / "output"

    def tearDown(self) -> None:
        config.LOG_DIR, config.OUTPUT_DIR = self._original
        self._tmpdir.cleanup()

    def _aged_log(self, ts: datetime, age_days: float, now: datetime) -> Path:
        path = config.build_log_path(ts)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("command: assemble\n", encoding="utf-8")
        stamp = now.timestamp() - age_days * 86400
        os.utime(path, (stamp, stamp))
        return path

    def test_log_name(self) -> None:
        path = config.build_log_path(datetime(2024, 1, 2, 3, 4, 5))
        self.assertEqual(path, config.LOG_DIR / "thesis_assembler_20240102_030405.log")
        self.assertTrue(config.build_log_path().name.startswith("thesis_assembler_"))

    def test_ensure_base_dirs_creates_both(self) -> None:
        config.ensure_base_dirs()
        self.assertTrue(config.OUTPUT_DIR.is_dir())
        self.assertTrue(config.LOG_DIR.is_dir())

    def test_default_retention(self) -> None:
        now = datetime(2024, 3, 10, 12, 0, 0)
        kept = self._aged_log(datetime(2024, 3, 7), config.LOG_RETENTION_DAYS - 1, now)
        expired = self._aged_log(datetime(2024, 3, 1), config.LOG_RETENTION_DAYS + 1, now)
        foreign = config.LOG_DIR / "template_parser_old.log"
        foreign.write_text("x", encoding="utf-8")
        os.utime(foreign, (0, 0))

        self.assertEqual(config.cleanup_logs(now=now), 1)
        self.assertTrue(kept.exists())
        self.assertFalse(expired.exists())
        self.assertTrue(foreign.exists())

    def test_zero_retention_keeps_everything(self) -> None:
        now = datetime(2024, 3, 10)
        path = self._aged_log(datetime(2023, 1, 1), 400, now)
        self.assertEqual(config.cleanup_logs(0, now=now), 0)
        self.assertTrue(path.exists())


if __name__ == "__main__":
    unittest.main()
