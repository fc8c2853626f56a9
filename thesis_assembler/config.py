from __future__ import annotations

from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
OUTPUT_DIR = PROJECT_ROOT / "output"
LOG_DIR = PROJECT_ROOT / "logs"
DEFAULT_OUTPUT_PATH = OUTPUT_DIR / "thesis.docx"
MAPPING_OUTPUT_PATH = OUTPUT_DIR / "template_mapping.json"
TITLE_PROFILES_PATH = OUTPUT_DIR / "title_profiles.json"

LOG_FILE_PREFIX = "thesis_assembler"
LOG_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# Used when styles.xml declares no outline levels at all.
DEFAULT_HEADING_STYLE_IDS = {1: "2", 2: "4", 3: "5"}
DEFAULT_TITLE_PROFILE = "zh_cn"

LOG_RETENTION_DAYS = 5

BOOKMARK_ID_START = 60000
MIN_NORMAL_TEXT_LENGTH = 10

IMAGE_PLACEHOLDER_TEXT = "[图片占位]"
CONTENT_PLACEHOLDER_TEXT = "[内容待生成]"
TABLE_PLACEHOLDER_TEXT = "[表格占位]"
FIELD_PLACEHOLDER_TEXT = "1"
FIGURE_LABEL = "图"
TABLE_LABEL = "表"


def ensure_base_dirs() -> None:
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def build_log_path(ts: datetime | None = None) -> Path:
    if ts is None:
        ts = datetime.now()
    name = f"{LOG_FILE_PREFIX}_{ts.strftime(LOG_TIMESTAMP_FORMAT)}.log"
    return LOG_DIR / name


def cleanup_logs(retention_days: int = LOG_RETENTION_DAYS, now: datetime | None = None) -> int:
    if retention_days <= 0:
        return 0
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
    except OSError:
        return 0
    base_time = now or datetime.now()
    cutoff = base_time.timestamp() - retention_days * 86400
    removed = 0
    for path in LOG_DIR.glob(f"{LOG_FILE_PREFIX}_*.log"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError:
            continue
    return removed
