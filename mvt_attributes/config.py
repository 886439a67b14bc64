from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal


BASE_DIR = Path(__file__).resolve().parent.parent
STORAGE_DIR = BASE_DIR / "storage"
EXPORT_DIR = STORAGE_DIR / "exports"


@dataclass(frozen=True)
class ExportFormat:
    """An export artifact flavour and how it is served or saved."""

    name: Literal["csv", "markdown"]
    extension: str
    media_type: str


CSV_FORMAT = ExportFormat(name="csv", extension="csv", media_type="text/csv;charset=utf-8")
MARKDOWN_FORMAT = ExportFormat(
    name="markdown",
    extension="md",
    media_type="text/markdown;charset=utf-8",
)

EXPORT_FORMATS: dict[str, ExportFormat] = {
    "csv": CSV_FORMAT,
    "markdown": MARKDOWN_FORMAT,
    "md": MARKDOWN_FORMAT,
}


APP_CONFIG = {
    "request_timeout": float(os.getenv("MVT_ATTRIBUTES_TIMEOUT", "30")),
    "user_agent": "mvt-attributes/0.1",
    "default_sample_limit": 5,
    "csv_sample_limit": 10,
    "export_dir": EXPORT_DIR,
    "server": {
        "host": "127.0.0.1",
        "port": int(os.getenv("MVT_ATTRIBUTES_PORT", "8091")),
    },
}
