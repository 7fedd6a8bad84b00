from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_VERIFY_URL = "http://localhost:5000/api/verify-document"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Process-level settings read from the environment (and .env)."""

    rules_path: Optional[str] = None
    extraction_strategy: str = "local"   # local | remote
    verify_service_url: str = DEFAULT_VERIFY_URL
    verify_timeout_s: float = 15.0
    max_workers: int = 4
    snapshot_dir: str = "snapshots"
    snapshot_file: str = "document_validation.json"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        strategy = (os.getenv("EXTRACTION_STRATEGY") or "local").strip().lower()
        if strategy not in ("local", "remote"):
            strategy = "local"
        return cls(
            rules_path=os.getenv("DOC_RULES_PATH") or None,
            extraction_strategy=strategy,
            verify_service_url=os.getenv("VERIFY_SERVICE_URL", DEFAULT_VERIFY_URL),
            verify_timeout_s=_float_env("VERIFY_TIMEOUT_S", 15.0),
            max_workers=max(1, _int_env("PRESCREEN_MAX_WORKERS", 4)),
            snapshot_dir=os.getenv("PRESCREEN_SNAPSHOT_DIR", "snapshots"),
            snapshot_file=os.getenv("PRESCREEN_SNAPSHOT_FILE", "document_validation.json"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
