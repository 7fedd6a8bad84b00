from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from doc_prescreen.models import RiskAssessment, ValidationResult

LOGGER = logging.getLogger(__name__)

DEFAULT_DIR = "snapshots"
DEFAULT_FILE = "document_validation.json"


def _iso_utc_seconds() -> str:
    """UTC ISO8601 to seconds with 'Z' suffix (no microseconds)."""
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


@dataclass
class _ResolvedPaths:
    out_dir_path: Path
    filename: str

    @property
    def dest(self) -> Path:
        return self.out_dir_path / self.filename


def _resolve_paths(
    out_dir: Optional[str | os.PathLike[str]],
    filename: Optional[str],
) -> _ResolvedPaths:
    """Explicit args > PRESCREEN_SNAPSHOT_DIR / PRESCREEN_SNAPSHOT_FILE > defaults."""
    out_dir_path = Path(out_dir or os.getenv("PRESCREEN_SNAPSHOT_DIR") or DEFAULT_DIR)
    name = filename or os.getenv("PRESCREEN_SNAPSHOT_FILE") or DEFAULT_FILE
    return _ResolvedPaths(out_dir_path=out_dir_path, filename=name)


def build_snapshot(results: Mapping[str, ValidationResult], risk: RiskAssessment) -> Dict[str, Any]:
    """Serializable view of one validation run."""
    return {
        "perDocument": {k: r.model_dump(by_alias=True, exclude_none=True) for k, r in results.items()},
        "overallRisk": risk.model_dump(),
        "generatedAt": _iso_utc_seconds(),
    }


def persist_snapshot(
    results: Mapping[str, ValidationResult],
    risk: RiskAssessment,
    out_dir: Optional[str | os.PathLike[str]] = None,
    filename: Optional[str] = None,
) -> Path:
    """Write the snapshot JSON (overwriting) and return its path."""
    resolved = _resolve_paths(out_dir=out_dir, filename=filename)
    resolved.out_dir_path.mkdir(parents=True, exist_ok=True)

    text = json.dumps(build_snapshot(results, risk), ensure_ascii=False, indent=2)
    resolved.dest.write_text(text, encoding="utf-8")
    LOGGER.info("Saved validation snapshot to %s (%d bytes)", resolved.dest, len(text.encode("utf-8")))
    return resolved.dest
