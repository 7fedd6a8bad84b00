import json
from datetime import datetime
from pathlib import Path

import pytest

from doc_prescreen.models import ImageMetrics, RiskAssessment, ValidationResult
from doc_prescreen.tools.snapshot import build_snapshot, persist_snapshot


def _is_iso_seconds(ts: str) -> bool:
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        return dt.microsecond == 0 and ts.endswith("Z")
    except ValueError:
        return False


@pytest.fixture
def sample():
    results = {
        "passportPhoto": ValidationResult(
            key="passportPhoto",
            label="Passport Photograph",
            status="invalid",
            quality_issues=["Image appears too dark."],
            metrics=ImageMetrics(width=400, height=500, brightness=20.0, contrast=0.0, blur_score=0.0),
        ),
        "dobProof": ValidationResult(key="dobProof", label="Date of Birth Proof", status="optional-missing"),
    }
    risk = RiskAssessment(score=15, level="low", reasons=["Passport Photograph has potential image quality concerns."])
    return results, risk


def test_snapshot_shape_is_camel_case(sample):
    snap = build_snapshot(*sample)
    assert set(snap) == {"perDocument", "overallRisk", "generatedAt"}
    photo = snap["perDocument"]["passportPhoto"]
    assert photo["qualityIssues"] == ["Image appears too dark."]
    assert photo["metrics"]["blurScore"] == 0.0
    assert "backendScore" not in photo
    assert snap["overallRisk"] == {
        "score": 15,
        "level": "low",
        "reasons": ["Passport Photograph has potential image quality concerns."],
    }
    assert _is_iso_seconds(snap["generatedAt"])


def test_persist_writes_and_overwrites(tmp_path: Path, sample):
    out_dir = tmp_path / "snaps"
    first = persist_snapshot(*sample, out_dir=out_dir, filename="run.json")
    assert first == out_dir / "run.json"
    assert json.loads(first.read_text(encoding="utf-8"))["overallRisk"]["score"] == 15

    results, _ = sample
    second = persist_snapshot(results, RiskAssessment(score=0, level="low"), out_dir=out_dir, filename="run.json")
    assert second == first
    assert json.loads(second.read_text(encoding="utf-8"))["overallRisk"]["score"] == 0


def test_env_used_when_no_args(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, sample):
    monkeypatch.setenv("PRESCREEN_SNAPSHOT_DIR", str(tmp_path / "envsnaps"))
    monkeypatch.setenv("PRESCREEN_SNAPSHOT_FILE", "env.json")
    dest = persist_snapshot(*sample)
    assert dest == tmp_path / "envsnaps" / "env.json"
    assert dest.exists()


def test_args_beat_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, sample):
    monkeypatch.setenv("PRESCREEN_SNAPSHOT_DIR", str(tmp_path / "ignored"))
    dest = persist_snapshot(*sample, out_dir=tmp_path / "explicit", filename="x.json")
    assert dest.parent == tmp_path / "explicit"
    assert not (tmp_path / "ignored").exists()
