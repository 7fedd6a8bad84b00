# -*- coding: utf-8 -*-
"""Unit tests for doc_prescreen.tools.registry."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from doc_prescreen.errors import ConfigurationError
from doc_prescreen.tools.registry import build_registry, default_registry, load_registry

MB = 1024 * 1024


def _write_rules(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_default_registry_has_the_four_documents() -> None:
    reg = default_registry()
    assert list(reg.keys()) == ["passportPhoto", "addressProof", "dobProof", "identityProof"]
    assert reg.get("passportPhoto").required is True
    assert reg.get("dobProof").required is False


def test_passport_photo_rule_values() -> None:
    rule = default_registry().get("passportPhoto")
    assert rule.allowed_types == frozenset({"image/jpeg", "image/png"})
    assert rule.max_size_bytes == 5 * MB
    assert rule.image.min_width == 350
    assert rule.image.min_height == 450
    assert (rule.image.min_aspect_ratio, rule.image.max_aspect_ratio) == (0.7, 0.9)
    assert rule.quality.min_blur_score == 8
    assert rule.needs_image_checks is True
    assert default_registry().get("addressProof").needs_image_checks is False


def test_policies_loaded() -> None:
    reg = default_registry()
    assert reg.matching.name_threshold == 0.7
    assert reg.matching.address_threshold == 0.6
    assert reg.risk.per_document_cap == 50
    assert (reg.risk.low_max, reg.risk.medium_max) == (30, 70)
    assert "photo" in reg.extraction.stop_tokens
    assert reg.basic_failure_status == "invalid"


def test_unknown_key_raises_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        default_registry().get("drivingLicence")


def test_registry_is_read_only() -> None:
    reg = default_registry()
    with pytest.raises(TypeError):
        reg.rules["extra"] = reg.get("passportPhoto")  # type: ignore[index]
    with pytest.raises(ValidationError):
        reg.get("passportPhoto").required = False  # type: ignore[misc]


def test_max_size_bytes_is_accepted(tmp_path: Path) -> None:
    path = _write_rules(
        tmp_path / "rules.yaml",
        "documents:\n  form:\n    label: Form\n    allowed_types: [application/pdf]\n    max_size_bytes: 2048\n",
    )
    reg = load_registry(path)
    assert reg.get("form").max_size_bytes == 2048
    assert reg.get("form").content == "none"
    assert reg.source == str(path)


def test_env_path_is_used(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write_rules(
        tmp_path / "env.yaml",
        "documents:\n  selfie:\n    label: Selfie\n    required: true\n    allowed_types: [image/png]\n    max_size_mb: 1\n",
    )
    monkeypatch.setenv("DOC_RULES_PATH", str(path))
    reg = load_registry()
    assert list(reg.keys()) == ["selfie"]
    assert reg.get("selfie").max_size_bytes == MB


@pytest.mark.parametrize(
    "text",
    [
        "documents: {}\n",
        "documents:\n  a:\n    label: A\n    allowed_types: [image/png]\n",  # no size limit
        "documents:\n  a:\n    label: A\n    allowed_types: [image/png]\n    max_size_mb: 1\n    colour: red\n",
        "documents:\n  a:\n    label: A\n    allowed_types: [image/png]\n    max_size_mb: 1\nrisk:\n  cap: 5\n",
        "- just\n- a list\n",
    ],
)
def test_invalid_rules_fail_loudly(tmp_path: Path, text: str) -> None:
    path = _write_rules(tmp_path / "bad.yaml", text)
    with pytest.raises(ConfigurationError):
        load_registry(path)


def test_missing_file_is_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_registry(tmp_path / "nope.yaml")


def test_inverted_risk_boundaries_rejected() -> None:
    data = {
        "documents": {"a": {"label": "A", "allowed_types": ["image/png"], "max_size_mb": 1}},
        "risk": {"low_max": 80, "medium_max": 40},
    }
    with pytest.raises(ConfigurationError):
        build_registry(data)
